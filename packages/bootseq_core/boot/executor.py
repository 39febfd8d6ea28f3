"""Single-stage execution with failure wrapping and an optional deadline."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from packages.bootseq_shared.errors import ErrorDetail
from packages.bootseq_shared.logging import fields, get_logger, log_context

from .contracts import (
    ModuleLoadError,
    StageContext,
    StageDefinition,
    StageError,
    StageOutput,
    StageResult,
    StageTimeoutError,
    boot_error_to_detail,
)

_LOGGER = get_logger(__name__)


class StageExecutor:
    """Run one stage action and report its outcome as a ``StageResult``.

    The executor holds no run state and never retries. Exceptions and
    ``success=False`` outputs both come back as failed results naming the
    stage; nothing raised by the action escapes ``run``.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._monotonic = monotonic

    async def run(self, stage: StageDefinition, prior_state: StageContext) -> StageResult:
        """Execute ``stage`` against ``prior_state``."""
        with log_context(
            {fields.STAGE_ID: stage.id, fields.STAGE_INDEX: prior_state.stage_index}
        ):
            started = self._monotonic()
            _LOGGER.info("stage started")
            try:
                output = await self._invoke(stage, prior_state)
            except Exception as exc:
                result = self._failed(stage, prior_state, exc, started)
            else:
                result = self._from_output(stage, prior_state, output, started)

            if result.success:
                _LOGGER.info(
                    "stage completed",
                    extra={
                        fields.DURATION_MS: result.duration_ms,
                        "modules": len(result.produced_modules),
                        "services": len(result.produced_services),
                    },
                )
            else:
                _LOGGER.error(
                    "stage failed",
                    extra={
                        fields.DURATION_MS: result.duration_ms,
                        fields.ERROR_CODE: result.error.code if result.error else None,
                        fields.ERROR_CATEGORY: (
                            result.error.category.value if result.error else None
                        ),
                        "error": result.error.message if result.error else None,
                    },
                )
            return result

    async def _invoke(self, stage: StageDefinition, prior_state: StageContext) -> StageOutput:
        """Await the stage action, enforcing the deadline when one is set."""
        deadline = asyncio.timeout(self._timeout_seconds)
        try:
            async with deadline:
                output = await stage.action(prior_state)
        except TimeoutError as exc:
            # A TimeoutError raised by the action itself is an ordinary failure.
            if not deadline.expired():
                raise
            raise StageTimeoutError(stage.id, self._timeout_seconds or 0.0) from exc
        if not isinstance(output, StageOutput):
            raise StageError(
                stage.id,
                f"action returned {type(output).__name__}, expected StageOutput",
            )
        return output

    def _from_output(
        self,
        stage: StageDefinition,
        prior_state: StageContext,
        output: StageOutput,
        started: float,
    ) -> StageResult:
        """Build a result from a returned output, wrapping reported failures."""
        if output.success:
            return StageResult(
                stage_id=stage.id,
                stage_index=prior_state.stage_index,
                success=True,
                produced_modules=output.produced_modules,
                produced_services=output.produced_services,
                produced_tables=output.produced_tables,
                warnings=output.warnings,
                duration_ms=self._elapsed_ms(started),
            )

        reported = output.error
        if isinstance(reported, BaseException):
            cause: BaseException = reported
        else:
            cause = StageError(stage.id, reported or "action reported failure")
        return StageResult(
            stage_id=stage.id,
            stage_index=prior_state.stage_index,
            success=False,
            produced_modules=output.produced_modules,
            produced_services=output.produced_services,
            produced_tables=output.produced_tables,
            warnings=output.warnings,
            error=_stage_error_detail(stage.id, cause),
            duration_ms=self._elapsed_ms(started),
        )

    def _failed(
        self,
        stage: StageDefinition,
        prior_state: StageContext,
        exc: Exception,
        started: float,
    ) -> StageResult:
        """Build a failed result from an exception raised by the action."""
        partial = exc.loaded if isinstance(exc, ModuleLoadError) else {}
        return StageResult(
            stage_id=stage.id,
            stage_index=prior_state.stage_index,
            success=False,
            produced_modules=partial,
            error=_stage_error_detail(stage.id, exc),
            duration_ms=self._elapsed_ms(started),
        )

    def _elapsed_ms(self, started: float) -> float:
        return round((self._monotonic() - started) * 1000.0, 3)


def _stage_error_detail(stage_id: str, exc: BaseException) -> ErrorDetail:
    """Normalize a stage failure, keeping the cause's code and naming the stage."""
    detail = boot_error_to_detail(exc, metadata={fields.STAGE_ID: stage_id})
    if isinstance(exc, StageError):
        return detail
    return detail.with_message(str(StageError(stage_id, detail.message)))

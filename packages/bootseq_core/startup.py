"""Default pipeline assembly and one-shot boot execution."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from packages.bootseq_core.boot import (
    BootObserver,
    BootOutcome,
    BootPipeline,
    BootStatus,
    StageDefinition,
)
from packages.bootseq_core.catalog import default_service_catalog
from packages.bootseq_core.runlevels import ServiceCatalog
from packages.bootseq_core.stages import default_stages
from packages.bootseq_shared.config import BootSettings, BootseqSettings


@dataclass(frozen=True, slots=True)
class BootRunResult:
    """Terminal outcome and final status of one boot run."""

    outcome: BootOutcome
    status: BootStatus

    @property
    def success(self) -> bool:
        """Return whether the run reached ``COMPLETED``."""
        return self.outcome.success


def build_default_pipeline(
    *,
    settings: BootSettings | None = None,
    stages: Sequence[StageDefinition] | None = None,
    service_catalog: ServiceCatalog | None = None,
    **pipeline_options: object,
) -> BootPipeline:
    """Build a pipeline over the default stages and service catalog."""
    return BootPipeline(
        default_stages() if stages is None else stages,
        settings=settings or BootSettings(),
        service_catalog=service_catalog or default_service_catalog(),
        **pipeline_options,
    )


async def run_boot(
    *,
    settings: BootseqSettings,
    observers: Sequence[BootObserver] = (),
    pipeline_factory: Callable[..., BootPipeline] = build_default_pipeline,
) -> BootRunResult:
    """Build a pipeline from settings, run it once and report the result."""
    pipeline = pipeline_factory(settings=settings.boot)
    for observer in observers:
        pipeline.subscribe(observer)
    outcome = await pipeline.run()
    return BootRunResult(outcome=outcome, status=pipeline.get_status())

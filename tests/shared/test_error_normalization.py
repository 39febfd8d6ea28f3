"""Tests for shared error factories and boot error normalization."""

from __future__ import annotations

import pytest

from packages.bootseq_core.boot.contracts import (
    INTEGRITY_FAILED,
    INVALID_DEFINITION,
    MODULE_DEPENDENCY_CYCLE,
    MODULE_DEPENDENCY_UNSATISFIED,
    STAGE_TIMEOUT,
    SYMBOL_CONFLICT,
    UNKNOWN_SERVICE,
    BootContractError,
    CycleError,
    IntegrityError,
    ModuleLoadError,
    StageTimeoutError,
    SymbolConflictError,
    UnknownServiceError,
    UnsatisfiedDependencyError,
    boot_error_to_detail,
)
from packages.bootseq_shared.errors import (
    ErrorCategory,
    codes,
    dependency_error,
    exception_to_error,
)


@pytest.mark.parametrize(
    ("exc", "code", "category", "retryable"),
    [
        (CycleError(["a", "b"]), MODULE_DEPENDENCY_CYCLE, ErrorCategory.VALIDATION, False),
        (
            UnsatisfiedDependencyError("ipc", ["process"]),
            MODULE_DEPENDENCY_UNSATISFIED,
            ErrorCategory.DEPENDENCY,
            False,
        ),
        (SymbolConflictError("send", "ipc", "net"), SYMBOL_CONFLICT, ErrorCategory.CONFLICT, False),
        (UnknownServiceError("ghost"), UNKNOWN_SERVICE, ErrorCategory.NOT_FOUND, False),
        (StageTimeoutError("init", 1.0), STAGE_TIMEOUT, ErrorCategory.DEPENDENCY, True),
        (IntegrityError("init", ["x missing"]), INTEGRITY_FAILED, ErrorCategory.POLICY, False),
        (BootContractError("bad"), INVALID_DEFINITION, ErrorCategory.VALIDATION, False),
    ],
)
def test_boot_errors_map_to_their_codes(
    exc: Exception, code: str, category: ErrorCategory, retryable: bool
) -> None:
    """Each boot error type should normalize to its own code and category."""
    detail = boot_error_to_detail(exc)

    assert detail.code == code
    assert detail.category is category
    assert detail.retryable is retryable
    assert detail.message == str(exc)
    assert detail.metadata["exception_type"] == type(exc).__name__


def test_module_load_error_reports_its_cause() -> None:
    """Wrapped load failures should surface the cause tagged with the module."""
    exc = ModuleLoadError("ipc", SymbolConflictError("send", "net", "ipc"), {})

    detail = boot_error_to_detail(exc, metadata={"stage_id": "kernel-loader"})

    assert detail.code == SYMBOL_CONFLICT
    assert detail.metadata["module"] == "ipc"
    assert detail.metadata["stage_id"] == "kernel-loader"


def test_unknown_exceptions_fall_back_to_shared_mapping() -> None:
    """Non-boot exceptions should use the generic normalization."""
    assert boot_error_to_detail(ValueError("bad")).code == codes.INVALID_ARGUMENT
    assert boot_error_to_detail(TimeoutError()).message == "dependency timeout"
    assert boot_error_to_detail(RuntimeError()).category is ErrorCategory.INTERNAL


def test_exception_to_error_keeps_caller_metadata() -> None:
    """Caller metadata should be merged after the exception type."""
    detail = exception_to_error(KeyError("gdt"), metadata={"stage_id": "kernel-init"})

    assert detail.code == codes.RESOURCE_NOT_FOUND
    assert detail.metadata == {"exception_type": "KeyError", "stage_id": "kernel-init"}


def test_dependency_error_defaults_to_retryable() -> None:
    """Dependency errors are retryable unless told otherwise."""
    assert dependency_error("slow disk").retryable is True
    assert dependency_error("gone", retryable=False).retryable is False


def test_error_detail_copies_keep_the_original_intact() -> None:
    """Message and metadata helpers should return new details."""
    detail = dependency_error("disk gone", code=codes.BOOT_STAGE_FAILED, metadata={"a": "1"})

    renamed = detail.with_message("stage 'init' failed: disk gone")
    tagged = detail.with_metadata(module="vfs")

    assert str(renamed) == "BOOT_STAGE_FAILED: stage 'init' failed: disk gone"
    assert tagged.metadata == {"a": "1", "module": "vfs"}
    assert detail.message == "disk gone"
    assert detail.metadata == {"a": "1"}

"""Error code constants carried by ``ErrorDetail.code``.

Generic codes come first and back the fallback mapping in
``exception_to_error``. Boot codes are prefixed ``BOOT_`` and are assigned by
``packages.bootseq_core.boot.contracts.boot_error_to_detail``.
"""

# Generic
INVALID_ARGUMENT = "INVALID_ARGUMENT"
VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
CONFLICT = "CONFLICT"
POLICY_VIOLATION = "POLICY_VIOLATION"
PERMISSION_DENIED = "PERMISSION_DENIED"
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
DEPENDENCY_TIMEOUT = "DEPENDENCY_TIMEOUT"
DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
INTERNAL_ERROR = "INTERNAL_ERROR"
UNEXPECTED_EXCEPTION = "UNEXPECTED_EXCEPTION"

# Definitions
BOOT_INVALID_DEFINITION = "BOOT_INVALID_DEFINITION"

# Module graph and loading
BOOT_MODULE_DEPENDENCY_MISSING = "BOOT_MODULE_DEPENDENCY_MISSING"
BOOT_MODULE_DEPENDENCY_CYCLE = "BOOT_MODULE_DEPENDENCY_CYCLE"
BOOT_MODULE_DEPENDENCY_UNSATISFIED = "BOOT_MODULE_DEPENDENCY_UNSATISFIED"
BOOT_MODULE_ALREADY_LOADED = "BOOT_MODULE_ALREADY_LOADED"
BOOT_SYMBOL_CONFLICT = "BOOT_SYMBOL_CONFLICT"
BOOT_UNKNOWN_MODULE = "BOOT_UNKNOWN_MODULE"

# Stages
BOOT_STAGE_FAILED = "BOOT_STAGE_FAILED"
BOOT_STAGE_TIMEOUT = "BOOT_STAGE_TIMEOUT"
BOOT_INTEGRITY_FAILED = "BOOT_INTEGRITY_FAILED"

# Services and runlevels
BOOT_UNKNOWN_SERVICE = "BOOT_UNKNOWN_SERVICE"
BOOT_RUNLEVEL_MISMATCH = "BOOT_RUNLEVEL_MISMATCH"
BOOT_SERVICE_START_FAILED = "BOOT_SERVICE_START_FAILED"

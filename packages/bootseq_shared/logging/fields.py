"""Canonical logging field names for boot orchestration logs.

Keeping names centralized prevents drift between the pipeline, the loader and
the service manager when the same concept is logged from several places.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Pipeline fields.
RUN_ID = "run_id"
STAGE_ID = "stage_id"
STAGE_INDEX = "stage_index"
TOTAL_STAGES = "total_stages"
DURATION_MS = "duration_ms"
SUCCESS = "success"
ERROR_CODE = "error_code"
ERROR_CATEGORY = "error_category"

# Module and symbol fields.
MODULE = "module_name"
DEPENDENCIES = "dependencies"
SYMBOL = "symbol"

# Service and runlevel fields.
SERVICE_NAME = "service_name"
SERVICE_KIND = "service_kind"
RUNLEVEL = "runlevel"

# Integrity fields.
HEALTHY = "healthy"
ISSUES = "issues"
WARNINGS = "warnings"

# Terminal events.
BOOT_COMPLETE_EVENT = "boot_complete"
BOOT_ERROR_EVENT = "boot_error"

# Common process-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"

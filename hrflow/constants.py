"""Shared defaults for the workflow engine."""

DEFAULT_MAX_STEPS_PER_EXECUTION = 1000
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 1.0
DEFAULT_RETRY_JITTER = 0.0
DEFAULT_DELAY_DURATION = 1
DEFAULT_DELAY_UNIT = "seconds"

SYSTEM_ACTOR = "SYSTEM"
CANCELLED_MESSAGE = "Execution cancelled"

DELAY_UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 60 * 60,
    "days": 24 * 60 * 60,
}

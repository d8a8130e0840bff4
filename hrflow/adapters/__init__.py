"""Action adapters: the boundary between the engine and side effects."""

from .base import ActionAdapter, ActionResult
from .logging_adapter import LoggingActionAdapter
from .registry import ActionHandler, AdapterRegistry

__all__ = [
    "ActionAdapter",
    "ActionHandler",
    "ActionResult",
    "AdapterRegistry",
    "LoggingActionAdapter",
]

"""Dry-run adapter that logs each call and reports success."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from .base import ActionAdapter, ActionResult

logger = logging.getLogger(__name__)


class LoggingActionAdapter(ActionAdapter):
    """Record requested actions without performing them.

    Useful when no concrete integrations are wired up, e.g. from the CLI.
    Calls are kept in ``calls`` in the order they were made.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    async def execute(
        self, action_type: str, config: Dict[str, Any], context: Dict[str, Any]
    ) -> ActionResult:
        self.calls.append((action_type, dict(config)))
        logger.info(f"[dry-run] {action_type} config={config}")
        return ActionResult.ok({"last_action": action_type})

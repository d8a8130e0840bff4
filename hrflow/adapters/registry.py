"""Adapter that routes calls to handlers registered per action type."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .base import ActionAdapter, ActionResult

logger = logging.getLogger(__name__)

HandlerResult = Union[ActionResult, Dict[str, Any], None]
ActionHandler = Callable[[Dict[str, Any], Dict[str, Any]], Awaitable[HandlerResult]]


class AdapterRegistry(ActionAdapter):
    """Dispatch ``execute`` calls by action type.

    Handlers are ``async def handler(config, context)`` and may return an
    ``ActionResult``, a dict (treated as a success context patch) or ``None``.
    Registries are built and passed to the controller explicitly; there is no
    module-level instance.
    """

    def __init__(self, fallback: Optional[ActionAdapter] = None) -> None:
        self._handlers: Dict[str, ActionHandler] = {}
        self._fallback = fallback

    def register(self, action_type: str, handler: ActionHandler) -> None:
        key = action_type.upper()
        if key in self._handlers:
            logger.warning(f"Replacing handler for action type {key}")
        self._handlers[key] = handler

    def handler(self, action_type: str) -> Callable[[ActionHandler], ActionHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: ActionHandler) -> ActionHandler:
            self.register(action_type, func)
            return func

        return decorator

    def supports(self, action_type: str) -> bool:
        return action_type.upper() in self._handlers

    async def execute(
        self, action_type: str, config: Dict[str, Any], context: Dict[str, Any]
    ) -> ActionResult:
        handler = self._handlers.get(action_type.upper())
        if handler is None:
            if self._fallback is not None:
                return await self._fallback.execute(action_type, config, context)
            return ActionResult.fail(f"No handler registered for action type {action_type}")

        result = await handler(config, context)
        if isinstance(result, ActionResult):
            return result
        return ActionResult.ok(result or {})

"""Action adapters with scripted behaviour for engine tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Iterable, List, Tuple, Union

from hrflow.adapters import ActionAdapter, ActionResult

Scripted = Union[ActionResult, Exception]


class ScriptedAdapter(ActionAdapter):
    """Return queued results per action type; succeed once a queue is empty."""

    def __init__(self, script: Dict[str, Iterable[Scripted]] | None = None) -> None:
        self._script: Dict[str, Deque[Scripted]] = defaultdict(deque)
        for action_type, results in (script or {}).items():
            self._script[action_type].extend(results)
        self.calls: List[Tuple[str, Dict[str, Any], Dict[str, Any]]] = []

    async def execute(
        self, action_type: str, config: Dict[str, Any], context: Dict[str, Any]
    ) -> ActionResult:
        self.calls.append((action_type, config, context))
        queue = self._script[action_type]
        if not queue:
            return ActionResult.ok()
        result = queue.popleft()
        if isinstance(result, Exception):
            raise result
        return result

    def actions(self) -> List[str]:
        return [call[0] for call in self.calls]


class BlockingAdapter(ActionAdapter):
    """Block every call until ``release`` is set."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def execute(
        self, action_type: str, config: Dict[str, Any], context: Dict[str, Any]
    ) -> ActionResult:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return ActionResult.ok({"released": True})

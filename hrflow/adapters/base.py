"""Action adapter interface used by the execution controller."""

from __future__ import annotations

import abc
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    """Outcome of one adapter call."""

    success: bool
    context_patch: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, context_patch: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=True, context_patch=context_patch or {})

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class ActionAdapter(metaclass=abc.ABCMeta):
    """Performs the real side effect of a step (mail, task, approval...)."""

    @abc.abstractmethod
    async def execute(
        self, action_type: str, config: Dict[str, Any], context: Dict[str, Any]
    ) -> ActionResult:
        """Run ``action_type`` with ``config`` against a copy of ``context``.

        Expected failures (validation, "rate limited", rejected approval) are
        reported as ``ActionResult.fail``. Raised exceptions are treated the
        same way by the controller.
        """
        raise NotImplementedError

"""Compilation of stored steps into typed instructions.

Each step kind maps to exactly one instruction class carrying only the
fields that kind needs. The controller dispatches on the instruction type,
so adding a ``StepType`` without handling it here fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from .constants import DEFAULT_DELAY_DURATION, DEFAULT_DELAY_UNIT, DELAY_UNIT_SECONDS
from .contracts import ConditionExpression, StepType, WorkflowStep
from .errors import StepExecutionError

DEFAULT_ACTION_TYPES = {
    StepType.NOTIFICATION: "SEND_NOTIFICATION",
    StepType.APPROVAL: "REQUEST_APPROVAL",
    StepType.INTEGRATION: "CALL_INTEGRATION",
}


@dataclass(frozen=True)
class AdapterCall:
    """Side effect delegated to the action adapter."""

    step_type: StepType
    action_type: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConditionCheck:
    expression: ConditionExpression


@dataclass(frozen=True)
class Delay:
    seconds: float


StepInstruction = Union[AdapterCall, ConditionCheck, Delay]


def delay_seconds(config: Dict[str, Any]) -> float:
    """Convert a delay step's ``duration``/``unit`` config to seconds."""
    duration = config.get("duration", DEFAULT_DELAY_DURATION)
    unit = str(config.get("unit", DEFAULT_DELAY_UNIT)).lower()
    if unit not in DELAY_UNIT_SECONDS:
        raise ValueError(f"Unknown delay unit {unit!r}")
    try:
        seconds = float(duration) * DELAY_UNIT_SECONDS[unit]
    except (TypeError, ValueError):
        raise ValueError(f"Invalid delay duration {duration!r}") from None
    if seconds < 0:
        raise ValueError("Delay duration must not be negative")
    return seconds


def compile_step(step: WorkflowStep) -> StepInstruction:
    """Translate ``step`` into the instruction the controller runs.

    Raises:
        StepExecutionError: the step's configuration cannot be run.
    """
    if step.type in (
        StepType.ACTION,
        StepType.NOTIFICATION,
        StepType.APPROVAL,
        StepType.INTEGRATION,
    ):
        action_type = step.action_type or DEFAULT_ACTION_TYPES.get(step.type)
        if not action_type:
            raise StepExecutionError(step.id, f"Step {step.name} has no action type")
        return AdapterCall(step_type=step.type, action_type=action_type, config=step.config)

    if step.type is StepType.CONDITION:
        expression = step.conditions
        if expression is None:
            expression = step.config.get("condition")
        if expression is None:
            raise StepExecutionError(step.id, f"Step {step.name} has no condition")
        return ConditionCheck(expression=expression)

    if step.type is StepType.DELAY:
        try:
            return Delay(seconds=delay_seconds(step.config))
        except ValueError as e:
            raise StepExecutionError(step.id, str(e)) from e

    raise StepExecutionError(step.id, f"Unsupported step type {step.type}")

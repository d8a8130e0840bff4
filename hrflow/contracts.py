"""Core records of the workflow automation engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class WorkflowType(str, Enum):
    RECRUITMENT = "RECRUITMENT"
    ONBOARDING = "ONBOARDING"
    PERFORMANCE = "PERFORMANCE"
    DOCUMENT = "DOCUMENT"
    CUSTOM = "CUSTOM"


class TriggerKind(str, Enum):
    MANUAL = "MANUAL"
    SCHEDULED = "SCHEDULED"
    EVENT = "EVENT"
    CONDITION = "CONDITION"


class WorkflowStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class StepType(str, Enum):
    ACTION = "ACTION"
    CONDITION = "CONDITION"
    DELAY = "DELAY"
    NOTIFICATION = "NOTIFICATION"
    APPROVAL = "APPROVAL"
    INTEGRATION = "INTEGRATION"


class ExecutionStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class StepOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class StepLogStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TemplateCategory(str, Enum):
    RECRUITMENT = "RECRUITMENT"
    ONBOARDING = "ONBOARDING"
    OFFBOARDING = "OFFBOARDING"
    PERFORMANCE = "PERFORMANCE"
    COMPLIANCE = "COMPLIANCE"


# Condition expressions are either structured dicts or short strings such as
# "score > 70"; see ``hrflow.conditions``.
ConditionExpression = Union[Dict[str, Any], str]


class Workflow(BaseModel):
    """A named, reusable process definition."""

    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    type: WorkflowType = WorkflowType.CUSTOM
    trigger: TriggerKind = TriggerKind.MANUAL
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    status: WorkflowStatus = WorkflowStatus.DRAFT
    execution_count: int = 0
    last_executed: Optional[datetime] = None
    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowStep(BaseModel):
    """One node of a workflow's step graph."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    step_number: int
    name: str
    type: StepType
    action_type: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    conditions: Optional[ConditionExpression] = None
    next_step_on_success: Optional[str] = None
    next_step_on_failure: Optional[str] = None
    retry_attempts: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=0.0, ge=0)


class WorkflowExecution(BaseModel):
    """One run of a workflow against a concrete input context."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    triggered_by: Optional[str] = None
    trigger_source: TriggerKind = TriggerKind.MANUAL
    context: Dict[str, Any] = Field(default_factory=dict)
    steps: List[WorkflowStep] = Field(
        default_factory=list, description="Step graph captured at trigger time"
    )
    current_step_id: Optional[str] = None
    resume_at: Optional[datetime] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class WorkflowStepLog(BaseModel):
    """Append-only record of a single attempt at a single step."""

    id: str = Field(default_factory=new_id)
    execution_id: str
    step_id: str
    step_name: str
    attempt: int = 1
    status: StepLogStatus
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: datetime
    duration_ms: int = 0

    @property
    def outcome(self) -> StepOutcome:
        if self.status is StepLogStatus.COMPLETED:
            return StepOutcome.SUCCESS
        return StepOutcome.FAILURE


class StepDefinition(BaseModel):
    """Step blueprint whose edges reference other steps by ``key``."""

    key: Optional[str] = None
    step_number: int
    name: str
    type: StepType
    action_type: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    conditions: Optional[ConditionExpression] = None
    next_step_on_success: Optional[str] = None
    next_step_on_failure: Optional[str] = None
    retry_attempts: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def _default_key(self) -> "StepDefinition":
        if self.key is None:
            self.key = str(self.step_number)
        return self


class WorkflowDefinition(BaseModel):
    """Serializable workflow plus steps, used for creation and templates."""

    name: str
    description: Optional[str] = None
    type: WorkflowType = WorkflowType.CUSTOM
    trigger: TriggerKind = TriggerKind.MANUAL
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepDefinition] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name must be a non-empty string")
        return v

    @model_validator(mode="after")
    def _check_edges(self) -> "WorkflowDefinition":
        keys = [step.key for step in self.steps]
        duplicates = {k for k in keys if keys.count(k) > 1}
        if duplicates:
            raise ValueError(f"duplicate step keys: {sorted(duplicates)}")
        known = set(keys)
        for step in self.steps:
            for target in (step.next_step_on_success, step.next_step_on_failure):
                if target is not None and target not in known:
                    raise ValueError(
                        f"step {step.key!r} references unknown step {target!r}"
                    )
        return self


class WorkflowTemplate(BaseModel):
    """Read-only blueprint for instantiating new workflows."""

    id: str = Field(default_factory=new_id)
    name: str
    category: TemplateCategory
    description: str = ""
    definition: WorkflowDefinition
    is_active: bool = True
    usage_count: int = 0
    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)

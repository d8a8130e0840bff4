from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def _timestamp(nullable: bool = True) -> Any:
    return Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=nullable),
    )


class WorkflowRow(SQLModel, table=True):
    """Persisted workflow definition header."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    type: str
    trigger: str
    trigger_config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = Field(default="DRAFT", index=True)
    execution_count: int = 0
    last_executed: Optional[datetime] = _timestamp()
    created_by: str
    created_at: datetime = _timestamp(nullable=False)
    updated_at: datetime = _timestamp(nullable=False)


class WorkflowStepRow(SQLModel, table=True):
    """A node of a workflow's step graph."""

    __tablename__ = "workflow_steps"

    id: str = Field(primary_key=True)
    workflow_id: str = Field(foreign_key="workflows.id", index=True)
    step_number: int
    name: str
    type: str
    action_type: Optional[str] = None
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    conditions: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    next_step_on_success: Optional[str] = None
    next_step_on_failure: Optional[str] = None
    retry_attempts: int = 0
    retry_delay: float = 0.0


class WorkflowExecutionRow(SQLModel, table=True):
    """One triggered run. Holds no foreign key so it outlives its workflow."""

    __tablename__ = "workflow_executions"

    id: str = Field(primary_key=True)
    workflow_id: str = Field(index=True)
    status: str = Field(default="RUNNING", index=True)
    triggered_by: Optional[str] = None
    trigger_source: str = "MANUAL"
    context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    steps: list = Field(default_factory=list, sa_column=Column(JSON))
    current_step_id: Optional[str] = None
    resume_at: Optional[datetime] = _timestamp()
    error_message: Optional[str] = None
    started_at: datetime = _timestamp(nullable=False)
    completed_at: Optional[datetime] = _timestamp()
    duration_ms: Optional[int] = None


class WorkflowStepLogRow(SQLModel, table=True):
    """Append-only attempt record."""

    __tablename__ = "workflow_step_logs"

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True, unique=True)
    execution_id: str = Field(foreign_key="workflow_executions.id", index=True)
    step_id: str
    step_name: str
    attempt: int = 1
    status: str
    input: dict = Field(default_factory=dict, sa_column=Column(JSON))
    output: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = None
    started_at: datetime = _timestamp(nullable=False)
    completed_at: datetime = _timestamp(nullable=False)
    duration_ms: int = 0


class WorkflowTemplateRow(SQLModel, table=True):
    __tablename__ = "workflow_templates"

    id: str = Field(primary_key=True)
    name: str
    category: str
    description: str = ""
    definition: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_active: bool = True
    usage_count: int = 0
    created_by: str
    created_at: datetime = _timestamp(nullable=False)

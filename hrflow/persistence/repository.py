"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..contracts import (
    ExecutionStatus,
    TriggerKind,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepLog,
    WorkflowTemplate,
)


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    # Workflows -----------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Retrieve a workflow by id."""

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        trigger: Optional[TriggerKind] = None,
    ) -> list[Workflow]:
        """Return workflows, optionally filtered by status and trigger kind."""

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        """Apply ``changes`` and return the updated workflow."""

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its steps. Executions are kept."""

    async def record_trigger(self, workflow_id: str, at: datetime) -> Workflow | None:
        """Atomically bump ``execution_count`` and set ``last_executed``."""

    # Steps ---------------------------------------------------------------
    async def add_steps(self, steps: list[WorkflowStep]) -> list[WorkflowStep]:
        """Persist new steps."""

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        """Retrieve a step by id."""

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        """Return the workflow's steps ordered by step number."""

    async def update_step(self, step_id: str, **changes: Any) -> WorkflowStep | None:
        """Apply ``changes`` to a step."""

    async def delete_step(self, step_id: str) -> bool:
        """Remove a single step."""

    # Executions ----------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new execution in ``RUNNING``."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        """Return executions, newest first."""

    async def update_execution_progress(
        self,
        execution_id: str,
        current_step_id: Optional[str],
        context: dict,
        resume_at: Optional[datetime] = None,
    ) -> bool:
        """Save the resume token and context of a running execution."""

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        completed_at: datetime,
        context: dict,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> bool:
        """Move a ``RUNNING`` execution to a terminal status.

        Returns ``False`` when the execution is missing or already terminal.
        """

    # Step logs -----------------------------------------------------------
    async def append_step_log(self, log: WorkflowStepLog) -> bool:
        """Append a log entry; refused (``False``) once the execution is terminal."""

    async def list_step_logs(self, execution_id: str) -> list[WorkflowStepLog]:
        """Return an execution's logs in append order."""

    # Templates -----------------------------------------------------------
    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist a template."""

    async def get_template(self, template_id: str) -> WorkflowTemplate | None:
        """Retrieve a template by id."""

    async def list_templates(self, active_only: bool = False) -> list[WorkflowTemplate]:
        """Return all templates."""

    async def increment_template_usage(self, template_id: str) -> None:
        """Count one instantiation of the template."""

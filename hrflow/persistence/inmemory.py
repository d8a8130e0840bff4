"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..contracts import (
    ExecutionStatus,
    TriggerKind,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepLog,
    WorkflowTemplate,
    utcnow,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._steps: Dict[str, WorkflowStep] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._logs: Dict[str, List[WorkflowStepLog]] = {}
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        async with self._lock:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)
        return workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        trigger: Optional[TriggerKind] = None,
    ) -> list[Workflow]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if (status is None or wf.status == status)
            and (trigger is None or wf.trigger == trigger)
        ]

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        async with self._lock:
            wf = self._workflows.get(workflow_id)
            if wf is None:
                return None
            updated = Workflow.model_validate(
                {**wf.model_dump(), **changes, "updated_at": utcnow()}
            )
            self._workflows[workflow_id] = updated
        return updated.model_copy(deep=True)

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self._lock:
            if self._workflows.pop(workflow_id, None) is None:
                return False
            for step_id in [s.id for s in self._steps.values() if s.workflow_id == workflow_id]:
                del self._steps[step_id]
        return True

    async def record_trigger(self, workflow_id: str, at: datetime) -> Workflow | None:
        async with self._lock:
            wf = self._workflows.get(workflow_id)
            if wf is None:
                return None
            wf.execution_count += 1
            wf.last_executed = at
            wf.updated_at = at
            return wf.model_copy(deep=True)

    # ------------------------------------------------------------------
    async def add_steps(self, steps: list[WorkflowStep]) -> list[WorkflowStep]:
        async with self._lock:
            for step in steps:
                self._steps[step.id] = step.model_copy(deep=True)
        return [s.model_copy(deep=True) for s in steps]

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        steps = [s for s in self._steps.values() if s.workflow_id == workflow_id]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.step_number)]

    async def update_step(self, step_id: str, **changes: Any) -> WorkflowStep | None:
        async with self._lock:
            step = self._steps.get(step_id)
            if step is None:
                return None
            updated = WorkflowStep.model_validate({**step.model_dump(), **changes})
            self._steps[step_id] = updated
        return updated.model_copy(deep=True)

    async def delete_step(self, step_id: str) -> bool:
        async with self._lock:
            return self._steps.pop(step_id, None) is not None

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        async with self._lock:
            self._executions[execution.id] = execution.model_copy(deep=True)
            self._logs[execution.id] = []
        return execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        executions = [
            e
            for e in self._executions.values()
            if workflow_id is None or e.workflow_id == workflow_id
        ]
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions]

    async def update_execution_progress(
        self,
        execution_id: str,
        current_step_id: Optional[str],
        context: dict,
        resume_at: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status is not ExecutionStatus.RUNNING:
                return False
            execution.current_step_id = current_step_id
            execution.context = dict(context)
            execution.resume_at = resume_at
            return True

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        completed_at: datetime,
        context: dict,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status is not ExecutionStatus.RUNNING:
                return False
            execution.status = status
            execution.completed_at = completed_at
            execution.context = dict(context)
            execution.error_message = error_message
            execution.duration_ms = duration_ms
            execution.resume_at = None
            return True

    # ------------------------------------------------------------------
    async def append_step_log(self, log: WorkflowStepLog) -> bool:
        async with self._lock:
            execution = self._executions.get(log.execution_id)
            if execution is None or execution.status is not ExecutionStatus.RUNNING:
                return False
            self._logs[log.execution_id].append(log.model_copy(deep=True))
            return True

    async def list_step_logs(self, execution_id: str) -> list[WorkflowStepLog]:
        return [log.model_copy(deep=True) for log in self._logs.get(execution_id, [])]

    # ------------------------------------------------------------------
    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
        return template.model_copy(deep=True)

    async def get_template(self, template_id: str) -> WorkflowTemplate | None:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def list_templates(self, active_only: bool = False) -> list[WorkflowTemplate]:
        return [
            t.model_copy(deep=True)
            for t in self._templates.values()
            if t.is_active or not active_only
        ]

    async def increment_template_usage(self, template_id: str) -> None:
        async with self._lock:
            template = self._templates.get(template_id)
            if template:
                template.usage_count += 1

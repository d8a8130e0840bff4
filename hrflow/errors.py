"""Exception taxonomy for the workflow engine."""

from __future__ import annotations

from typing import Optional


class HrflowError(Exception):
    """Base class for all engine errors."""


class WorkflowNotFound(HrflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class WorkflowArchived(HrflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} is archived and cannot be triggered")
        self.workflow_id = workflow_id


class TriggerRejected(HrflowError):
    """Raised when a non-manual trigger does not apply to a workflow."""

    def __init__(self, workflow_id: str, reason: str) -> None:
        super().__init__(f"Trigger rejected for workflow {workflow_id}: {reason}")
        self.workflow_id = workflow_id
        self.reason = reason


class ExecutionNotFound(HrflowError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution {execution_id} not found")
        self.execution_id = execution_id


class TemplateNotFound(HrflowError):
    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class InvalidWorkflowDefinition(HrflowError):
    """A workflow or step definition failed validation before being saved."""


class GraphIntegrityError(HrflowError):
    """A successor reference points at a step that does not exist.

    Structural corruption is fatal for an execution and is never retried.
    """

    def __init__(self, message: str, step_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.step_id = step_id


class StepExecutionError(HrflowError):
    """A step attempt failed; recovered locally by the retry/branch policy."""

    def __init__(self, step_id: str, message: str) -> None:
        super().__init__(message)
        self.step_id = step_id


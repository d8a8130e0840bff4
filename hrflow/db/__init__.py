from .models import (
    WorkflowExecutionRow,
    WorkflowRow,
    WorkflowStepLogRow,
    WorkflowStepRow,
    WorkflowTemplateRow,
)

__all__ = [
    "WorkflowRow",
    "WorkflowStepRow",
    "WorkflowExecutionRow",
    "WorkflowStepLogRow",
    "WorkflowTemplateRow",
]

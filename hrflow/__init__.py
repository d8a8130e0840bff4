"""hrflow: workflow automation engine for HR processes."""

from .adapters import ActionAdapter, ActionResult, AdapterRegistry, LoggingActionAdapter
from .config import EngineConfig, HrflowConfig, load_config
from .contracts import (
    ExecutionStatus,
    StepDefinition,
    StepType,
    TriggerKind,
    Workflow,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepLog,
    WorkflowTemplate,
)
from .dispatch import TriggerDispatcher
from .engine import ExecutionController
from .graph import StepGraph
from .persistence import get_repository
from .service import WorkflowService

__version__ = "0.1.0"
__all__ = [
    "ActionAdapter",
    "ActionResult",
    "AdapterRegistry",
    "LoggingActionAdapter",
    "EngineConfig",
    "HrflowConfig",
    "load_config",
    "ExecutionStatus",
    "StepDefinition",
    "StepType",
    "TriggerKind",
    "Workflow",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowStepLog",
    "WorkflowTemplate",
    "TriggerDispatcher",
    "ExecutionController",
    "StepGraph",
    "get_repository",
    "WorkflowService",
]

"""Public workflow operations: definitions, executions and templates."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from .adapters import ActionAdapter, LoggingActionAdapter
from .config import EngineConfig
from .contracts import (
    StepDefinition,
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
from .errors import (
    ExecutionNotFound,
    GraphIntegrityError,
    InvalidWorkflowDefinition,
    StepExecutionError,
    TemplateNotFound,
    WorkflowNotFound,
)
from .graph import StepGraph
from .persistence import WorkflowRepository
from .steps import compile_step
from .templates import build_steps, builtin_templates

logger = logging.getLogger(__name__)

# fields callers may not rewrite through ``update_workflow``
_MANAGED_WORKFLOW_FIELDS = {"id", "execution_count", "last_executed", "created_at", "updated_at"}
_MANAGED_STEP_FIELDS = {"id", "workflow_id"}


class WorkflowService:
    """Facade over the store, the execution controller and the dispatcher."""

    def __init__(
        self,
        repository: WorkflowRepository,
        adapter: Optional[ActionAdapter] = None,
        config: Optional[EngineConfig] = None,
        controller: Optional[ExecutionController] = None,
    ) -> None:
        self.repository = repository
        self.controller = controller or ExecutionController(
            repository, adapter or LoggingActionAdapter(), config
        )
        self.dispatcher = TriggerDispatcher(repository, self.controller)

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(
        self,
        definition: Union[WorkflowDefinition, Dict[str, Any]],
        created_by: str = "system",
        status: WorkflowStatus = WorkflowStatus.DRAFT,
    ) -> Workflow:
        """Validate ``definition`` and persist it as a new workflow with its steps.

        Raises:
            InvalidWorkflowDefinition: the definition or one of its steps is
                malformed; nothing is saved in that case.
        """
        definition = _parse_definition(definition)
        workflow = Workflow(
            name=definition.name,
            description=definition.description,
            type=definition.type,
            trigger=definition.trigger,
            trigger_config=dict(definition.trigger_config),
            status=status,
            created_by=created_by,
        )
        steps = build_steps(definition, workflow.id)
        self._check_steps(workflow, steps)

        await self.repository.create_workflow(workflow)
        if steps:
            await self.repository.add_steps(steps)
        logger.info(f"Created workflow {workflow.name} ({workflow.id}) with {len(steps)} steps")
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        return workflow

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        trigger: Optional[TriggerKind] = None,
    ) -> List[Workflow]:
        return await self.repository.list_workflows(status=status, trigger=trigger)

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow:
        blocked = _MANAGED_WORKFLOW_FIELDS & changes.keys()
        if blocked:
            raise InvalidWorkflowDefinition(f"Cannot update managed fields: {sorted(blocked)}")
        try:
            updated = await self.repository.update_workflow(workflow_id, **changes)
        except ValidationError as e:
            raise InvalidWorkflowDefinition(str(e)) from e
        if updated is None:
            raise WorkflowNotFound(workflow_id)
        return updated

    async def set_status(self, workflow_id: str, status: WorkflowStatus) -> Workflow:
        workflow = await self.update_workflow(workflow_id, status=WorkflowStatus(status))
        logger.info(f"Workflow {workflow_id} is now {workflow.status.value}")
        return workflow

    async def archive_workflow(self, workflow_id: str) -> Workflow:
        """Soft delete: the workflow stays readable but can no longer run."""
        return await self.set_status(workflow_id, WorkflowStatus.ARCHIVED)

    async def delete_workflow(self, workflow_id: str) -> None:
        """Remove a workflow and its steps. Past executions remain readable."""
        if not await self.repository.delete_workflow(workflow_id):
            raise WorkflowNotFound(workflow_id)
        logger.info(f"Deleted workflow {workflow_id}")

    # ------------------------------------------------------------------
    # Steps
    async def list_steps(self, workflow_id: str) -> List[WorkflowStep]:
        await self.get_workflow(workflow_id)
        return await self.repository.list_steps(workflow_id)

    async def add_step(
        self, workflow_id: str, step: Union[StepDefinition, Dict[str, Any]]
    ) -> WorkflowStep:
        """Append one step. Successor edges must name existing step ids."""
        workflow = await self.get_workflow(workflow_id)
        data = step.model_dump(exclude={"key"}) if isinstance(step, StepDefinition) else dict(step)
        data.pop("key", None)
        try:
            new_step = WorkflowStep.model_validate({**data, "workflow_id": workflow_id})
        except ValidationError as e:
            raise InvalidWorkflowDefinition(str(e)) from e

        existing = await self.repository.list_steps(workflow_id)
        self._check_steps(workflow, [*existing, new_step])
        await self.repository.add_steps([new_step])
        return new_step

    async def update_step(self, step_id: str, **changes: Any) -> WorkflowStep:
        blocked = _MANAGED_STEP_FIELDS & changes.keys()
        if blocked:
            raise InvalidWorkflowDefinition(f"Cannot update managed fields: {sorted(blocked)}")
        current = await self.repository.get_step(step_id)
        if current is None:
            raise InvalidWorkflowDefinition(f"Step {step_id} not found")
        try:
            candidate = WorkflowStep.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidWorkflowDefinition(str(e)) from e

        workflow = await self.get_workflow(current.workflow_id)
        siblings = [
            s for s in await self.repository.list_steps(workflow.id) if s.id != step_id
        ]
        self._check_steps(workflow, [*siblings, candidate])
        updated = await self.repository.update_step(step_id, **changes)
        return updated or candidate

    async def delete_step(self, step_id: str) -> None:
        """Remove a step that no other step routes to."""
        step = await self.repository.get_step(step_id)
        if step is None:
            raise InvalidWorkflowDefinition(f"Step {step_id} not found")
        referrers = [
            s.name
            for s in await self.repository.list_steps(step.workflow_id)
            if step_id in (s.next_step_on_success, s.next_step_on_failure) and s.id != step_id
        ]
        if referrers:
            raise InvalidWorkflowDefinition(
                f"Step {step.name} is still referenced by: {', '.join(referrers)}"
            )
        await self.repository.delete_step(step_id)

    # ------------------------------------------------------------------
    # Executions
    async def trigger_execution(
        self,
        workflow_id: str,
        context: Optional[Dict[str, Any]] = None,
        source: TriggerKind = TriggerKind.MANUAL,
        actor: Optional[str] = None,
    ) -> str:
        """Start an execution and return its id without waiting for it."""
        return await self.dispatcher.trigger(workflow_id, context, source, actor)

    async def get_execution(self, execution_id: str) -> WorkflowExecution:
        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution

    async def list_executions(self, workflow_id: Optional[str] = None) -> List[WorkflowExecution]:
        return await self.repository.list_executions(workflow_id)

    async def list_step_logs(self, execution_id: str) -> List[WorkflowStepLog]:
        """Return the execution's step logs in the order they were written."""
        await self.get_execution(execution_id)
        return await self.repository.list_step_logs(execution_id)

    async def wait_for_execution(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> WorkflowExecution:
        return await self.controller.wait(execution_id, timeout)

    async def cancel_execution(self, execution_id: str) -> bool:
        return await self.controller.cancel(execution_id)

    async def resume_execution(self, execution_id: str) -> bool:
        return await self.controller.resume(execution_id)

    async def resume_all(self) -> List[str]:
        """Resume every stored ``RUNNING`` execution not owned by this process."""
        resumed = []
        for execution in await self.repository.list_executions():
            if execution.status.is_terminal or execution.id in self.controller.active_executions:
                continue
            if await self.controller.resume(execution.id):
                resumed.append(execution.id)
        return resumed

    async def shutdown(self) -> None:
        await self.controller.shutdown()

    # ------------------------------------------------------------------
    # Templates
    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        return await self.repository.create_template(template)

    async def get_template(self, template_id: str) -> WorkflowTemplate:
        template = await self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    async def list_templates(self, active_only: bool = False) -> List[WorkflowTemplate]:
        return await self.repository.list_templates(active_only=active_only)

    async def seed_templates(
        self, templates: Optional[Iterable[WorkflowTemplate]] = None
    ) -> List[WorkflowTemplate]:
        """Store the built-in templates; ones already present are left untouched."""
        created = []
        for template in templates if templates is not None else builtin_templates():
            if await self.repository.get_template(template.id) is not None:
                continue
            created.append(await self.repository.create_template(template))
        if created:
            logger.info(f"Seeded {len(created)} workflow template(s)")
        return created

    async def instantiate_from_template(
        self, template_id: str, overrides: Optional[Dict[str, Any]] = None
    ) -> Workflow:
        """Create a new workflow from a template's definition.

        ``overrides`` may replace top-level definition fields (``name``,
        ``description``, ``trigger``, ``trigger_config``...) and may carry
        ``created_by`` and ``status`` for the new workflow. Steps keep their
        kinds, configs and edges; only their ids are new.
        """
        template = await self.get_template(template_id)
        if not template.is_active:
            raise InvalidWorkflowDefinition(f"Template {template_id} is not active")

        overrides = dict(overrides or {})
        created_by = overrides.pop("created_by", "system")
        status = overrides.pop("status", WorkflowStatus.DRAFT)
        definition = {**template.definition.model_dump(), **overrides}

        workflow = await self.create_workflow(definition, created_by=created_by, status=status)
        await self.repository.increment_template_usage(template_id)
        logger.info(f"Instantiated template {template.name} as workflow {workflow.id}")
        return workflow

    # ------------------------------------------------------------------
    @staticmethod
    def _check_steps(workflow: Workflow, steps: List[WorkflowStep]) -> None:
        try:
            graph = StepGraph(steps)
            for step in graph.steps:
                compile_step(step)
        except (GraphIntegrityError, StepExecutionError) as e:
            raise InvalidWorkflowDefinition(str(e)) from e

        problems = graph.validate()
        if problems:
            raise InvalidWorkflowDefinition("; ".join(problems))
        looping = graph.find_cycles()
        if looping:
            logger.warning(
                f"Workflow {workflow.name} has {len(looping)} step(s) on a cycle; "
                "executions stop at the configured step limit"
            )


def _parse_definition(definition: Union[WorkflowDefinition, Dict[str, Any]]) -> WorkflowDefinition:
    if isinstance(definition, WorkflowDefinition):
        return definition
    try:
        return WorkflowDefinition.model_validate(definition)
    except ValidationError as e:
        raise InvalidWorkflowDefinition(str(e)) from e

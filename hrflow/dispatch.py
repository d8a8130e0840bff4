"""Trigger dispatcher: turns trigger requests into controller runs."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import conditions
from .constants import SYSTEM_ACTOR
from .contracts import TriggerKind, Workflow, WorkflowStatus
from .engine import ExecutionController
from .errors import TriggerRejected, WorkflowArchived, WorkflowNotFound
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)

CANDIDATE_STAGE_CHANGE = "candidate_stage_change"
CANDIDATE_APPLIED = "candidate_applied"
APPLIED_STAGE = "APPLIED"


class TriggerDispatcher:
    """Validate triggers against the stored workflow and start executions.

    Manual triggers run any workflow that is not archived, which lets drafts
    be tried out. Scheduled, event and condition triggers only fire for
    ``ACTIVE`` workflows configured with the matching trigger kind.
    """

    def __init__(self, repository: WorkflowRepository, controller: ExecutionController) -> None:
        self._repository = repository
        self._controller = controller

    async def trigger(
        self,
        workflow_id: str,
        context: Optional[Dict[str, Any]] = None,
        source: TriggerKind = TriggerKind.MANUAL,
        actor: Optional[str] = None,
    ) -> str:
        """Start an execution of ``workflow_id`` on behalf of ``source``."""
        source = TriggerKind(source)
        workflow = await self._load(workflow_id)
        if source is TriggerKind.MANUAL:
            if workflow.status is WorkflowStatus.ARCHIVED:
                raise WorkflowArchived(workflow_id)
        else:
            self._check_automatic(workflow, source)
        return await self._start(workflow, context, actor or SYSTEM_ACTOR, source)

    async def trigger_manual(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None, actor: Optional[str] = None
    ) -> str:
        return await self.trigger(workflow_id, context, TriggerKind.MANUAL, actor)

    async def trigger_scheduled(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None
    ) -> str:
        return await self.trigger(workflow_id, context, TriggerKind.SCHEDULED)

    async def trigger_event(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None
    ) -> str:
        return await self.trigger(workflow_id, context, TriggerKind.EVENT)

    async def trigger_condition(
        self, workflow_id: str, context: Optional[Dict[str, Any]] = None
    ) -> str:
        return await self.trigger(workflow_id, context, TriggerKind.CONDITION)

    async def publish_event(self, event: str, payload: Optional[Dict[str, Any]] = None) -> List[str]:
        """Fan ``event`` out to every active event workflow listening for it.

        A workflow listens when ``trigger_config["event"]`` equals ``event``;
        optional ``from_stage``/``to_stage`` entries must also equal the
        payload's values under the same keys.

        Returns:
            The ids of the executions started, in workflow creation order.
        """
        payload = dict(payload or {})
        workflows = await self._repository.list_workflows(
            status=WorkflowStatus.ACTIVE, trigger=TriggerKind.EVENT
        )
        started = []
        for workflow in workflows:
            if not _listens_for(workflow, event, payload):
                continue
            logger.info(f"Event {event} triggers workflow {workflow.name} ({workflow.id})")
            context = {**payload, "event": event}
            started.append(await self._start(workflow, context, SYSTEM_ACTOR, TriggerKind.EVENT))
        if not started:
            logger.debug(f"No workflow listens for event {event}")
        return started

    async def candidate_stage_changed(
        self, candidate_id: str, new_stage: str, previous_stage: Optional[str] = None
    ) -> List[str]:
        """Publish a recruiting pipeline move as a ``candidate_stage_change`` event.

        A move into ``APPLIED`` is also published as ``candidate_applied``.
        """
        payload = {"candidate_id": candidate_id, "from_stage": previous_stage, "to_stage": new_stage}
        started = await self.publish_event(CANDIDATE_STAGE_CHANGE, payload)
        if new_stage == APPLIED_STAGE:
            started += await self.publish_event(CANDIDATE_APPLIED, payload)
        return started

    async def evaluate_conditions(self, snapshot: Dict[str, Any]) -> List[str]:
        """Trigger every active condition workflow whose condition holds for ``snapshot``.

        Workflows with a missing or malformed condition are skipped with a
        warning so one bad definition does not block the scan.
        """
        workflows = await self._repository.list_workflows(
            status=WorkflowStatus.ACTIVE, trigger=TriggerKind.CONDITION
        )
        started = []
        for workflow in workflows:
            expression = workflow.trigger_config.get("condition")
            if expression is None:
                logger.warning(f"Condition workflow {workflow.id} has no condition configured")
                continue
            try:
                matched = conditions.evaluate(expression, snapshot)
            except conditions.ConditionError as e:
                logger.warning(f"Skipping workflow {workflow.id}: {e}")
                continue
            if matched:
                started.append(
                    await self._start(workflow, snapshot, SYSTEM_ACTOR, TriggerKind.CONDITION)
                )
        return started

    # ------------------------------------------------------------------
    async def _load(self, workflow_id: str) -> Workflow:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        return workflow

    @staticmethod
    def _check_automatic(workflow: Workflow, source: TriggerKind) -> None:
        if workflow.status is WorkflowStatus.ARCHIVED:
            raise WorkflowArchived(workflow.id)
        if workflow.trigger is not source:
            raise TriggerRejected(
                workflow.id,
                f"workflow is triggered by {workflow.trigger.value}, not {source.value}",
            )
        if workflow.status is not WorkflowStatus.ACTIVE:
            raise TriggerRejected(workflow.id, f"workflow is {workflow.status.value}")

    async def _start(
        self,
        workflow: Workflow,
        context: Optional[Dict[str, Any]],
        actor: str,
        source: TriggerKind,
    ) -> str:
        steps = await self._repository.list_steps(workflow.id)
        return await self._controller.start(
            workflow, steps, context=context, triggered_by=actor, source=source
        )


def _listens_for(workflow: Workflow, event: str, payload: Dict[str, Any]) -> bool:
    config = workflow.trigger_config
    if config.get("event") != event:
        return False
    for key in ("from_stage", "to_stage"):
        expected = config.get(key)
        if expected is not None and payload.get(key) != expected:
            return False
    return True

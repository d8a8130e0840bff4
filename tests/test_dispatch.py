import asyncio

import pytest

from hrflow.contracts import ExecutionStatus, TriggerKind, WorkflowStatus
from hrflow.errors import TriggerRejected, WorkflowArchived, WorkflowNotFound
from hrflow.persistence import InMemoryWorkflowRepository
from hrflow.service import WorkflowService
from tests.fixtures.hr_adapters import ScriptedAdapter

STEPS = [{"step_number": 1, "name": "Notify", "type": "NOTIFICATION", "action_type": "SEND_EMAIL"}]


def _service():
    return WorkflowService(InMemoryWorkflowRepository(), ScriptedAdapter())


async def _workflow(service, status=WorkflowStatus.ACTIVE, trigger=TriggerKind.MANUAL, **config):
    return await service.create_workflow(
        {"name": f"{trigger.value} workflow", "trigger": trigger, "trigger_config": config, "steps": STEPS},
        status=status,
    )


@pytest.mark.asyncio
async def test_manual_trigger_allows_drafts_and_paused():
    service = _service()
    dispatcher = service.dispatcher
    for status in (WorkflowStatus.DRAFT, WorkflowStatus.PAUSED, WorkflowStatus.ACTIVE):
        wf = await _workflow(service, status=status)
        execution_id = await dispatcher.trigger_manual(wf.id, {"employee_id": 1}, actor="hr-admin")
        execution = await service.wait_for_execution(execution_id, timeout=5)
        assert execution.status is ExecutionStatus.COMPLETED
        assert execution.triggered_by == "hr-admin"
        assert execution.trigger_source is TriggerKind.MANUAL


@pytest.mark.asyncio
async def test_manual_trigger_rejects_archived_and_unknown():
    service = _service()
    wf = await _workflow(service)
    await service.archive_workflow(wf.id)

    with pytest.raises(WorkflowArchived):
        await service.dispatcher.trigger_manual(wf.id)
    with pytest.raises(WorkflowNotFound):
        await service.dispatcher.trigger_manual("missing")
    assert (await service.get_workflow(wf.id)).execution_count == 0
    assert await service.list_executions(wf.id) == []


@pytest.mark.asyncio
async def test_automatic_triggers_require_matching_kind_and_active_status():
    service = _service()
    dispatcher = service.dispatcher
    scheduled = await _workflow(service, trigger=TriggerKind.SCHEDULED, cron="0 0 1 */3 *")
    draft = await _workflow(service, status=WorkflowStatus.DRAFT, trigger=TriggerKind.SCHEDULED)
    manual = await _workflow(service)

    execution_id = await dispatcher.trigger_scheduled(scheduled.id)
    execution = await service.wait_for_execution(execution_id, timeout=5)
    assert execution.trigger_source is TriggerKind.SCHEDULED
    assert execution.triggered_by == "SYSTEM"

    with pytest.raises(TriggerRejected):
        await dispatcher.trigger_scheduled(draft.id)
    with pytest.raises(TriggerRejected):
        await dispatcher.trigger_scheduled(manual.id)
    with pytest.raises(TriggerRejected):
        await dispatcher.trigger_event(scheduled.id)
    with pytest.raises(TriggerRejected):
        await dispatcher.trigger_condition(scheduled.id)
    with pytest.raises(TriggerRejected):
        await service.trigger_execution(manual.id, source=TriggerKind.EVENT)


@pytest.mark.asyncio
async def test_publish_event_fans_out_to_matching_workflows():
    service = _service()
    hired = await _workflow(service, trigger=TriggerKind.EVENT, event="candidate_stage_change", to_stage="HIRED")
    any_move = await _workflow(service, trigger=TriggerKind.EVENT, event="candidate_stage_change")
    await _workflow(service, trigger=TriggerKind.EVENT, event="candidate_stage_change", to_stage="INTERVIEW")
    await _workflow(service, status=WorkflowStatus.PAUSED, trigger=TriggerKind.EVENT, event="candidate_stage_change")
    await _workflow(service, trigger=TriggerKind.EVENT, event="candidate_applied")

    started = await service.dispatcher.candidate_stage_changed("cand-9", "HIRED", "OFFER")

    assert len(started) == 2
    executions = [await service.wait_for_execution(eid, timeout=5) for eid in started]
    assert {e.workflow_id for e in executions} == {hired.id, any_move.id}
    assert executions[0].context == {
        "candidate_id": "cand-9",
        "from_stage": "OFFER",
        "to_stage": "HIRED",
        "event": "candidate_stage_change",
    }
    assert all(e.trigger_source is TriggerKind.EVENT for e in executions)

    assert await service.dispatcher.publish_event("employee_terminated", {}) == []


@pytest.mark.asyncio
async def test_evaluate_conditions_triggers_matching_workflows():
    service = _service()
    deadline = await _workflow(service, trigger=TriggerKind.CONDITION, condition="days_until_deadline <= 3")
    await _workflow(service, trigger=TriggerKind.CONDITION, condition="(((")
    await _workflow(service, trigger=TriggerKind.CONDITION)

    assert await service.dispatcher.evaluate_conditions({"days_until_deadline": 10}) == []

    started = await service.dispatcher.evaluate_conditions({"days_until_deadline": 2})
    assert len(started) == 1
    execution = await service.wait_for_execution(started[0], timeout=5)
    assert execution.workflow_id == deadline.id
    assert execution.trigger_source is TriggerKind.CONDITION
    assert execution.context == {"days_until_deadline": 2}


@pytest.mark.asyncio
async def test_concurrent_triggers_are_all_counted():
    service = _service()
    wf = await _workflow(service)
    before = (await service.get_workflow(wf.id)).execution_count

    ids = await asyncio.gather(
        *(service.trigger_execution(wf.id, {"n": n}, actor=f"user-{n}") for n in range(50))
    )

    assert len(set(ids)) == 50
    for execution_id in ids:
        await service.wait_for_execution(execution_id, timeout=5)
    assert (await service.get_workflow(wf.id)).execution_count == before + 50
    assert len(await service.list_executions(wf.id)) == 50


@pytest.mark.asyncio
async def test_screening_template_starts_when_candidate_applies():
    adapter = ScriptedAdapter()
    service = WorkflowService(InMemoryWorkflowRepository(), adapter)
    await service.seed_templates()
    screening = await service.instantiate_from_template(
        "candidate-screening", {"status": WorkflowStatus.ACTIVE}
    )

    assert await service.dispatcher.candidate_stage_changed("cand-1", "INTERVIEW", "APPLIED") == []

    started = await service.dispatcher.candidate_stage_changed("cand-1", "APPLIED")

    assert len(started) == 1
    execution = await service.wait_for_execution(started[0], timeout=5)
    assert execution.workflow_id == screening.id
    assert execution.trigger_source is TriggerKind.EVENT
    assert execution.context["event"] == "candidate_applied"
    assert execution.context["candidate_id"] == "cand-1"
    assert execution.status is ExecutionStatus.COMPLETED
    assert adapter.actions()[0] == "AI_SCREEN"

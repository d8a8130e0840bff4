import pytest

from hrflow.contracts import ExecutionStatus, WorkflowStatus
from hrflow.errors import TemplateNotFound
from hrflow.persistence import InMemoryWorkflowRepository
from hrflow.service import WorkflowService
from hrflow.templates import builtin_templates
from tests.fixtures.hr_adapters import ScriptedAdapter


def _topology_of_definition(definition):
    numbers = {step.key: step.step_number for step in definition.steps}
    return {
        step.step_number: (
            step.type,
            step.action_type,
            numbers.get(step.next_step_on_success),
            numbers.get(step.next_step_on_failure),
        )
        for step in definition.steps
    }


def _topology_of_steps(steps):
    numbers = {step.id: step.step_number for step in steps}
    return {
        step.step_number: (
            step.type,
            step.action_type,
            numbers.get(step.next_step_on_success),
            numbers.get(step.next_step_on_failure),
        )
        for step in steps
    }


@pytest.mark.asyncio
async def test_seed_templates_is_idempotent():
    service = WorkflowService(InMemoryWorkflowRepository(), ScriptedAdapter())

    created = await service.seed_templates()
    assert {t.id for t in created} == {
        "new-hire-onboarding",
        "candidate-screening",
        "quarterly-review",
        "compliance-training",
        "employee-offboarding",
    }
    assert await service.seed_templates() == []
    assert len(await service.list_templates()) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("template", builtin_templates(), ids=lambda t: t.id)
async def test_instantiation_preserves_topology(template):
    service = WorkflowService(InMemoryWorkflowRepository(), ScriptedAdapter())
    await service.seed_templates()

    wf = await service.instantiate_from_template(template.id, {"name": f"{template.name} (copy)"})

    assert wf.name == f"{template.name} (copy)"
    assert wf.type == template.definition.type
    assert wf.trigger == template.definition.trigger
    assert wf.trigger_config == template.definition.trigger_config
    steps = await service.list_steps(wf.id)
    assert _topology_of_steps(steps) == _topology_of_definition(template.definition)
    assert (await service.get_template(template.id)).usage_count == 1


@pytest.mark.asyncio
async def test_instantiating_twice_creates_independent_workflows():
    service = WorkflowService(InMemoryWorkflowRepository(), ScriptedAdapter())
    await service.seed_templates()

    first = await service.instantiate_from_template("employee-offboarding")
    second = await service.instantiate_from_template(
        "employee-offboarding", {"status": WorkflowStatus.ACTIVE, "created_by": "hr-admin"}
    )

    assert first.id != second.id
    assert second.status is WorkflowStatus.ACTIVE
    assert second.created_by == "hr-admin"
    first_ids = {s.id for s in await service.list_steps(first.id)}
    second_ids = {s.id for s in await service.list_steps(second.id)}
    assert first_ids.isdisjoint(second_ids)
    assert (await service.get_template("employee-offboarding")).usage_count == 2


@pytest.mark.asyncio
async def test_unknown_template_raises():
    service = WorkflowService(InMemoryWorkflowRepository(), ScriptedAdapter())
    with pytest.raises(TemplateNotFound):
        await service.instantiate_from_template("missing")


@pytest.mark.asyncio
async def test_screening_template_routes_on_score():
    adapter = ScriptedAdapter()
    service = WorkflowService(InMemoryWorkflowRepository(), adapter)
    await service.seed_templates()
    wf = await service.instantiate_from_template("candidate-screening")

    strong = await service.wait_for_execution(
        await service.trigger_execution(wf.id, {"candidate_id": "c1", "score": 88}), timeout=5
    )
    assert strong.status is ExecutionStatus.COMPLETED
    assert adapter.actions() == ["AI_SCREEN", "SCHEDULE_INTERVIEW", "SEND_EMAIL"]
    assert adapter.calls[-1][1] == {"template": "interview_invite"}

    adapter.calls.clear()
    weak = await service.wait_for_execution(
        await service.trigger_execution(wf.id, {"candidate_id": "c2", "score": 55}), timeout=5
    )
    assert weak.status is ExecutionStatus.COMPLETED
    assert adapter.actions() == ["AI_SCREEN", "SEND_EMAIL"]
    assert adapter.calls[-1][1] == {"template": "rejection_email"}

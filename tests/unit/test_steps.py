import pytest

from hrflow.contracts import StepType, WorkflowStep
from hrflow.errors import StepExecutionError
from hrflow.steps import AdapterCall, ConditionCheck, Delay, compile_step, delay_seconds


def _step(kind, **kwargs):
    return WorkflowStep(workflow_id="wf", step_number=1, name="s", type=kind, **kwargs)


def test_action_like_steps_compile_to_adapter_calls():
    call = compile_step(_step(StepType.ACTION, action_type="SEND_EMAIL", config={"template": "x"}))
    assert call == AdapterCall(StepType.ACTION, "SEND_EMAIL", {"template": "x"})

    approval = compile_step(_step(StepType.APPROVAL, config={"approver": "manager"}))
    assert isinstance(approval, AdapterCall)
    assert approval.action_type == "REQUEST_APPROVAL"


def test_action_without_type_is_rejected():
    with pytest.raises(StepExecutionError):
        compile_step(_step(StepType.ACTION))


def test_condition_comes_from_conditions_or_config():
    assert compile_step(_step(StepType.CONDITION, conditions="score > 1")) == ConditionCheck("score > 1")
    assert compile_step(_step(StepType.CONDITION, config={"condition": "ok"})) == ConditionCheck("ok")
    with pytest.raises(StepExecutionError):
        compile_step(_step(StepType.CONDITION))


def test_delay_units():
    assert compile_step(_step(StepType.DELAY, config={"duration": 2, "unit": "minutes"})) == Delay(120)
    assert delay_seconds({"duration": 48, "unit": "hours"}) == 48 * 3600
    assert delay_seconds({}) == 1
    with pytest.raises(ValueError):
        delay_seconds({"duration": 1, "unit": "fortnights"})
    with pytest.raises(ValueError):
        delay_seconds({"duration": -1})
    with pytest.raises(StepExecutionError):
        compile_step(_step(StepType.DELAY, config={"duration": "soon"}))

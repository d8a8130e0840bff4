import pytest

from hrflow.contracts import StepOutcome, StepType, WorkflowStep
from hrflow.errors import GraphIntegrityError
from hrflow.graph import StepGraph


def _step(step_id, number, on_success=None, on_failure=None):
    return WorkflowStep(
        id=step_id,
        workflow_id="wf",
        step_number=number,
        name=f"step-{step_id}",
        type=StepType.ACTION,
        action_type="NOOP",
        next_step_on_success=on_success,
        next_step_on_failure=on_failure,
    )


def test_entry_step_is_lowest_step_number():
    graph = StepGraph([_step("b", 2), _step("a", 1), _step("c", 3)])
    assert graph.entry_step().id == "a"
    assert [s.id for s in graph.steps] == ["a", "b", "c"]


def test_entry_step_of_empty_graph_raises():
    with pytest.raises(GraphIntegrityError):
        StepGraph([]).entry_step()


def test_successor_follows_outcome_edges():
    a = _step("a", 1, on_success="b", on_failure="c")
    graph = StepGraph([a, _step("b", 2), _step("c", 3)])
    assert graph.successor(a, StepOutcome.SUCCESS).id == "b"
    assert graph.successor(a, StepOutcome.FAILURE).id == "c"


def test_unset_successor_terminates():
    a = _step("a", 1)
    assert StepGraph([a]).successor(a, StepOutcome.SUCCESS) is None
    assert StepGraph([a]).successor(a, StepOutcome.FAILURE) is None


def test_dangling_successor_raises_integrity_error():
    a = _step("a", 1, on_failure="ghost")
    graph = StepGraph([a])
    with pytest.raises(GraphIntegrityError) as exc:
        graph.successor(a, StepOutcome.FAILURE)
    assert exc.value.step_id == "a"
    assert graph.validate() == ["step 1 (step-a) failure successor ghost does not exist"]


def test_duplicate_ids_rejected():
    with pytest.raises(GraphIntegrityError):
        StepGraph([_step("a", 1), _step("a", 2)])


def test_find_cycles_reports_loops_only():
    steps = [
        _step("a", 1, on_success="b"),
        _step("b", 2, on_success="c", on_failure="a"),
        _step("c", 3, on_success="d"),
        _step("d", 4, on_success="d"),
        _step("e", 5),
    ]
    assert StepGraph(steps).find_cycles() == ["a", "b", "d"]


def test_acyclic_graph_has_no_cycles():
    steps = [_step("a", 1, on_success="b", on_failure="c"), _step("b", 2, on_success="c"), _step("c", 3)]
    assert StepGraph(steps).find_cycles() == []

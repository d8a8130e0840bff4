"""Read-only lookup over a workflow's step graph."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .contracts import StepOutcome, WorkflowStep
from .errors import GraphIntegrityError


class StepGraph:
    """Successor resolution over a fixed set of steps.

    The graph is built from a snapshot and never mutated. An unset successor
    reference is a normal terminal condition; a reference to a step that is
    not part of the graph raises ``GraphIntegrityError``.
    """

    def __init__(self, steps: Iterable[WorkflowStep]) -> None:
        self._steps: Dict[str, WorkflowStep] = {}
        for step in steps:
            if step.id in self._steps:
                raise GraphIntegrityError(f"Duplicate step id {step.id}", step.id)
            self._steps[step.id] = step

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    @property
    def steps(self) -> List[WorkflowStep]:
        """Steps ordered by step number."""
        return sorted(self._steps.values(), key=lambda s: (s.step_number, s.id))

    def get(self, step_id: str) -> WorkflowStep:
        try:
            return self._steps[step_id]
        except KeyError:
            raise GraphIntegrityError(
                f"Step {step_id} does not exist in this workflow", step_id
            ) from None

    def entry_step(self) -> WorkflowStep:
        """Return the step with the lowest step number."""
        if not self._steps:
            raise GraphIntegrityError("Workflow has no steps")
        return self.steps[0]

    def successor(
        self, step: WorkflowStep, outcome: StepOutcome
    ) -> Optional[WorkflowStep]:
        """Next step for ``outcome`` or ``None`` when the branch terminates."""
        if outcome is StepOutcome.SUCCESS:
            target = step.next_step_on_success
        else:
            target = step.next_step_on_failure
        if not target:
            return None
        if target not in self._steps:
            raise GraphIntegrityError(
                f"Step {step.id} ({step.name}) points to missing step {target} "
                f"on {outcome.value.lower()}",
                step.id,
            )
        return self._steps[target]

    def validate(self) -> List[str]:
        """Return a description of every dangling successor reference."""
        problems: List[str] = []
        for step in self.steps:
            for label, target in (
                ("success", step.next_step_on_success),
                ("failure", step.next_step_on_failure),
            ):
                if target and target not in self._steps:
                    problems.append(
                        f"step {step.step_number} ({step.name}) {label} successor "
                        f"{target} does not exist"
                    )
        return problems

    def find_cycles(self) -> List[str]:
        """Return ids of steps that lie on at least one cycle."""
        # Tarjan's strongly connected components
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        stack: List[str] = []
        on_stack: set[str] = set()
        on_cycle: set[str] = set()

        def edges(step_id: str) -> List[str]:
            step = self._steps[step_id]
            return [
                t
                for t in (step.next_step_on_success, step.next_step_on_failure)
                if t and t in self._steps
            ]

        def visit(step_id: str) -> None:
            index[step_id] = lowlink[step_id] = len(index)
            stack.append(step_id)
            on_stack.add(step_id)
            for target in edges(step_id):
                if target not in index:
                    visit(target)
                    lowlink[step_id] = min(lowlink[step_id], lowlink[target])
                elif target in on_stack:
                    lowlink[step_id] = min(lowlink[step_id], index[target])
            if lowlink[step_id] == index[step_id]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == step_id:
                        break
                if len(component) > 1 or step_id in edges(step_id):
                    on_cycle.update(component)

        for step in self.steps:
            if step.id not in index:
                visit(step.id)
        return [s.id for s in self.steps if s.id in on_cycle]

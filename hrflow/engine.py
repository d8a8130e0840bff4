"""Execution controller: drives one workflow execution to a terminal state."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import conditions
from .adapters import ActionAdapter
from .config import EngineConfig
from .constants import CANCELLED_MESSAGE
from .contracts import (
    ExecutionStatus,
    StepLogStatus,
    StepOutcome,
    TriggerKind,
    Workflow,
    WorkflowExecution,
    WorkflowStep,
    WorkflowStepLog,
    utcnow,
)
from .errors import ExecutionNotFound, GraphIntegrityError, StepExecutionError, WorkflowNotFound
from .graph import StepGraph
from .persistence import WorkflowRepository
from .rendering import render_config
from .steps import AdapterCall, ConditionCheck, Delay, compile_step
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)

StepResult = Tuple[StepOutcome, Optional[str]]


class _ExecutionClosed(Exception):
    """The stored execution is no longer running; stop without finalizing."""


@dataclass
class _RunState:
    execution_id: str
    started_at: datetime
    context: Dict[str, Any]
    steps_taken: int = 0
    resume_deadline: Optional[datetime] = None


def _carries_patch(step: WorkflowStep) -> bool:
    """Only adapter calls log a context patch as their output."""
    try:
        return isinstance(compile_step(step), AdapterCall)
    except StepExecutionError:
        return False


class ExecutionController:
    """Walks a workflow's step graph for each triggered execution.

    ``start`` records the execution and returns its id immediately; the walk
    runs on its own asyncio task. Step attempts within one execution are
    strictly sequential, separate executions run independently. Delays and
    retry waits suspend only the execution's own task.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        adapter: ActionAdapter,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._repository = repository
        self._adapter = adapter
        self._config = config or EngineConfig()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_reasons: Dict[str, str] = {}

    @property
    def active_executions(self) -> list[str]:
        return [eid for eid, task in self._tasks.items() if not task.done()]

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(
        self,
        workflow: Workflow,
        steps: Iterable[WorkflowStep],
        context: Optional[Dict[str, Any]] = None,
        triggered_by: Optional[str] = None,
        source: TriggerKind = TriggerKind.MANUAL,
    ) -> str:
        """Record a new execution of ``workflow`` and start walking it.

        The steps are snapshotted into the execution, so later edits to the
        workflow never change a run in flight.

        Returns:
            The execution id. Step failures never surface here.
        """
        now = utcnow()
        if await self._repository.record_trigger(workflow.id, now) is None:
            raise WorkflowNotFound(workflow.id)

        execution = WorkflowExecution(
            workflow_id=workflow.id,
            triggered_by=triggered_by,
            trigger_source=source,
            context=copy.deepcopy(context or {}),
            steps=[s.model_copy(deep=True) for s in steps],
            started_at=now,
        )
        await self._repository.create_execution(execution)
        logger.info(
            f"Started execution {execution.id} of workflow {workflow.name} "
            f"({workflow.id}) via {TriggerKind(source).value}"
        )

        state = _RunState(execution.id, now, copy.deepcopy(execution.context))
        self._spawn(state, self._walk_from_entry(state, execution.steps))
        return execution.id

    async def resume(self, execution_id: str) -> bool:
        """Continue a ``RUNNING`` execution whose walk is not owned by this process.

        The walk re-enters the recorded current step. Retry attempts already
        logged for that step count as prior attempts and a pending delay or
        backoff only waits for the time left until ``resume_at``.

        Returns:
            ``True`` when a walk was (or already is) running for the execution.
        """
        if execution_id in self._tasks:
            return True
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        if execution.status is not ExecutionStatus.RUNNING:
            return False

        state = _RunState(
            execution.id,
            execution.started_at,
            copy.deepcopy(execution.context),
            resume_deadline=execution.resume_at,
        )
        logs = await self._repository.list_step_logs(execution_id)
        logger.info(f"Resuming execution {execution_id} at step {execution.current_step_id}")
        self._spawn(state, self._walk_from_token(state, execution.steps, execution.current_step_id, logs))
        return True

    async def cancel(self, execution_id: str) -> bool:
        """Stop an execution and finalize it as ``FAILED``.

        Returns:
            ``False`` when the execution had already reached a terminal status.
        """
        task = self._tasks.get(execution_id)
        if task is not None and not task.done():
            self._cancel_reasons[execution_id] = CANCELLED_MESSAGE
            task.cancel()
            await asyncio.wait({task})
            execution = await self._repository.get_execution(execution_id)
            return execution is not None and execution.error_message == CANCELLED_MESSAGE

        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        if execution.status is not ExecutionStatus.RUNNING:
            return False
        # Walk owned elsewhere: closing the record stops it at its next resume point.
        state = _RunState(execution.id, execution.started_at, execution.context)
        return await self._finalize(state, ExecutionStatus.FAILED, CANCELLED_MESSAGE)

    async def wait(self, execution_id: str, timeout: Optional[float] = None) -> WorkflowExecution:
        """Wait for an execution's walk to finish and return the stored record."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        execution = await self._repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution

    async def shutdown(self) -> None:
        """Stop all walks, leaving their executions ``RUNNING`` for ``resume``."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Suspended {len(tasks)} running execution(s) on shutdown")

    def _spawn(self, state: _RunState, walk: Any) -> None:
        task = asyncio.create_task(self._run(state, walk), name=f"hrflow-{state.execution_id}")
        self._tasks[state.execution_id] = task
        task.add_done_callback(lambda _t, eid=state.execution_id: self._tasks.pop(eid, None))

    # ------------------------------------------------------------------
    # Walk
    async def _run(self, state: _RunState, walk: Any) -> None:
        try:
            status, error = await walk
        except asyncio.CancelledError:
            reason = self._cancel_reasons.pop(state.execution_id, None)
            if reason is None:
                raise
            await asyncio.shield(self._finalize(state, ExecutionStatus.FAILED, reason))
            return
        except _ExecutionClosed:
            self._cancel_reasons.pop(state.execution_id, None)
            logger.info(f"Execution {state.execution_id} was closed externally; stopping")
            return
        except Exception as e:
            logger.exception(f"Execution {state.execution_id} aborted by unexpected error")
            status, error = ExecutionStatus.FAILED, f"Internal error: {e}"
        finalizing = asyncio.ensure_future(self._finalize(state, status, error))
        try:
            await asyncio.shield(finalizing)
        except asyncio.CancelledError:
            # the walk already ended; let the record reach its terminal status
            self._cancel_reasons.pop(state.execution_id, None)
            await finalizing
            raise

    async def _walk_from_entry(
        self, state: _RunState, steps: List[WorkflowStep]
    ) -> Tuple[ExecutionStatus, Optional[str]]:
        try:
            graph = StepGraph(steps)
            entry = graph.entry_step()
        except GraphIntegrityError as e:
            return ExecutionStatus.FAILED, str(e)
        return await self._walk(state, graph, entry)

    async def _walk_from_token(
        self,
        state: _RunState,
        steps: List[WorkflowStep],
        current_step_id: Optional[str],
        logs: list[WorkflowStepLog],
    ) -> Tuple[ExecutionStatus, Optional[str]]:
        if current_step_id is None:
            return await self._walk_from_entry(state, steps)
        try:
            graph = StepGraph(steps)
            step = graph.get(current_step_id)
        except GraphIntegrityError as e:
            return ExecutionStatus.FAILED, str(e)

        trailing = []
        for log in reversed(logs):
            if log.step_id != step.id:
                break
            trailing.append(log)
            if log.status is StepLogStatus.COMPLETED:
                break
        if trailing and trailing[0].status is StepLogStatus.COMPLETED:
            # the step finished before the walk stopped; do not repeat its side effect
            if _carries_patch(step):
                state.context.update(trailing[0].output or {})
            return await self._walk(state, graph, step, known=(StepOutcome.SUCCESS, None))

        failures = len(trailing)
        if failures > step.retry_attempts:
            error = trailing[0].error_message
            if step.retry_attempts:
                error = f"{error} (retries exhausted after {failures} attempts)"
            return await self._walk(state, graph, step, known=(StepOutcome.FAILURE, error))
        return await self._walk(state, graph, step, prior_attempts=failures)

    async def _walk(
        self,
        state: _RunState,
        graph: StepGraph,
        step: Optional[WorkflowStep],
        known: Optional[StepResult] = None,
        prior_attempts: int = 0,
    ) -> Tuple[ExecutionStatus, Optional[str]]:
        limit = self._config.max_steps_per_execution
        while step is not None:
            if known is not None:
                outcome, error = known
                known = None
            else:
                if state.steps_taken >= limit:
                    return (
                        ExecutionStatus.FAILED,
                        f"Step limit of {limit} exceeded; the workflow may loop without exit",
                    )
                state.steps_taken += 1
                await self._save_progress(state, step)
                outcome, error = await self._run_step(state, step, prior_attempts)
                prior_attempts = 0

            try:
                next_step = graph.successor(step, outcome)
            except GraphIntegrityError as e:
                logger.error(f"Execution {state.execution_id}: {e}")
                return ExecutionStatus.FAILED, str(e)

            if outcome is StepOutcome.FAILURE:
                if next_step is None:
                    return ExecutionStatus.FAILED, error
                logger.info(
                    f"Execution {state.execution_id}: step {step.name} failed, "
                    f"following failure branch to {next_step.name}"
                )
            step = next_step
        return ExecutionStatus.COMPLETED, None

    async def _run_step(
        self, state: _RunState, step: WorkflowStep, prior_attempts: int = 0
    ) -> StepResult:
        """Attempt ``step`` until it succeeds or its retries are spent."""
        attempt = prior_attempts
        if prior_attempts:
            await self._retry_wait(state, step, prior_attempts)
        while True:
            attempt += 1
            outcome, error = await self._attempt(state, step, attempt)
            if outcome is StepOutcome.SUCCESS:
                return outcome, None
            if attempt > step.retry_attempts:
                if step.retry_attempts:
                    error = f"{error} (retries exhausted after {attempt} attempts)"
                return outcome, error
            logger.warning(
                f"Execution {state.execution_id}: step {step.name} attempt {attempt} "
                f"failed: {error}; {step.retry_attempts - attempt + 1} retries left"
            )
            await self._retry_wait(state, step, attempt)

    async def _attempt(self, state: _RunState, step: WorkflowStep, attempt: int) -> StepResult:
        started = utcnow()
        rendered: Dict[str, Any] = {}
        patch: Dict[str, Any] = {}
        output: Optional[Dict[str, Any]] = None
        error: Optional[str] = None
        try:
            instruction = compile_step(step)
            if isinstance(instruction, AdapterCall):
                rendered = render_config(instruction.config, state.context)
                result = await self._adapter.execute(
                    instruction.action_type, rendered, copy.deepcopy(state.context)
                )
                if result.success:
                    patch = dict(result.context_patch)
                    output = patch
                else:
                    error = result.error or f"{instruction.action_type} failed"
            elif isinstance(instruction, ConditionCheck):
                rendered = {"condition": instruction.expression}
                passed = conditions.evaluate(instruction.expression, state.context)
                output = {"result": passed}
                if not passed:
                    error = f"Condition not met: {instruction.expression}"
            elif isinstance(instruction, Delay):
                rendered = {"seconds": instruction.seconds}
                await self._suspend(state, step, instruction.seconds)
                output = {}
            else:
                raise StepExecutionError(step.id, f"Unhandled instruction {instruction!r}")
        except asyncio.CancelledError:
            # a shutdown leaves the attempt unlogged so resume re-runs it
            reason = self._cancel_reasons.get(state.execution_id)
            if reason is not None:
                await asyncio.shield(
                    self._append_log(state, step, attempt, started, rendered, None, reason)
                )
            raise
        except _ExecutionClosed:
            raise
        except Exception as e:
            logger.exception(f"Execution {state.execution_id}: step {step.name} raised")
            error = str(e) or type(e).__name__

        if error is None:
            await self._append_log(state, step, attempt, started, rendered, output, None)
            state.context.update(patch)
            return StepOutcome.SUCCESS, None
        await self._append_log(state, step, attempt, started, rendered, None, error)
        return StepOutcome.FAILURE, error

    # ------------------------------------------------------------------
    # Suspension
    async def _retry_wait(self, state: _RunState, step: WorkflowStep, attempt: int) -> None:
        delay = compute_backoff(
            attempt,
            step.retry_delay,
            multiplier=self._config.retry_backoff_multiplier,
            jitter=self._config.retry_jitter,
        )
        await self._suspend(state, step, delay)

    async def _suspend(self, state: _RunState, step: WorkflowStep, seconds: float) -> None:
        """Sleep on the execution's own task, persisting a resume token first."""
        now = utcnow()
        if state.resume_deadline is not None:
            deadline = state.resume_deadline
            if deadline.tzinfo is None:
                deadline = deadline.replace(tzinfo=now.tzinfo)
            seconds = max(0.0, (deadline - now).total_seconds())
            state.resume_deadline = None
        if self._config.max_delay_seconds is not None:
            seconds = min(seconds, self._config.max_delay_seconds)
        if seconds > 0:
            await self._save_progress(state, step, now + timedelta(seconds=seconds))
        await asyncio.sleep(seconds)
        await self._save_progress(state, step)

    # ------------------------------------------------------------------
    # Persistence helpers
    async def _save_progress(
        self, state: _RunState, step: WorkflowStep, resume_at: Optional[datetime] = None
    ) -> None:
        saved = await self._repository.update_execution_progress(
            state.execution_id, step.id, state.context, resume_at
        )
        if not saved:
            raise _ExecutionClosed(state.execution_id)

    async def _append_log(
        self,
        state: _RunState,
        step: WorkflowStep,
        attempt: int,
        started: datetime,
        rendered: Dict[str, Any],
        output: Optional[Dict[str, Any]],
        error: Optional[str],
    ) -> None:
        completed = utcnow()
        log = WorkflowStepLog(
            execution_id=state.execution_id,
            step_id=step.id,
            step_name=step.name,
            attempt=attempt,
            status=StepLogStatus.FAILED if error else StepLogStatus.COMPLETED,
            input=rendered,
            output=output,
            error_message=error,
            started_at=started,
            completed_at=completed,
            duration_ms=int((completed - started).total_seconds() * 1000),
        )
        if not await self._repository.append_step_log(log):
            raise _ExecutionClosed(state.execution_id)

    async def _finalize(
        self, state: _RunState, status: ExecutionStatus, error: Optional[str]
    ) -> bool:
        completed = utcnow()
        started = state.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=completed.tzinfo)
        finalized = await self._repository.finalize_execution(
            state.execution_id,
            status,
            completed,
            state.context,
            error_message=error if status is ExecutionStatus.FAILED else None,
            duration_ms=int((completed - started).total_seconds() * 1000),
        )
        if finalized:
            log = logger.info if status is ExecutionStatus.COMPLETED else logger.warning
            log(
                f"Execution {state.execution_id} finished {status.value}"
                + (f": {error}" if error and status is ExecutionStatus.FAILED else "")
            )
        else:
            logger.debug(f"Execution {state.execution_id} was already terminal")
        return finalized

"""Relational implementation of the workflow repository.

Backed by SQLModel tables on an async SQLAlchemy engine, so the same code
serves SQLite (``sqlite+aiosqlite://``) and PostgreSQL
(``postgresql+asyncpg://``).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, col

from ..contracts import (
    ExecutionStatus,
    TriggerKind,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepLog,
    WorkflowTemplate,
    utcnow,
)
from ..db.models import (
    WorkflowExecutionRow,
    WorkflowRow,
    WorkflowStepLogRow,
    WorkflowStepRow,
    WorkflowTemplateRow,
)
from .repository import WorkflowRepository

RUNNING = ExecutionStatus.RUNNING.value


def _row_data(record: Any) -> dict:
    """Column values for ``record``: JSON-safe, except datetimes stay native."""
    data = record.model_dump(mode="json")
    for key, value in record:
        if isinstance(value, datetime):
            data[key] = value
    return data


def _locked_execution_status(execution_id: str):
    """Select an execution's status, locking the row until the transaction ends."""
    return (
        select(WorkflowExecutionRow.status)
        .where(col(WorkflowExecutionRow.id) == execution_id)
        .with_for_update()
    )


class SQLWorkflowRepository(WorkflowRepository):
    """Persist workflow state in a relational database."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine = create_async_engine(
            database_url, echo=echo, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Schema management
    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            async with self._init_lock:
                if not self._initialized:
                    await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    # ------------------------------------------------------------------
    # Row conversion
    @staticmethod
    def _workflow(row: WorkflowRow) -> Workflow:
        return Workflow.model_validate(row.model_dump())

    @staticmethod
    def _step(row: WorkflowStepRow) -> WorkflowStep:
        return WorkflowStep.model_validate(row.model_dump())

    @staticmethod
    def _execution(row: WorkflowExecutionRow) -> WorkflowExecution:
        return WorkflowExecution.model_validate(row.model_dump())

    @staticmethod
    def _log(row: WorkflowStepLogRow) -> WorkflowStepLog:
        return WorkflowStepLog.model_validate(row.model_dump(exclude={"seq"}))

    @staticmethod
    def _template(row: WorkflowTemplateRow) -> WorkflowTemplate:
        return WorkflowTemplate.model_validate(row.model_dump())

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(self, workflow: Workflow) -> Workflow:
        row = WorkflowRow(**_row_data(workflow))
        async with self.session() as session:
            session.add(row)
            await session.commit()
        return workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow_id)
            return self._workflow(row) if row else None

    async def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        trigger: Optional[TriggerKind] = None,
    ) -> list[Workflow]:
        stmt = select(WorkflowRow)
        if status is not None:
            stmt = stmt.where(col(WorkflowRow.status) == WorkflowStatus(status).value)
        if trigger is not None:
            stmt = stmt.where(col(WorkflowRow.trigger) == TriggerKind(trigger).value)
        stmt = stmt.order_by(col(WorkflowRow.created_at))
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._workflow(r) for r in rows]

    async def update_workflow(self, workflow_id: str, **changes: Any) -> Workflow | None:
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow_id)
            if row is None:
                return None
            updated = Workflow.model_validate(
                {**row.model_dump(), **changes, "updated_at": utcnow()}
            )
            for key, value in _row_data(updated).items():
                if key in changes or key == "updated_at":
                    setattr(row, key, value)
            await session.commit()
        return updated

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self.session() as session:
            await session.execute(
                delete(WorkflowStepRow).where(col(WorkflowStepRow.workflow_id) == workflow_id)
            )
            result = await session.execute(
                delete(WorkflowRow).where(col(WorkflowRow.id) == workflow_id)
            )
            await session.commit()
        return result.rowcount > 0

    async def record_trigger(self, workflow_id: str, at: datetime) -> Workflow | None:
        stmt = (
            update(WorkflowRow)
            .where(col(WorkflowRow.id) == workflow_id)
            .values(
                execution_count=col(WorkflowRow.execution_count) + 1,
                last_executed=at,
                updated_at=at,
            )
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount == 0:
                return None
            row = await session.get(WorkflowRow, workflow_id)
            return self._workflow(row) if row else None

    # ------------------------------------------------------------------
    # Steps
    async def add_steps(self, steps: list[WorkflowStep]) -> list[WorkflowStep]:
        async with self.session() as session:
            for step in steps:
                session.add(WorkflowStepRow(**_row_data(step)))
            await session.commit()
        return [s.model_copy(deep=True) for s in steps]

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        async with self.session() as session:
            row = await session.get(WorkflowStepRow, step_id)
            return self._step(row) if row else None

    async def list_steps(self, workflow_id: str) -> list[WorkflowStep]:
        stmt = (
            select(WorkflowStepRow)
            .where(col(WorkflowStepRow.workflow_id) == workflow_id)
            .order_by(col(WorkflowStepRow.step_number))
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._step(r) for r in rows]

    async def update_step(self, step_id: str, **changes: Any) -> WorkflowStep | None:
        async with self.session() as session:
            row = await session.get(WorkflowStepRow, step_id)
            if row is None:
                return None
            updated = WorkflowStep.model_validate({**row.model_dump(), **changes})
            for key, value in _row_data(updated).items():
                if key in changes:
                    setattr(row, key, value)
            await session.commit()
        return updated

    async def delete_step(self, step_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(
                delete(WorkflowStepRow).where(col(WorkflowStepRow.id) == step_id)
            )
            await session.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        data = _row_data(execution)
        async with self.session() as session:
            session.add(WorkflowExecutionRow(**data))
            await session.commit()
        return execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        async with self.session() as session:
            row = await session.get(WorkflowExecutionRow, execution_id)
            return self._execution(row) if row else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        stmt = select(WorkflowExecutionRow)
        if workflow_id is not None:
            stmt = stmt.where(col(WorkflowExecutionRow.workflow_id) == workflow_id)
        stmt = stmt.order_by(col(WorkflowExecutionRow.started_at).desc())
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._execution(r) for r in rows]

    async def update_execution_progress(
        self,
        execution_id: str,
        current_step_id: Optional[str],
        context: dict,
        resume_at: Optional[datetime] = None,
    ) -> bool:
        stmt = (
            update(WorkflowExecutionRow)
            .where(
                col(WorkflowExecutionRow.id) == execution_id,
                col(WorkflowExecutionRow.status) == RUNNING,
            )
            .values(current_step_id=current_step_id, context=context, resume_at=resume_at)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        completed_at: datetime,
        context: dict,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> bool:
        stmt = (
            update(WorkflowExecutionRow)
            .where(
                col(WorkflowExecutionRow.id) == execution_id,
                col(WorkflowExecutionRow.status) == RUNNING,
            )
            .values(
                status=ExecutionStatus(status).value,
                completed_at=completed_at,
                context=context,
                error_message=error_message,
                duration_ms=duration_ms,
                resume_at=None,
            )
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Step logs
    async def append_step_log(self, log: WorkflowStepLog) -> bool:
        data = _row_data(log)
        async with self.session() as session:
            async with session.begin():
                status = (
                    await session.execute(_locked_execution_status(log.execution_id))
                ).scalar_one_or_none()
                if status != RUNNING:
                    return False
                session.add(WorkflowStepLogRow(**data))
        return True

    async def list_step_logs(self, execution_id: str) -> list[WorkflowStepLog]:
        stmt = (
            select(WorkflowStepLogRow)
            .where(col(WorkflowStepLogRow.execution_id) == execution_id)
            .order_by(col(WorkflowStepLogRow.seq))
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._log(r) for r in rows]

    # ------------------------------------------------------------------
    # Templates
    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        data = _row_data(template)
        async with self.session() as session:
            session.add(WorkflowTemplateRow(**data))
            await session.commit()
        return template.model_copy(deep=True)

    async def get_template(self, template_id: str) -> WorkflowTemplate | None:
        async with self.session() as session:
            row = await session.get(WorkflowTemplateRow, template_id)
            return self._template(row) if row else None

    async def list_templates(self, active_only: bool = False) -> list[WorkflowTemplate]:
        stmt = select(WorkflowTemplateRow)
        if active_only:
            stmt = stmt.where(col(WorkflowTemplateRow.is_active).is_(True))
        stmt = stmt.order_by(col(WorkflowTemplateRow.name))
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._template(r) for r in rows]

    async def increment_template_usage(self, template_id: str) -> None:
        stmt = (
            update(WorkflowTemplateRow)
            .where(col(WorkflowTemplateRow.id) == template_id)
            .values(usage_count=col(WorkflowTemplateRow.usage_count) + 1)
        )
        async with self.session() as session:
            await session.execute(stmt)
            await session.commit()

"""Command line interface for operating hrflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
import yaml

from .adapters import LoggingActionAdapter
from .config import HrflowConfig, load_config
from .contracts import WorkflowStatus
from .errors import HrflowError
from .persistence import SQLWorkflowRepository, get_repository
from .service import WorkflowService

T = TypeVar("T")

app = typer.Typer(help="CLI for hrflow HR workflow automation")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")
execution_app = typer.Typer(help="Commands for inspecting executions")
template_app = typer.Typer(help="Commands for workflow templates")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(template_app, name="template")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, help="Path to a YAML config file"),
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    """hrflow CLI entry point."""
    settings = load_config(str(config) if config else None)
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config is not None:
        get_repository(config=settings)
    ctx.obj = settings


def _run(ctx: typer.Context, operation: Callable[[WorkflowService], Awaitable[T]]) -> T:
    """Run ``operation`` against a fresh service inside one event loop."""
    settings: HrflowConfig = ctx.obj or load_config()

    async def runner() -> T:
        repository = get_repository()
        service = WorkflowService(repository, LoggingActionAdapter(), settings.engine)
        try:
            return await operation(service)
        finally:
            await service.shutdown()
            if isinstance(repository, SQLWorkflowRepository):
                await repository.dispose()

    try:
        return asyncio.run(runner())
    except HrflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_context(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        typer.secho(f"Invalid JSON context: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.secho("Context must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _echo_execution(execution: Any, logs: list) -> None:
    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    typer.echo(f"Workflow: {execution.workflow_id}")
    typer.echo(f"Triggered by: {execution.triggered_by} ({execution.trigger_source.value})")
    if execution.duration_ms is not None:
        typer.echo(f"Duration: {execution.duration_ms} ms")
    if execution.error_message:
        typer.echo(f"Error: {execution.error_message}")
    if execution.resume_at:
        typer.echo(f"Suspended until: {execution.resume_at}")
    for log in logs:
        line = f"- {log.step_name} (attempt {log.attempt}): {log.status.value}"
        if log.error_message:
            line += f" - {log.error_message}"
        typer.echo(line)


# ----------------------------------------------------------------------
# Workflows
@workflow_app.command("list")
def workflow_list(
    ctx: typer.Context,
    status: Optional[WorkflowStatus] = typer.Option(None, help="Only show this status"),
) -> None:
    """
    List workflows with their status and trigger kind.

    Example:
        hrflow workflow list --status ACTIVE
    """
    workflows = _run(ctx, lambda service: service.list_workflows(status=status))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.name}\t{wf.status.value}\t{wf.trigger.value}")


@workflow_app.command("show")
def workflow_show(ctx: typer.Context, workflow_id: str) -> None:
    """Show a workflow, its steps and their successor edges."""

    async def operation(service: WorkflowService):
        return await service.get_workflow(workflow_id), await service.list_steps(workflow_id)

    wf, steps = _run(ctx, operation)
    typer.echo(f"Workflow {wf.id}: {wf.name} [{wf.status.value}]")
    typer.echo(f"Type: {wf.type.value}  Trigger: {wf.trigger.value}")
    if wf.trigger_config:
        typer.echo(f"Trigger config: {json.dumps(wf.trigger_config)}")
    typer.echo(f"Executions: {wf.execution_count}  Last executed: {wf.last_executed or '-'}")
    numbers = {s.id: s.step_number for s in steps}
    for step in steps:
        on_success = numbers.get(step.next_step_on_success, "end")
        on_failure = numbers.get(step.next_step_on_failure, "fail")
        typer.echo(
            f"{step.step_number}. {step.name} [{step.type.value}] "
            f"-> success: {on_success}, failure: {on_failure}"
        )


@workflow_app.command("create")
def workflow_create(
    ctx: typer.Context,
    definition_path: Path,
    created_by: str = typer.Option("system", help="Recorded as the workflow's creator"),
    activate: bool = typer.Option(False, help="Create the workflow as ACTIVE"),
) -> None:
    """
    Create a workflow from a YAML or JSON definition file.

    Example:
        hrflow workflow create ./onboarding.yaml --activate
    """
    if not definition_path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    definition = yaml.safe_load(definition_path.read_text()) or {}
    status = WorkflowStatus.ACTIVE if activate else WorkflowStatus.DRAFT
    wf = _run(
        ctx,
        lambda service: service.create_workflow(definition, created_by=created_by, status=status),
    )
    typer.echo(f"Created workflow {wf.id} ({wf.name})")


@workflow_app.command("status")
def workflow_status(ctx: typer.Context, workflow_id: str, status: WorkflowStatus) -> None:
    """Move a workflow to DRAFT, ACTIVE, PAUSED or ARCHIVED."""
    wf = _run(ctx, lambda service: service.set_status(workflow_id, status))
    typer.echo(f"Workflow {wf.id} is now {wf.status.value}")


@workflow_app.command("trigger")
def workflow_trigger(
    ctx: typer.Context,
    workflow_id: str,
    context: Optional[str] = typer.Option(None, help="JSON object passed as execution context"),
    actor: Optional[str] = typer.Option(None, help="Who triggered the run"),
    wait: bool = typer.Option(False, help="Wait for the execution to finish"),
) -> None:
    """
    Manually trigger a workflow using the dry-run action adapter.

    Without --wait the run is suspended when the command exits and stays
    RUNNING until resumed with 'hrflow execution resume'.

    Example:
        hrflow workflow trigger <id> --context '{"employee": {"email": "a@b.c"}}' --wait
    """
    payload = _parse_context(context)

    async def operation(service: WorkflowService):
        execution_id = await service.trigger_execution(workflow_id, payload, actor=actor)
        if not wait:
            return execution_id, None, []
        execution = await service.wait_for_execution(execution_id)
        return execution_id, execution, await service.list_step_logs(execution_id)

    execution_id, execution, logs = _run(ctx, operation)
    typer.echo(f"Execution ID: {execution_id}")
    if execution is not None:
        _echo_execution(execution, logs)


# ----------------------------------------------------------------------
# Executions
@execution_app.command("list")
def execution_list(
    ctx: typer.Context,
    workflow_id: Optional[str] = typer.Option(None, "--workflow", help="Filter by workflow id"),
) -> None:
    """List executions, newest first."""
    executions = _run(ctx, lambda service: service.list_executions(workflow_id))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(f"{ex.id}\t{ex.workflow_id}\t{ex.status.value}\t{ex.started_at}")


@execution_app.command("show")
def execution_show(ctx: typer.Context, execution_id: str) -> None:
    """Show an execution and the log of every step attempt."""

    async def operation(service: WorkflowService):
        return (
            await service.get_execution(execution_id),
            await service.list_step_logs(execution_id),
        )

    execution, logs = _run(ctx, operation)
    _echo_execution(execution, logs)


@execution_app.command("cancel")
def execution_cancel(ctx: typer.Context, execution_id: str) -> None:
    """Cancel a running execution."""
    if _run(ctx, lambda service: service.cancel_execution(execution_id)):
        typer.echo(f"Execution {execution_id} cancelled")
    else:
        typer.echo(f"Execution {execution_id} already finished")


@execution_app.command("resume")
def execution_resume(
    ctx: typer.Context,
    execution_id: str,
    wait: bool = typer.Option(True, help="Wait for the execution to finish"),
) -> None:
    """Continue a suspended execution from its last recorded step."""

    async def operation(service: WorkflowService):
        if not await service.resume_execution(execution_id):
            return None
        if wait:
            await service.wait_for_execution(execution_id)
        return await service.get_execution(execution_id)

    execution = _run(ctx, operation)
    if execution is None:
        typer.echo(f"Execution {execution_id} already finished")
        return
    typer.echo(f"Execution {execution.id}: {execution.status.value}")


# ----------------------------------------------------------------------
# Templates
@template_app.command("list")
def template_list(ctx: typer.Context) -> None:
    """List stored templates with their usage counts."""
    templates = _run(ctx, lambda service: service.list_templates())
    if not templates:
        typer.echo("No templates found. Run 'hrflow template seed' to add the built-ins.")
        return
    for t in templates:
        typer.echo(f"{t.id}\t{t.name}\t{t.category.value}\tused {t.usage_count}x")


@template_app.command("seed")
def template_seed(ctx: typer.Context) -> None:
    """Store the built-in HR templates."""
    created = _run(ctx, lambda service: service.seed_templates())
    typer.echo(f"Seeded {len(created)} template(s)")


@template_app.command("instantiate")
def template_instantiate(
    ctx: typer.Context,
    template_id: str,
    name: Optional[str] = typer.Option(None, help="Name for the new workflow"),
    created_by: str = typer.Option("system", help="Recorded as the workflow's creator"),
) -> None:
    """
    Create a new workflow from a template.

    Example:
        hrflow template instantiate new-hire-onboarding --name "Onboarding - Sales"
    """
    overrides: dict[str, Any] = {"created_by": created_by}
    if name:
        overrides["name"] = name
    wf = _run(ctx, lambda service: service.instantiate_from_template(template_id, overrides))
    typer.echo(f"Created workflow {wf.id} ({wf.name}) from template {template_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()

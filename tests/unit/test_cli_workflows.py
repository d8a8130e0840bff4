import asyncio

from typer.testing import CliRunner

import hrflow.persistence as persistence
from hrflow.cli import app
from hrflow.contracts import WorkflowStatus
from hrflow.persistence import InMemoryWorkflowRepository
from hrflow.service import WorkflowService

ONBOARDING_YAML = """\
name: Sales Onboarding
type: ONBOARDING
steps:
  - key: welcome
    step_number: 1
    name: Send Welcome Email
    type: NOTIFICATION
    action_type: SEND_EMAIL
    config:
      to: "{{ employee.email }}"
    next_step_on_success: accounts
  - key: accounts
    step_number: 2
    name: IT Setup
    type: ACTION
    action_type: CREATE_ACCOUNTS
"""


def _setup_repo() -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    return repo


def _create_workflow(repo, **overrides):
    definition = {
        "name": "Offboarding",
        "steps": [
            {"step_number": 1, "name": "Revoke Access", "type": "ACTION",
             "action_type": "REVOKE_ACCESS", "next_step_on_success": "2"},
            {"step_number": 2, "name": "Archive Records", "type": "ACTION",
             "action_type": "ARCHIVE_EMPLOYEE"},
        ],
        **overrides,
    }
    return asyncio.run(WorkflowService(repo).create_workflow(definition, status=WorkflowStatus.ACTIVE))


def test_workflow_list_shows_workflows():
    repo = _setup_repo()
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "No workflows found" in result.stdout

    wf = _create_workflow(repo)
    result = runner.invoke(app, ["workflow", "list", "--status", "ACTIVE"])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert wf.id in result.stdout
    assert "Offboarding" in result.stdout


def test_workflow_show_details_and_missing():
    repo = _setup_repo()
    wf = _create_workflow(repo)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", wf.id])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "1. Revoke Access [ACTION] -> success: 2, failure: fail" in result.stdout
    assert "2. Archive Records [ACTION] -> success: end, failure: fail" in result.stdout

    result_missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert result_missing.exit_code == 1
    assert "Workflow missing-id not found" in result_missing.stdout


def test_workflow_create_from_yaml(tmp_path):
    repo = _setup_repo()
    path = tmp_path / "onboarding.yaml"
    path.write_text(ONBOARDING_YAML)

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "create", str(path), "--created-by", "hr-admin", "--activate"])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "Sales Onboarding" in result.stdout

    (wf,) = asyncio.run(repo.list_workflows())
    assert wf.status is WorkflowStatus.ACTIVE
    assert wf.created_by == "hr-admin"
    steps = asyncio.run(repo.list_steps(wf.id))
    assert steps[0].next_step_on_success == steps[1].id

    result_missing = runner.invoke(app, ["workflow", "create", str(tmp_path / "nope.yaml")])
    assert result_missing.exit_code == 1


def test_workflow_create_rejects_invalid_definition(tmp_path):
    repo = _setup_repo()
    path = tmp_path / "broken.yaml"
    path.write_text("name: Broken\nsteps:\n  - step_number: 1\n    name: a\n    type: ACTION\n")

    result = CliRunner().invoke(app, ["workflow", "create", str(path)])
    assert result.exit_code == 1
    assert asyncio.run(repo.list_workflows()) == []


def test_workflow_trigger_and_execution_show():
    repo = _setup_repo()
    wf = _create_workflow(repo)

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["workflow", "trigger", wf.id, "--context", '{"employee_id": 42}', "--actor", "hr-admin", "--wait"],
    )
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "COMPLETED" in result.stdout
    assert "Triggered by: hr-admin (MANUAL)" in result.stdout

    (execution,) = asyncio.run(repo.list_executions(wf.id))
    assert execution.context["employee_id"] == 42

    result = runner.invoke(app, ["execution", "show", execution.id])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "- Revoke Access (attempt 1): COMPLETED" in result.stdout
    assert "- Archive Records (attempt 1): COMPLETED" in result.stdout

    result = runner.invoke(app, ["execution", "list", "--workflow", wf.id])
    assert execution.id in result.stdout

    result = runner.invoke(app, ["execution", "cancel", execution.id])
    assert "already finished" in result.stdout


def test_workflow_trigger_rejects_bad_context_and_archived():
    repo = _setup_repo()
    wf = _create_workflow(repo)
    runner = CliRunner()

    result = runner.invoke(app, ["workflow", "trigger", wf.id, "--context", "[1, 2]"])
    assert result.exit_code == 1
    assert "Context must be a JSON object" in result.stdout

    result = runner.invoke(app, ["workflow", "status", wf.id, "ARCHIVED"])
    assert result.exit_code == 0, f"Output: {result.stdout}"
    result = runner.invoke(app, ["workflow", "trigger", wf.id])
    assert result.exit_code == 1
    assert "archived" in result.stdout
    assert asyncio.run(repo.list_executions(wf.id)) == []


def test_template_seed_list_and_instantiate():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["template", "list"])
    assert "hrflow template seed" in result.stdout

    result = runner.invoke(app, ["template", "seed"])
    assert "Seeded 5 template(s)" in result.stdout
    result = runner.invoke(app, ["template", "seed"])
    assert "Seeded 0 template(s)" in result.stdout

    result = runner.invoke(
        app,
        ["template", "instantiate", "employee-offboarding", "--name", "Offboarding - Sales",
         "--created-by", "hr-admin"],
    )
    assert result.exit_code == 0, f"Output: {result.stdout}"
    assert "Offboarding - Sales" in result.stdout

    result = runner.invoke(app, ["template", "list"])
    assert "employee-offboarding" in result.stdout
    assert "used 1x" in result.stdout

    (wf,) = asyncio.run(repo.list_workflows())
    assert wf.created_by == "hr-admin"
    assert len(asyncio.run(repo.list_steps(wf.id))) == 5

    result = runner.invoke(app, ["template", "instantiate", "missing"])
    assert result.exit_code == 1
    assert "Template missing not found" in result.stdout

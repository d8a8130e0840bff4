"""Built-in HR workflow templates and definition instantiation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .contracts import (
    StepDefinition,
    StepType,
    TemplateCategory,
    TriggerKind,
    WorkflowDefinition,
    WorkflowStep,
    WorkflowTemplate,
    WorkflowType,
    new_id,
)


def build_steps(definition: WorkflowDefinition, workflow_id: str) -> List[WorkflowStep]:
    """Materialize ``definition``'s steps for ``workflow_id``.

    Every step gets a fresh id and edges are rewritten from definition keys
    to those ids, so one definition can be instantiated many times.
    """
    ids = {step.key: new_id() for step in definition.steps}
    return [
        WorkflowStep(
            id=ids[step.key],
            workflow_id=workflow_id,
            step_number=step.step_number,
            name=step.name,
            type=step.type,
            action_type=step.action_type,
            config=dict(step.config),
            conditions=step.conditions,
            next_step_on_success=ids.get(step.next_step_on_success),
            next_step_on_failure=ids.get(step.next_step_on_failure),
            retry_attempts=step.retry_attempts,
            retry_delay=step.retry_delay,
        )
        for step in definition.steps
    ]


def _step(
    number: int,
    name: str,
    kind: StepType,
    action_type: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    on_success: Optional[int] = None,
    on_failure: Optional[int] = None,
    **extra: Any,
) -> StepDefinition:
    return StepDefinition(
        step_number=number,
        name=name,
        type=kind,
        action_type=action_type,
        config=config or {},
        next_step_on_success=str(on_success) if on_success is not None else None,
        next_step_on_failure=str(on_failure) if on_failure is not None else None,
        **extra,
    )


def builtin_templates() -> List[WorkflowTemplate]:
    """Return fresh copies of the templates shipped with hrflow."""
    return [
        WorkflowTemplate(
            id="new-hire-onboarding",
            name="New Hire Onboarding",
            category=TemplateCategory.ONBOARDING,
            description=(
                "Complete onboarding workflow for new employees including document "
                "collection, training assignments, and equipment setup"
            ),
            definition=WorkflowDefinition(
                name="New Hire Onboarding",
                type=WorkflowType.ONBOARDING,
                trigger=TriggerKind.MANUAL,
                steps=[
                    _step(1, "Send Welcome Email", StepType.NOTIFICATION, "SEND_EMAIL",
                          {"template": "welcome_email", "to": "{{ employee.email }}"}, on_success=2),
                    _step(2, "Collect Documents", StepType.ACTION, "COLLECT_DOCUMENTS",
                          {"documents": ["I9", "W4", "Direct Deposit"]}, on_success=3),
                    _step(3, "Wait for Documents", StepType.DELAY, None,
                          {"duration": 48, "unit": "hours"}, on_success=4),
                    _step(4, "Manager Approval", StepType.APPROVAL, None,
                          {"approver": "manager"}, on_success=5),
                    _step(5, "IT Setup", StepType.ACTION, "CREATE_ACCOUNTS",
                          {"systems": ["email", "slack", "github"]}, on_success=6,
                          retry_attempts=2, retry_delay=30),
                    _step(6, "Schedule Training", StepType.ACTION, "SCHEDULE_MEETING",
                          {"type": "training", "duration": 60}),
                ],
            ),
        ),
        WorkflowTemplate(
            id="candidate-screening",
            name="Candidate Screening Process",
            category=TemplateCategory.RECRUITMENT,
            description=(
                "Automated candidate screening workflow with initial review, phone "
                "screening, and interview scheduling"
            ),
            definition=WorkflowDefinition(
                name="Candidate Screening Process",
                type=WorkflowType.RECRUITMENT,
                trigger=TriggerKind.EVENT,
                trigger_config={"event": "candidate_applied"},
                steps=[
                    _step(1, "AI Resume Screening", StepType.ACTION, "AI_SCREEN",
                          {"criteria": "job_requirements"}, on_success=2),
                    _step(2, "Check Qualifications", StepType.CONDITION, None,
                          {"condition": "score > 70"}, on_success=4, on_failure=3),
                    _step(3, "Send Rejection", StepType.NOTIFICATION, "SEND_EMAIL",
                          {"template": "rejection_email"}),
                    _step(4, "Schedule Phone Screen", StepType.ACTION, "SCHEDULE_INTERVIEW",
                          {"type": "phone_screen"}, on_success=5),
                    _step(5, "Send Interview Invite", StepType.NOTIFICATION, "SEND_EMAIL",
                          {"template": "interview_invite"}),
                ],
            ),
        ),
        WorkflowTemplate(
            id="quarterly-review",
            name="Quarterly Performance Review",
            category=TemplateCategory.PERFORMANCE,
            description=(
                "Automated quarterly performance review process with self-assessment "
                "and manager review"
            ),
            definition=WorkflowDefinition(
                name="Quarterly Performance Review",
                type=WorkflowType.PERFORMANCE,
                trigger=TriggerKind.SCHEDULED,
                trigger_config={"cron": "0 0 1 */3 *"},
                steps=[
                    _step(1, "Send Self-Assessment", StepType.NOTIFICATION, "SEND_FORM",
                          {"form": "self_assessment"}, on_success=2),
                    _step(2, "Wait for Response", StepType.DELAY, None,
                          {"duration": 7, "unit": "days"}, on_success=3),
                    _step(3, "Manager Review", StepType.APPROVAL, None,
                          {"approver": "manager", "form": "performance_review"}, on_success=4),
                    _step(4, "Schedule 1-on-1", StepType.ACTION, "SCHEDULE_MEETING",
                          {"type": "review_meeting"}, on_success=5),
                    _step(5, "Update Records", StepType.ACTION, "UPDATE_EMPLOYEE",
                          {"fields": ["performance_score", "last_review"]}),
                ],
            ),
        ),
        WorkflowTemplate(
            id="compliance-training",
            name="Annual Compliance Training",
            category=TemplateCategory.COMPLIANCE,
            description="Ensure all employees complete required annual compliance training",
            definition=WorkflowDefinition(
                name="Annual Compliance Training",
                type=WorkflowType.DOCUMENT,
                trigger=TriggerKind.SCHEDULED,
                trigger_config={"cron": "0 0 1 1 *"},
                steps=[
                    _step(1, "Assign Training", StepType.ACTION, "ASSIGN_TRAINING",
                          {"courses": ["harassment", "safety", "ethics"]}, on_success=2),
                    _step(2, "Send Notification", StepType.NOTIFICATION, "SEND_EMAIL",
                          {"template": "training_assigned"}, on_success=3),
                    _step(3, "First Reminder", StepType.DELAY, None,
                          {"duration": 7, "unit": "days"}, on_success=4),
                    _step(4, "Check Completion", StepType.CONDITION, None,
                          {"condition": "training_completed"}, on_failure=5),
                    _step(5, "Escalate to Manager", StepType.NOTIFICATION, "NOTIFY_MANAGER",
                          {"message": "Employee has not completed training"}),
                ],
            ),
        ),
        WorkflowTemplate(
            id="employee-offboarding",
            name="Employee Offboarding",
            category=TemplateCategory.OFFBOARDING,
            description=(
                "Complete offboarding process including access revocation and exit interview"
            ),
            definition=WorkflowDefinition(
                name="Employee Offboarding",
                type=WorkflowType.CUSTOM,
                trigger=TriggerKind.MANUAL,
                steps=[
                    _step(1, "Schedule Exit Interview", StepType.ACTION, "SCHEDULE_MEETING",
                          {"type": "exit_interview"}, on_success=2),
                    _step(2, "Collect Equipment", StepType.ACTION, "CREATE_TASK",
                          {"task": "collect_equipment", "assignee": "it_team"}, on_success=3),
                    _step(3, "Revoke Access", StepType.ACTION, "REVOKE_ACCESS",
                          {"systems": ["email", "slack", "github", "building"]}, on_success=4),
                    _step(4, "Final Payroll", StepType.ACTION, "PROCESS_PAYROLL",
                          {"type": "final_payment"}, on_success=5),
                    _step(5, "Archive Records", StepType.ACTION, "ARCHIVE_EMPLOYEE",
                          {"retention": "7_years"}),
                ],
            ),
        ),
    ]

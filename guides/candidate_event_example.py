"""Start recruiting workflows from candidate pipeline moves."""

import asyncio

from hrflow import TriggerKind, WorkflowService, WorkflowStatus
from hrflow.persistence import InMemoryWorkflowRepository


async def main():
    service = WorkflowService(InMemoryWorkflowRepository())

    await service.create_workflow(
        {
            "name": "Offer Accepted",
            "type": "RECRUITMENT",
            "trigger": TriggerKind.EVENT,
            "trigger_config": {"event": "candidate_stage_change", "to_stage": "HIRED"},
            "steps": [
                {"step_number": 1, "name": "Notify Recruiter", "type": "NOTIFICATION",
                 "action_type": "SEND_EMAIL", "config": {"template": "candidate_hired"},
                 "next_step_on_success": "2"},
                {"step_number": 2, "name": "Create Employee Record", "type": "ACTION",
                 "action_type": "CREATE_EMPLOYEE"},
            ],
        },
        status=WorkflowStatus.ACTIVE,
    )

    # Only the move to HIRED matches the trigger config
    ignored = await service.dispatcher.candidate_stage_changed("cand-1", "INTERVIEW", "SCREENING")
    started = await service.dispatcher.candidate_stage_changed("cand-1", "HIRED", "OFFER")
    print(f"📋 Interview move started {len(ignored)} execution(s)")

    for execution_id in started:
        execution = await service.wait_for_execution(execution_id)
        print(f"✅ {execution.id}: {execution.status.value} context={execution.context}")


if __name__ == "__main__":
    asyncio.run(main())

"""Run the built-in onboarding template against in-process handlers."""

import asyncio
import logging

from hrflow import AdapterRegistry, EngineConfig, LoggingActionAdapter, WorkflowService
from hrflow.persistence import InMemoryWorkflowRepository

registry = AdapterRegistry(fallback=LoggingActionAdapter())


@registry.handler("SEND_EMAIL")
async def send_email(config, context):
    print(f"📧 {config.get('template')} -> {config.get('to')}")


@registry.handler("CREATE_ACCOUNTS")
async def create_accounts(config, context):
    username = context["employee"]["email"].split("@")[0]
    return {"accounts": {system: username for system in config["systems"]}}


async def main():
    logging.basicConfig(level=logging.INFO)

    # Delays are capped so the 48 hour document wait finishes immediately
    service = WorkflowService(
        InMemoryWorkflowRepository(), registry, EngineConfig(max_delay_seconds=1)
    )
    await service.seed_templates()
    workflow = await service.instantiate_from_template(
        "new-hire-onboarding", {"name": "Onboarding - Engineering"}
    )

    execution_id = await service.trigger_execution(
        workflow.id,
        {"employee": {"name": "Ada Lovelace", "email": "ada@example.com"}},
        actor="hr-admin",
    )
    execution = await service.wait_for_execution(execution_id)

    print(f"✅ Execution {execution.id} finished {execution.status.value}")
    for log in await service.list_step_logs(execution_id):
        print(f"  {log.step_name}: {log.status.value}")
    print(f"🔑 Accounts: {execution.context.get('accounts')}")


if __name__ == "__main__":
    asyncio.run(main())

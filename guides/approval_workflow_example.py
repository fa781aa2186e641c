"""Approval workflow example: a simulated approver signals every scheduled activity."""

import asyncio
from pathlib import Path

from waystage import ActivitySignal, WorkflowRuntime, get_repository, load_blueprint

BLUEPRINT = Path(__file__).with_name("approval_blueprint.yaml")


async def approver(runtime: WorkflowRuntime, instance_id: str) -> None:
    """Approve every activity as soon as the scheduler is waiting on it."""
    while instance_id in runtime.active_instances:
        run = runtime.get_run(instance_id)
        for code in run.scheduler.pending_waits:
            print(f"Approving {code}")
            runtime.relay.deliver(
                ActivitySignal(instance_id=instance_id, activity_code=code, approval_status=1)
            )
        await asyncio.sleep(0.05)


async def main():
    blueprint = load_blueprint(BLUEPRINT)
    runtime = WorkflowRuntime(get_repository(), poll_interval=0.1, wake_on_signal=True)

    instance_id = await runtime.start_workflow(blueprint)
    print(f"Started workflow {instance_id}")

    approve = asyncio.create_task(approver(runtime, instance_id))
    result = await runtime.wait_for(instance_id)
    await approve

    for line in result.outputs:
        print(line)
    status = await runtime.get_status(instance_id)
    print(status.model_dump_json(by_alias=True, indent=2))


if __name__ == "__main__":
    asyncio.run(main())

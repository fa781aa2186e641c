import asyncio

import pytest

from waystage import ActivitySignal, WorkflowRuntime
from waystage.persistence import SQLiteInstanceRepository
from waystage.transports.inmemory import InMemoryTransport


async def _wait_until(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_approval_workflow_end_to_end(tmp_path, approval_blueprint):
    repo = SQLiteInstanceRepository(tmp_path / "wf.db")
    runtime = WorkflowRuntime(repo, poll_interval=0.01)
    transport = InMemoryTransport(poll_delay=0.005)
    listener = asyncio.create_task(runtime.listener(transport, topic="signals").start())

    instance_id = await runtime.start_workflow(approval_blueprint)
    scheduler = runtime.get_run(instance_id).scheduler

    async def signal(code: str, status: int) -> None:
        await transport.publish(
            "signals",
            ActivitySignal(instance_id=instance_id, activity_code=code, approval_status=status),
        )

    async def approve(code: str) -> None:
        await _wait_until(lambda: code in scheduler.pending_waits)
        await signal(code, 1)

    for code in ["SimpleOne", "SimpleTwo", "SimpleThree", "Simple5", "Simple4"]:
        await approve(code)

    # first assignment is rejected, then re-armed and approved
    await _wait_until(lambda: "AssignFOUser" in scheduler.pending_waits)
    await signal("AssignFOUser", 0)
    await _wait_until(lambda: "AssignFOUser" not in scheduler.pending_waits)
    await signal("AssignFOUser", 2)
    await approve("AssignFOUser")

    for code in ["AcceptWorkflow", "ASSIGNUSER", "ASSIGNROLE"]:
        await approve(code)

    result = await asyncio.wait_for(runtime.wait_for(instance_id), timeout=3)
    listener.cancel()
    await asyncio.gather(listener, return_exceptions=True)

    assert result.status == "completed"
    assert result.outputs[-1] == "There are no activities left to schedule."
    assert len(result.outputs) == 11
    assert result.outputs.count("Assign FO User has been scheduled.") == 2

    status = await runtime.get_status(instance_id)
    assert status.all_activities_completed is True
    assert status.current_stage == "Assign User 2"

    record = await repo.get_instance(instance_id)
    assert record.status == "completed"
    assign_history = [h.status for h in record.history if h.activity_code == "AssignFOUser"]
    assert assign_history == ["SCHEDULED", "FAILED", "PENDING", "SCHEDULED", "COMPLETED"]
    assert {h.stage for h in record.history} == {"Simple Activity", "ASSIGN FO", "Assign User 2"}

"""Scheduling loop tests."""

import asyncio

import pytest

from waystage.actor import InstanceActor
from waystage.constants import COMPLETION_MESSAGE
from waystage.contracts import (
    ActivityInstance,
    ActivityRef,
    ActivityStatus,
    Operation,
    SignalOutcome,
)
from waystage.persistence import InMemoryInstanceRepository
from waystage.scheduler import WorkflowScheduler


async def eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def repo():
    return InMemoryInstanceRepository()


@pytest.mark.asyncio
async def test_run_schedules_ready_activities_once(repo, chain_blueprint):
    actor = InstanceActor("wf-1", repo)
    scheduler = WorkflowScheduler(actor, repo, poll_interval=0.01)
    cancel = asyncio.Event()

    task = asyncio.create_task(scheduler.run(chain_blueprint, cancel))
    await eventually(lambda: scheduler.pending_waits == ["X"])
    # let several polls pass; X must not be scheduled again
    await asyncio.sleep(0.05)
    cancel.set()
    result = await task

    assert result.status == "cancelled"
    assert result.outputs == ["Activity X has been scheduled."]
    instance = await actor.snapshot()
    assert instance.stages[0].activities[0].status == ActivityStatus.SCHEDULED

    record = await repo.get_instance("wf-1")
    assert record.status == "cancelled"
    assert record.last_polled_at is not None
    await actor.stop()


@pytest.mark.asyncio
async def test_run_completes_when_signals_arrive(repo, chain_blueprint):
    actor = InstanceActor("wf-1", repo)
    scheduler = WorkflowScheduler(actor, repo, poll_interval=0.01)
    task = asyncio.create_task(scheduler.run(chain_blueprint))

    await eventually(lambda: scheduler.pending_waits == ["X"])
    await actor.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="X"))
    scheduler.resolve_wait("X", SignalOutcome.APPROVE)

    await eventually(lambda: scheduler.pending_waits == ["Y"])
    await actor.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="Y"))

    result = await asyncio.wait_for(task, timeout=2)
    assert result.status == "completed"
    assert result.outputs == [
        "Activity X has been scheduled.",
        "Activity Y has been scheduled.",
        COMPLETION_MESSAGE,
    ]
    record = await repo.get_instance("wf-1")
    assert record.status == "completed"
    await actor.stop()


@pytest.mark.asyncio
async def test_resumed_loop_does_not_reemit_scheduled_activities(repo, chain_blueprint):
    actor = InstanceActor("wf-1", repo)
    first = WorkflowScheduler(actor, repo, poll_interval=0.01)
    cancel = asyncio.Event()
    task = asyncio.create_task(first.run(chain_blueprint, cancel))
    await eventually(lambda: first.pending_waits == ["X"])
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    await actor.stop()

    restored = await InstanceActor.restore("wf-1", repo)
    second = WorkflowScheduler(restored, repo, poll_interval=0.01)
    resumed = asyncio.create_task(second.run())
    await asyncio.sleep(0.05)
    assert second.outputs == []

    await restored.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="X"))
    await eventually(lambda: second.pending_waits == ["Y"])
    await restored.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="Y"))

    result = await asyncio.wait_for(resumed, timeout=2)
    assert result.outputs == ["Activity Y has been scheduled.", COMPLETION_MESSAGE]
    await restored.stop()


@pytest.mark.asyncio
async def test_wake_on_signal_shortens_the_timer(chain_blueprint):
    actor = InstanceActor("wf-1")
    scheduler = WorkflowScheduler(actor, poll_interval=60, wake_on_signal=True)
    cancel = asyncio.Event()
    task = asyncio.create_task(scheduler.run(chain_blueprint, cancel))

    await eventually(lambda: scheduler.pending_waits == ["X"])
    waiter = scheduler.waiter("X")
    await actor.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="X"))
    assert scheduler.resolve_wait("X", SignalOutcome.APPROVE) is True

    await eventually(lambda: scheduler.pending_waits == ["Y"])
    assert waiter.result() == SignalOutcome.APPROVE

    cancel.set()
    result = await asyncio.wait_for(task, timeout=2)
    assert result.status == "cancelled"
    await actor.stop()


@pytest.mark.asyncio
async def test_resolve_wait_without_registration(chain_blueprint):
    scheduler = WorkflowScheduler(InstanceActor("wf-1"), poll_interval=0.01)
    assert scheduler.resolve_wait("X", SignalOutcome.REJECT) is False
    assert scheduler.waiter("X") is None


@pytest.mark.asyncio
async def test_outstanding_waits_are_cancelled_when_loop_ends(chain_blueprint):
    actor = InstanceActor("wf-1")
    scheduler = WorkflowScheduler(actor, poll_interval=0.01)
    cancel = asyncio.Event()
    task = asyncio.create_task(scheduler.run(chain_blueprint, cancel))
    await eventually(lambda: scheduler.pending_waits == ["X"])
    waiter = scheduler.waiter("X")

    cancel.set()
    await task

    assert waiter.cancelled()
    assert scheduler.pending_waits == []
    await actor.stop()


@pytest.mark.asyncio
async def test_schedule_skips_activity_moved_on_by_a_signal(chain_blueprint):
    actor = InstanceActor("wf-1")
    scheduler = WorkflowScheduler(actor, poll_interval=0.01)
    await actor.call(Operation.INITIALIZE, chain_blueprint)
    stale = ActivityInstance(name="Activity X", code="X", type="HUMAN")
    await actor.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code="X"))

    await scheduler._schedule(stale, "Only")

    assert scheduler.outputs == []
    instance = await actor.snapshot()
    assert instance.stages[0].activities[0].status == ActivityStatus.COMPLETED
    await actor.stop()


class SignalRacingActor(InstanceActor):
    """Completes the Review stage right after the scheduler's first read."""

    def __init__(self, instance_id):
        super().__init__(instance_id)
        self.race = True
        self.scheduled = []

    async def snapshot(self):
        instance = await super().snapshot()
        if self.race and instance.current_stage == "Review":
            self.race = False
            for code in ["A", "B"]:
                await self.call(Operation.COMPLETE_ACTIVITY, ActivityRef(code=code))
        return instance

    async def call(self, operation, *args):
        if operation == Operation.ACTIVITY_SCHEDULED:
            self.scheduled.append((args[0].stage, args[0].code))
        return await super().call(operation, *args)


@pytest.mark.asyncio
async def test_poll_schedules_against_the_stage_it_read(two_stage_blueprint):
    actor = SignalRacingActor("wf-1")
    await actor.call(Operation.INITIALIZE, two_stage_blueprint)
    scheduler = WorkflowScheduler(actor, poll_interval=0.01)
    cancel = asyncio.Event()
    task = asyncio.create_task(scheduler.run(cancel=cancel))

    await eventually(lambda: ("Sign Off", "C") in actor.scheduled)
    cancel.set()
    await task

    stage_codes = {
        stage.name: set(two_stage_blueprint.codes(stage.name))
        for stage in two_stage_blueprint.stages
    }
    assert all(code in stage_codes[stage] for stage, code in actor.scheduled)
    assert scheduler.outputs == ["Activity C has been scheduled."]
    await actor.stop()

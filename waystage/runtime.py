"""Hosts concurrent workflow runs, one actor and scheduler pair per instance."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .actor import InstanceActor
from .blueprint import WorkflowBlueprint
from .config import WaystageConfig, load_config
from .constants import FINISHED_RESULTS_KEPT
from .contracts import Operation, RunResult, WorkflowInstance
from .errors import AlreadyInitialized, InstanceNotFound
from .persistence import InstanceRepository, get_repository
from .relay import SignalListener, SignalRelay
from .scheduler import WorkflowScheduler
from .transports import BaseTransport

logger = logging.getLogger(__name__)


@dataclass
class WorkflowRun:
    """A live run: the instance's actor plus the loop driving it."""

    actor: InstanceActor
    scheduler: WorkflowScheduler
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None

    @property
    def instance_id(self) -> str:
        return self.actor.instance_id


class WorkflowRuntime:
    """Start, observe, signal and resume workflow runs.

    Runs never share mutable state. Finished runs are dropped from the live
    table and remain queryable through the repository.
    """

    def __init__(
        self,
        repository: InstanceRepository | None = None,
        config: Optional[WaystageConfig] = None,
        poll_interval: Optional[float] = None,
        wake_on_signal: Optional[bool] = None,
    ) -> None:
        self._config = config or load_config()
        self._repository = repository or get_repository(config=self._config)
        scheduler_conf = self._config.scheduler
        self._poll_interval = (
            poll_interval if poll_interval is not None else scheduler_conf.poll_interval
        )
        self._wake_on_signal = (
            wake_on_signal if wake_on_signal is not None else scheduler_conf.wake_on_signal
        )
        self._runs: Dict[str, WorkflowRun] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._results: "OrderedDict[str, RunResult]" = OrderedDict()
        self.relay = SignalRelay(self)

    @property
    def repository(self) -> InstanceRepository:
        return self._repository

    @property
    def active_instances(self) -> List[str]:
        return list(self._runs)

    async def start_workflow(
        self, blueprint: WorkflowBlueprint, instance_id: Optional[str] = None
    ) -> str:
        """Initialize a new instance from ``blueprint`` and start scheduling it.

        Returns:
            Identifier of the new instance.
        """
        instance_id = instance_id or str(uuid.uuid4())
        if instance_id in self._runs:
            raise AlreadyInitialized(instance_id)
        if await self._repository.get_instance(instance_id) is not None:
            raise AlreadyInitialized(instance_id)

        actor = InstanceActor(instance_id, self._repository)
        await actor.call(Operation.INITIALIZE, blueprint)
        self._launch(actor)
        logger.info(f"Workflow instance instantiated with ID: {instance_id}")
        return instance_id

    async def resume(self) -> List[str]:
        """Relaunch every persisted instance that is still in progress."""
        resumed: List[str] = []
        for record in await self._repository.list_instances(status="in_progress"):
            if record.instance_id in self._runs:
                continue
            actor = await InstanceActor.restore(record.instance_id, self._repository)
            self._launch(actor)
            resumed.append(record.instance_id)
        if resumed:
            logger.info(f"Resumed {len(resumed)} workflow instance(s)")
        return resumed

    def get_run(self, instance_id: str) -> WorkflowRun:
        run = self._runs.get(instance_id)
        if run is None:
            raise InstanceNotFound(instance_id)
        return run

    async def get_status(self, instance_id: str) -> WorkflowInstance:
        """Return the current snapshot of an instance, live or archived."""
        run = self._runs.get(instance_id)
        if run is not None:
            return await run.actor.snapshot()
        record = await self._repository.get_instance(instance_id)
        if record is None:
            raise InstanceNotFound(instance_id)
        return WorkflowInstance.from_state(record.state)

    async def wait_for(self, instance_id: str) -> RunResult:
        """Return the result of a run, waiting for it if it is still live.

        Results of the most recent finished runs are kept; older ones are
        only available through the repository.
        """
        task = self._tasks.get(instance_id)
        if task is not None:
            return await task
        if instance_id in self._results:
            return self._results[instance_id]
        raise InstanceNotFound(instance_id)

    async def cancel(self, instance_id: str) -> RunResult:
        """Stop the run at its next timer suspension."""
        run = self.get_run(instance_id)
        run.cancel.set()
        return await self.wait_for(instance_id)

    async def shutdown(self) -> None:
        """Abort every live run. Persisted instances stay resumable."""
        tasks = [run.task for run in self._runs.values() if run.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # runs cancelled before their first step never reached their own cleanup
        for instance_id, run in list(self._runs.items()):
            self._runs.pop(instance_id, None)
            self._tasks.pop(instance_id, None)
            await run.actor.stop()

    def listener(self, transport: BaseTransport, topic: Optional[str] = None) -> SignalListener:
        return SignalListener(
            transport, self.relay, topic or self._config.transport.signal_topic
        )

    # ------------------------------------------------------------------
    def _launch(self, actor: InstanceActor) -> WorkflowRun:
        scheduler = WorkflowScheduler(
            actor,
            repository=self._repository,
            poll_interval=self._poll_interval,
            wake_on_signal=self._wake_on_signal,
        )
        run = WorkflowRun(actor=actor, scheduler=scheduler)
        self._runs[run.instance_id] = run
        run.task = asyncio.create_task(
            self._drive(run), name=f"waystage-scheduler-{run.instance_id}"
        )
        self._tasks[run.instance_id] = run.task
        return run

    async def _drive(self, run: WorkflowRun) -> RunResult:
        try:
            result = await run.scheduler.run(cancel=run.cancel)
            logger.info(f"Workflow instance {run.instance_id} finished: {result.status}")
            self._keep_result(result)
            return result
        finally:
            self._runs.pop(run.instance_id, None)
            self._tasks.pop(run.instance_id, None)
            await run.actor.stop()

    def _keep_result(self, result: RunResult) -> None:
        self._results[result.instance_id] = result
        self._results.move_to_end(result.instance_id)
        while len(self._results) > FINISHED_RESULTS_KEPT:
            self._results.popitem(last=False)

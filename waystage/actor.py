"""Single-writer actor owning one workflow instance."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .contracts import (
    READ_ONLY_OPERATIONS,
    ActivityTransition,
    Operation,
    WorkflowInstance,
)
from .errors import InstanceNotFound
from .machine import InstanceStateMachine
from .persistence import InstanceRepository

logger = logging.getLogger(__name__)


@dataclass
class _Envelope:
    operation: Operation
    args: Tuple[Any, ...]
    future: asyncio.Future


class InstanceActor:
    """Serializes every operation against one instance through a queue.

    Mutating operations run against a clone of the state machine. The clone
    is persisted and then swapped in, so an operation that raises (in the
    state machine or in the repository) leaves the instance untouched.
    """

    def __init__(
        self,
        instance_id: str,
        repository: InstanceRepository | None = None,
        machine: InstanceStateMachine | None = None,
    ) -> None:
        self.instance_id = instance_id
        self._repository = repository
        self._machine = machine or InstanceStateMachine(instance_id)
        self._queue: asyncio.Queue[Optional[_Envelope]] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @classmethod
    async def restore(
        cls, instance_id: str, repository: InstanceRepository
    ) -> "InstanceActor":
        """Rebuild an actor from the last persisted snapshot."""
        record = await repository.get_instance(instance_id)
        if record is None:
            raise InstanceNotFound(instance_id)
        instance = WorkflowInstance.from_state(record.state)
        logger.info(f"Restored instance {instance_id} at stage {instance.current_stage!r}")
        return cls(instance_id, repository, InstanceStateMachine(instance_id, instance))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(
                self._run(), name=f"waystage-actor-{self.instance_id}"
            )

    async def stop(self) -> None:
        """Drain queued operations and stop the consumer task."""
        if not self.running:
            return
        await self._queue.put(None)
        await self._task
        self._task = None

    async def call(self, operation: Operation, *args: Any) -> Any:
        """Submit ``operation`` and wait for its result."""
        return await self._enqueue(operation, args)

    def tell(self, operation: Operation, *args: Any) -> asyncio.Future:
        """Submit ``operation`` without waiting. Failures are logged."""
        future = self._enqueue(operation, args)
        future.add_done_callback(self._log_failure)
        return future

    async def snapshot(self) -> WorkflowInstance:
        return await self.call(Operation.GET_WORKFLOW_INSTANCE)

    # ------------------------------------------------------------------
    def _enqueue(self, operation: Operation, args: Tuple[Any, ...]) -> asyncio.Future:
        self.start()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Envelope(Operation(operation), args, future))
        return future

    def _log_failure(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(f"Signalled operation failed for instance {self.instance_id}: {exc}")

    async def _run(self) -> None:
        while True:
            envelope = await self._queue.get()
            if envelope is None:
                break
            try:
                result = await self._apply(envelope.operation, envelope.args)
            except Exception as exc:
                if not envelope.future.done():
                    envelope.future.set_exception(exc)
            else:
                if not envelope.future.done():
                    envelope.future.set_result(result)

    async def _apply(self, operation: Operation, args: Tuple[Any, ...]) -> Any:
        if operation in READ_ONLY_OPERATIONS:
            return self._machine.apply(operation, *args)

        working = self._machine.clone()
        result = working.apply(operation, *args)
        transition = result if isinstance(result, ActivityTransition) else None
        if transition is not None and not transition.changed:
            return result

        if self._repository is not None:
            state = working.snapshot().to_state()
            if operation == Operation.INITIALIZE:
                await self._repository.create_instance(
                    self.instance_id, state["type"], state
                )
            else:
                await self._repository.save_state(self.instance_id, state)
        self._machine = working

        if transition is not None:
            logger.info(
                f"Activity {transition.code} in stage {transition.stage!r} is now "
                f"{transition.status.value} for instance {self.instance_id}"
            )
            if self._repository is not None:
                await self._repository.record_activity(
                    self.instance_id,
                    transition.stage,
                    transition.code,
                    transition.status.value,
                )
        return result

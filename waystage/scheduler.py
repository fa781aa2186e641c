"""Polling loop that drives one workflow instance to completion."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .actor import InstanceActor
from .blueprint import WorkflowBlueprint
from .constants import COMPLETION_MESSAGE, DEFAULT_POLL_INTERVAL
from .contracts import ActivityInstance, ActivityRef, Operation, RunResult, SignalOutcome
from .errors import ActivityNotFound, IllegalTransitionError
from .machine import activities_to_schedule
from .persistence import InstanceRepository

logger = logging.getLogger(__name__)


class WorkflowScheduler:
    """Repeatedly asks the instance what is ready and schedules it.

    The loop is a poller: its only suspension point is the timer, and it
    observes progress by re-reading the instance, which signals mutate
    independently through the actor. All state needed to resume lives in the
    instance, so a late wake-up or a restart loses nothing.
    """

    def __init__(
        self,
        actor: InstanceActor,
        repository: InstanceRepository | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        wake_on_signal: bool = False,
    ) -> None:
        self._actor = actor
        self._repository = repository
        self._poll_interval = poll_interval
        self._wake_on_signal = wake_on_signal
        self._waits: Dict[str, asyncio.Future] = {}
        self._wakeup = asyncio.Event()
        self.outputs: List[str] = []

    @property
    def instance_id(self) -> str:
        return self._actor.instance_id

    @property
    def pending_waits(self) -> List[str]:
        """Codes of scheduled activities still waiting for a signal."""
        return [code for code, future in self._waits.items() if not future.done()]

    def waiter(self, code: str) -> Optional[asyncio.Future]:
        """Return the future resolved by the next signal for ``code``, if registered."""
        return self._waits.get(code)

    def resolve_wait(self, code: str, outcome: SignalOutcome) -> bool:
        """Resolve the wait registered for ``code``.

        Returns ``True`` when an outstanding wait was resolved.
        """
        future = self._waits.get(code)
        resolved = future is not None and not future.done()
        if resolved:
            future.set_result(outcome)
        if self._wake_on_signal:
            self._wakeup.set()
        return resolved

    async def run(
        self,
        blueprint: WorkflowBlueprint | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RunResult:
        """Drive the instance until every stage is complete or ``cancel`` is set.

        Args:
            blueprint: When given, the instance is initialized from it first.
                Omit it to resume an instance that is already initialized.
            cancel: Event honoured while the loop sleeps between polls.
        """
        cancel = cancel or asyncio.Event()
        if blueprint is not None:
            await self._actor.call(Operation.INITIALIZE, blueprint)
            logger.info(
                f"Instance {self.instance_id} initialized from {blueprint.type!r}"
            )

        try:
            while True:
                self._wakeup.clear()
                # one snapshot per poll so the ready list and stage agree
                instance = await self._actor.snapshot()
                ready = activities_to_schedule(instance)

                if instance.all_activities_completed:
                    self._emit(COMPLETION_MESSAGE)
                    if self._repository is not None:
                        await self._repository.mark_instance_finished(
                            self.instance_id, "completed"
                        )
                    return RunResult(
                        instance_id=self.instance_id,
                        status="completed",
                        outputs=list(self.outputs),
                    )

                for activity in ready:
                    await self._schedule(activity, instance.current_stage)

                if self._repository is not None:
                    await self._repository.mark_polled(
                        self.instance_id, datetime.now(timezone.utc)
                    )

                if await self._sleep(cancel):
                    logger.info(f"Scheduling cancelled for instance {self.instance_id}")
                    if self._repository is not None:
                        await self._repository.mark_instance_finished(
                            self.instance_id, "cancelled"
                        )
                    return RunResult(
                        instance_id=self.instance_id,
                        status="cancelled",
                        outputs=list(self.outputs),
                    )
        finally:
            for future in self._waits.values():
                if not future.done():
                    future.cancel()

    # ------------------------------------------------------------------
    async def _schedule(self, activity: ActivityInstance, stage: Optional[str]) -> None:
        previous = self._waits.get(activity.code)
        if previous is None or previous.done():
            self._waits[activity.code] = asyncio.get_running_loop().create_future()

        try:
            await self._actor.call(
                Operation.ACTIVITY_SCHEDULED, ActivityRef.of(activity, stage=stage)
            )
        except (ActivityNotFound, IllegalTransitionError) as e:
            # a signal moved the activity on between the poll and this call
            logger.info(
                f"Skipped scheduling {activity.code} for instance {self.instance_id}: {e}"
            )
            return
        self._emit(f"{activity.name} has been scheduled.")

    def _emit(self, message: str) -> None:
        logger.info(f"{message} (instance_id={self.instance_id})")
        self.outputs.append(message)

    async def _sleep(self, cancel: asyncio.Event) -> bool:
        """Wait for the poll interval. Returns ``True`` if cancelled."""
        waiters = [asyncio.ensure_future(cancel.wait())]
        if self._wake_on_signal:
            waiters.append(asyncio.ensure_future(self._wakeup.wait()))
        try:
            await asyncio.wait(
                waiters, timeout=self._poll_interval, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
        return cancel.is_set()

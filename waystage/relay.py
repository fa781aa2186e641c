"""Inbound channel translating activity signals into instance operations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional

from .constants import DEFAULT_SIGNAL_TOPIC
from .contracts import ActivityRef, ActivitySignal, Operation, SignalOutcome
from .errors import NotFound
from .transports import BaseTransport

if TYPE_CHECKING:
    from .runtime import WorkflowRuntime

logger = logging.getLogger(__name__)


OUTCOME_OPERATIONS: Dict[SignalOutcome, Operation] = {
    SignalOutcome.APPROVE: Operation.COMPLETE_ACTIVITY,
    SignalOutcome.REJECT: Operation.ACTIVITY_FAILED,
    SignalOutcome.INDETERMINATE: Operation.ACTIVITY_PENDING,
}


class SignalRelay:
    """Deliver signals to live runs without waiting for them to apply."""

    def __init__(self, runtime: "WorkflowRuntime") -> None:
        self._runtime = runtime

    def deliver(self, signal: ActivitySignal) -> Operation:
        """Map ``signal`` onto exactly one operation and submit it.

        Returns:
            The operation submitted to the instance.

        Raises:
            InstanceNotFound: If no live run has ``signal.instance_id``.
        """
        run = self._runtime.get_run(signal.instance_id)
        outcome = signal.outcome
        operation = OUTCOME_OPERATIONS[outcome]

        run.actor.tell(operation, ActivityRef(code=signal.activity_code))
        run.scheduler.resolve_wait(signal.activity_code, outcome)
        logger.info(
            f"Relayed {outcome.value} for {signal.activity_code} as {operation.value} "
            f"to instance {signal.instance_id}"
        )
        return operation


class SignalListener:
    """Feed signals arriving on a transport topic into a relay."""

    def __init__(
        self,
        transport: BaseTransport,
        relay: SignalRelay,
        topic: str = DEFAULT_SIGNAL_TOPIC,
    ) -> None:
        self._transport = transport
        self._relay = relay
        self._topic = topic

    async def start(self, lifespan: Optional[float] = None) -> int:
        """Consume signals until ``lifespan`` elapses. Returns the delivered count."""
        delivered = 0
        async for delivery in self._transport.subscribe(self._topic, lifespan=lifespan):
            signal = delivery.signal
            try:
                self._relay.deliver(signal)
            except NotFound as e:
                logger.warning(f"Dropping signal for {signal.activity_code}: {e}")
            else:
                delivered += 1
            await self._transport.ack(delivery)
        return delivered

"""Signal transport interface used by the listener and the ``signal`` command."""

from __future__ import annotations

import abc
from typing import Any, AsyncIterator, NamedTuple, Optional

from ..contracts import ActivitySignal


class SignalDelivery(NamedTuple):
    """A received signal plus the broker's own handle for it."""

    raw: Any
    signal: ActivitySignal


class BaseTransport(abc.ABC):
    """Moves :class:`ActivitySignal` messages from reporters to a runtime.

    Reporters call :meth:`publish`. A :class:`~waystage.relay.SignalListener`
    iterates :meth:`subscribe`, hands every delivery back to :meth:`ack` once
    it has been relayed, and the owner calls :meth:`disconnect` on shutdown.
    """

    @abc.abstractmethod
    async def publish(self, topic: str, signal: ActivitySignal) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[SignalDelivery]:
        """Yield deliveries from ``topic`` until ``lifespan`` seconds pass.

        Runs until cancelled when ``lifespan`` is None.
        """
        raise NotImplementedError

    async def ack(self, delivery: SignalDelivery) -> None:
        """Confirm a delivery was relayed. Queues that pop on receive need nothing."""

    async def disconnect(self) -> None:
        """Release broker connections."""

"""In-memory transport for tests and single-process runs."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional

from ..contracts import ActivitySignal
from .base import BaseTransport, SignalDelivery


class InMemoryTransport(BaseTransport):
    """Per-topic FIFO queues inside the current process."""

    def __init__(self, poll_delay: float = 0.1) -> None:
        self._queues: Dict[str, Deque[SignalDelivery]] = defaultdict(deque)
        self._poll_delay = poll_delay

    async def publish(self, topic: str, signal: ActivitySignal) -> None:
        self._queues[topic].append(SignalDelivery(signal.to_json(), signal))

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[SignalDelivery]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        queue = self._queues[topic]

        while deadline is None or loop.time() < deadline:
            if queue:
                yield queue.popleft()
                continue
            await asyncio.sleep(self._poll_delay)

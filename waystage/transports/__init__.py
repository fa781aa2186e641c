"""Signal transports and backend selection."""

from __future__ import annotations

import os
from typing import Callable, Dict, Optional

from ..config import WaystageConfig, load_config
from .base import BaseTransport, SignalDelivery
from .inmemory import InMemoryTransport


def _redis_transport(config: WaystageConfig) -> BaseTransport:
    from .redis import RedisTransport

    return RedisTransport(**config.transport.redis.model_dump())


_BACKENDS: Dict[str, Callable[[WaystageConfig], BaseTransport]] = {
    "inmemory": lambda config: InMemoryTransport(),
    "redis": _redis_transport,
}


def get_transport(
    backend: Optional[str] = None, config: Optional[WaystageConfig] = None
) -> BaseTransport:
    """Build the signal transport named by ``backend``.

    Falls back to ``WAYSTAGE_TRANSPORT`` and then to ``transport.backend``
    from the loaded configuration.
    """
    config = config or load_config()
    name = (backend or os.getenv("WAYSTAGE_TRANSPORT") or config.transport.backend).lower()
    try:
        factory = _BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unsupported transport backend: {name}") from None
    return factory(config)


__all__ = ["BaseTransport", "InMemoryTransport", "SignalDelivery", "get_transport"]

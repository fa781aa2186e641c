"""Persistence layer for waystage instances."""

from __future__ import annotations

import os
from typing import Optional

from ..config import WaystageConfig, load_config
from .inmemory import InMemoryInstanceRepository
from .models import ActivityRecord, InstanceRecord
from .repository import InstanceRepository
from .sqlite import SQLiteInstanceRepository

_repository_instance: InstanceRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[WaystageConfig] = None
) -> InstanceRepository:
    """Factory function to obtain an instance repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``WAYSTAGE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("WAYSTAGE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryInstanceRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteInstanceRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresInstanceRepository

        _repository_instance = PostgresInstanceRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "ActivityRecord",
    "InstanceRecord",
    "InstanceRepository",
    "InMemoryInstanceRepository",
    "SQLiteInstanceRepository",
    "get_repository",
]

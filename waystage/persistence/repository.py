"""Repository abstraction for instance state persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .models import InstanceRecord


class InstanceRepository(Protocol):
    """Protocol for instance state persistence backends."""

    async def create_instance(
        self, instance_id: str, workflow_type: str, state: dict
    ) -> None:
        """Persist the initial snapshot of an instance.

        Raises:
            AlreadyInitialized: If a record with ``instance_id`` exists.
        """

    async def save_state(self, instance_id: str, state: dict) -> None:
        """Replace the stored snapshot of an instance."""

    async def record_activity(
        self, instance_id: str, stage: str, activity_code: str, status: str
    ) -> None:
        """Append an activity status change to the history."""

    async def mark_polled(self, instance_id: str, polled_at: datetime) -> None:
        """Record the time of the scheduler's latest poll."""

    async def mark_instance_finished(
        self, instance_id: str, status: str = "completed"
    ) -> None:
        """Mark the instance as finished (completed or cancelled)."""

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        """Retrieve the instance by id, including its activity history."""

    async def list_instances(self, status: Optional[str] = None) -> list[InstanceRecord]:
        """Return persisted instances, optionally filtered by status."""

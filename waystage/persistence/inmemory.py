"""In-memory implementation of the instance repository."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Dict, Optional

from ..errors import AlreadyInitialized
from .models import ActivityRecord, InstanceRecord
from .repository import InstanceRepository


class InMemoryInstanceRepository(InstanceRepository):
    """Store instance state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, InstanceRecord] = {}
        self._record_id = 0

    # ------------------------------------------------------------------
    async def create_instance(
        self, instance_id: str, workflow_type: str, state: dict
    ) -> None:
        if instance_id in self._instances:
            raise AlreadyInitialized(instance_id)
        self._instances[instance_id] = InstanceRecord(
            instance_id=instance_id,
            workflow_type=workflow_type,
            state=copy.deepcopy(state),
            status="in_progress",
        )

    async def save_state(self, instance_id: str, state: dict) -> None:
        record = self._instances.get(instance_id)
        if record:
            record.state = copy.deepcopy(state)

    async def record_activity(
        self, instance_id: str, stage: str, activity_code: str, status: str
    ) -> None:
        record = self._instances.get(instance_id)
        if not record:
            return
        self._record_id += 1
        record.history.append(
            ActivityRecord(
                id=self._record_id,
                instance_id=instance_id,
                stage=stage,
                activity_code=activity_code,
                status=status,
                recorded_at=datetime.now(timezone.utc),
            )
        )

    async def mark_polled(self, instance_id: str, polled_at: datetime) -> None:
        record = self._instances.get(instance_id)
        if record:
            record.last_polled_at = polled_at

    async def mark_instance_finished(
        self, instance_id: str, status: str = "completed"
    ) -> None:
        record = self._instances.get(instance_id)
        if record:
            record.status = status

    async def get_instance(self, instance_id: str) -> InstanceRecord | None:
        record = self._instances.get(instance_id)
        return record.model_copy(deep=True) if record else None

    async def list_instances(self, status: Optional[str] = None) -> list[InstanceRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._instances.values()
            if status is None or record.status == status
        ]

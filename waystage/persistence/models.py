"""Data models for persisted instance state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ActivityRecord(BaseModel):
    """Record of an activity status change."""

    id: Optional[int] = None
    instance_id: str
    stage: str
    activity_code: str
    status: str
    recorded_at: Optional[datetime] = None


class InstanceRecord(BaseModel):
    """Persisted workflow instance data."""

    instance_id: str
    workflow_type: str = ""
    state: dict[str, Any] = Field(default_factory=dict)
    status: str = "in_progress"
    last_polled_at: Optional[datetime] = None
    history: list[ActivityRecord] = Field(default_factory=list)

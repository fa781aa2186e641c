"""Core data contracts for workflow instances and signals."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ActivityStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StageStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class Operation(str, Enum):
    """Operations accepted by a workflow instance."""

    INITIALIZE = "Initialize"
    GET_ACTIVITIES_TO_SCHEDULE = "GetActivitiesToSchedule"
    ALL_ACTIVITIES_COMPLETED = "AllActivitiesCompleted"
    ACTIVITY_SCHEDULED = "ActivityScheduled"
    ACTIVITY_FAILED = "ActivityFailed"
    ACTIVITY_PENDING = "ActivityPending"
    COMPLETE_ACTIVITY = "CompleteActivity"
    GET_WORKFLOW_INSTANCE = "GetWorkflowInstance"


READ_ONLY_OPERATIONS = frozenset(
    {
        Operation.GET_ACTIVITIES_TO_SCHEDULE,
        Operation.ALL_ACTIVITIES_COMPLETED,
        Operation.GET_WORKFLOW_INSTANCE,
    }
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActivityInstance(_CamelModel):
    """Live state of one activity within a run."""

    name: str
    code: str
    type: str
    dependencies: List[str] = Field(default_factory=list)
    status: ActivityStatus = ActivityStatus.PENDING


class StageInstance(_CamelModel):
    name: str
    status: StageStatus = StageStatus.PENDING
    activities: List[ActivityInstance] = Field(default_factory=list)


class WorkflowInstance(_CamelModel):
    """Persisted state of a workflow run.

    Serialized with camelCase keys so status snapshots read as
    ``{"currentStage": ..., "stages": [...]}``.
    """

    id: str
    type: str = ""
    current_stage: Optional[str] = None
    stages: List[StageInstance] = Field(default_factory=list)
    all_activities_completed: bool = False

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_state(self) -> dict:
        """Return a JSON-compatible dict suitable for persistence."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_state(cls, data: dict) -> "WorkflowInstance":
        return cls.model_validate(data)


class ActivityRef(BaseModel):
    """Identifies the activity an operation targets.

    ``stage`` defaults to the instance's current stage when omitted.
    """

    code: str
    stage: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def of(cls, activity: ActivityInstance, stage: Optional[str] = None) -> "ActivityRef":
        return cls(code=activity.code, stage=stage, name=activity.name)


class ActivityTransition(BaseModel):
    """Outcome of an activity status operation."""

    stage: str
    code: str
    previous: ActivityStatus
    status: ActivityStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.status


class SignalOutcome(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    INDETERMINATE = "indeterminate"

    @classmethod
    def from_status(cls, approval_status: int) -> "SignalOutcome":
        """Map the integer approval status carried by a signal."""
        if approval_status == 1:
            return cls.APPROVE
        if approval_status == 0:
            return cls.REJECT
        return cls.INDETERMINATE


class ActivitySignal(_CamelModel):
    """External report of an activity's outcome."""

    instance_id: str
    activity_code: str
    approval_status: int

    @property
    def outcome(self) -> SignalOutcome:
        return SignalOutcome.from_status(self.approval_status)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "ActivitySignal":
        return cls.model_validate_json(data)


class RunResult(BaseModel):
    """Terminal result of a scheduling loop."""

    instance_id: str
    status: Literal["completed", "cancelled"]
    outputs: List[str] = Field(default_factory=list)

"""Stage and activity lifecycle of a single workflow instance."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .blueprint import WorkflowBlueprint
from .contracts import (
    ActivityInstance,
    ActivityRef,
    ActivityStatus,
    ActivityTransition,
    Operation,
    StageInstance,
    StageStatus,
    WorkflowInstance,
)
from .errors import (
    ActivityNotFound,
    AlreadyInitialized,
    IllegalTransitionError,
    InstanceNotInitialized,
)

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[ActivityStatus, Set[ActivityStatus]] = {
    ActivityStatus.PENDING: {
        ActivityStatus.SCHEDULED,
        ActivityStatus.COMPLETED,
        ActivityStatus.FAILED,
    },
    ActivityStatus.SCHEDULED: {
        ActivityStatus.PENDING,
        ActivityStatus.COMPLETED,
        ActivityStatus.FAILED,
    },
    ActivityStatus.COMPLETED: set(),
    ActivityStatus.FAILED: {ActivityStatus.PENDING},
}


def activities_to_schedule(instance: WorkflowInstance) -> List[ActivityInstance]:
    """Return pending activities of the active stage whose dependencies are met.

    Activities come back in definition order, as copies.
    """
    stage = next(
        (
            s
            for s in instance.stages
            if s.name == instance.current_stage and s.status == StageStatus.ACTIVE
        ),
        None,
    )
    if stage is None:
        return []

    completed = {a.code for a in stage.activities if a.status == ActivityStatus.COMPLETED}
    return [
        activity.model_copy(deep=True)
        for activity in stage.activities
        if activity.status == ActivityStatus.PENDING
        and all(dep in completed for dep in activity.dependencies)
    ]


class InstanceStateMachine:
    """Mutable state of one workflow run.

    Not safe for concurrent use: callers serialize access through
    :class:`~waystage.actor.InstanceActor`. Every operation validates before it
    mutates, so a raised error leaves the instance unchanged.
    """

    def __init__(self, instance_id: str, instance: Optional[WorkflowInstance] = None) -> None:
        self.instance_id = instance_id
        self._instance = instance

    @property
    def initialized(self) -> bool:
        return self._instance is not None and bool(self._instance.stages)

    def clone(self) -> "InstanceStateMachine":
        copy = self._instance.model_copy(deep=True) if self._instance else None
        return InstanceStateMachine(self.instance_id, copy)

    def apply(self, operation: Operation, *args: Any) -> Any:
        """Run ``operation`` by its external name."""
        return _HANDLERS[Operation(operation)](self, *args)

    # ------------------------------------------------------------------
    def initialize(self, blueprint: WorkflowBlueprint) -> WorkflowInstance:
        if self.initialized:
            raise AlreadyInitialized(self.instance_id)

        stages = [
            StageInstance(
                name=stage.name,
                status=StageStatus.ACTIVE if index == 0 else StageStatus.PENDING,
                activities=[
                    ActivityInstance(
                        name=activity.name,
                        code=activity.code,
                        type=activity.type,
                        dependencies=list(activity.dependencies),
                    )
                    for activity in stage.activities
                ],
            )
            for index, stage in enumerate(blueprint.stages)
        ]
        self._instance = WorkflowInstance(
            id=self.instance_id,
            type=blueprint.type,
            current_stage=stages[0].name,
            stages=stages,
        )
        logger.debug(f"Initialized instance {self.instance_id} from {blueprint.type!r}")
        return self.snapshot()

    def snapshot(self) -> WorkflowInstance:
        return self._require().model_copy(deep=True)

    def get_activities_to_schedule(self) -> List[ActivityInstance]:
        return activities_to_schedule(self._require())

    def all_activities_completed(self) -> bool:
        return self._require().all_activities_completed

    def activity_scheduled(self, ref: ActivityRef) -> ActivityTransition:
        return self._set_status(ref, ActivityStatus.SCHEDULED)

    def activity_failed(self, ref: ActivityRef) -> ActivityTransition:
        return self._set_status(ref, ActivityStatus.FAILED)

    def activity_pending(self, ref: ActivityRef) -> ActivityTransition:
        return self._set_status(ref, ActivityStatus.PENDING)

    def complete_activity(self, ref: ActivityRef) -> ActivityTransition:
        stage, activity = self._locate(ref)
        transition = self._transition(stage, activity, ActivityStatus.COMPLETED)

        if stage.status == StageStatus.ACTIVE and all(
            a.status == ActivityStatus.COMPLETED for a in stage.activities
        ):
            stage.status = StageStatus.COMPLETED
            logger.info(f"Stage {stage.name!r} completed for instance {self.instance_id}")
            self._advance()
        return transition

    # ------------------------------------------------------------------
    def _require(self) -> WorkflowInstance:
        if not self.initialized:
            raise InstanceNotInitialized(self.instance_id)
        return self._instance

    def _locate(self, ref: ActivityRef) -> Tuple[StageInstance, ActivityInstance]:
        instance = self._require()
        stage_name = ref.stage or instance.current_stage
        stage = next((s for s in instance.stages if s.name == stage_name), None)
        if stage is None:
            raise ActivityNotFound(stage_name, ref.code)
        activity = next((a for a in stage.activities if a.code == ref.code), None)
        if activity is None:
            raise ActivityNotFound(stage_name, ref.code)
        return stage, activity

    def _set_status(self, ref: ActivityRef, status: ActivityStatus) -> ActivityTransition:
        stage, activity = self._locate(ref)
        return self._transition(stage, activity, status)

    def _transition(
        self, stage: StageInstance, activity: ActivityInstance, status: ActivityStatus
    ) -> ActivityTransition:
        previous = activity.status
        if previous != status:
            if status not in ALLOWED_TRANSITIONS[previous]:
                raise IllegalTransitionError(
                    f"Illegal transition for activity {activity.code!r} in stage "
                    f"{stage.name!r}: {previous.value} -> {status.value}"
                )
            activity.status = status
        return ActivityTransition(
            stage=stage.name, code=activity.code, previous=previous, status=status
        )

    def _advance(self) -> None:
        """Activate the next pending stage or flag the run as complete."""
        instance = self._instance
        for stage in instance.stages:
            if stage.status != StageStatus.PENDING:
                continue
            stage.status = StageStatus.ACTIVE
            instance.current_stage = stage.name
            # a stage whose activities were all completed ahead of time is passed through
            if any(a.status != ActivityStatus.COMPLETED for a in stage.activities):
                logger.info(f"Stage {stage.name!r} activated for instance {self.instance_id}")
                return
            stage.status = StageStatus.COMPLETED

        instance.all_activities_completed = True
        logger.info(f"All activities completed for instance {self.instance_id}")


_HANDLERS: Dict[Operation, Callable[..., Any]] = {
    Operation.INITIALIZE: InstanceStateMachine.initialize,
    Operation.GET_ACTIVITIES_TO_SCHEDULE: InstanceStateMachine.get_activities_to_schedule,
    Operation.ALL_ACTIVITIES_COMPLETED: InstanceStateMachine.all_activities_completed,
    Operation.ACTIVITY_SCHEDULED: InstanceStateMachine.activity_scheduled,
    Operation.ACTIVITY_FAILED: InstanceStateMachine.activity_failed,
    Operation.ACTIVITY_PENDING: InstanceStateMachine.activity_pending,
    Operation.COMPLETE_ACTIVITY: InstanceStateMachine.complete_activity,
    Operation.GET_WORKFLOW_INSTANCE: InstanceStateMachine.snapshot,
}

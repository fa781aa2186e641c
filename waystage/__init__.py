"""waystage: staged approval workflows driven by a polling scheduler."""

from .actor import InstanceActor
from .blueprint import ActivityBlueprint, StageBlueprint, WorkflowBlueprint, load_blueprint
from .contracts import (
    ActivityInstance,
    ActivityRef,
    ActivitySignal,
    ActivityStatus,
    Operation,
    RunResult,
    SignalOutcome,
    StageInstance,
    StageStatus,
    WorkflowInstance,
)
from .machine import InstanceStateMachine
from .persistence import get_repository
from .relay import SignalListener, SignalRelay
from .runtime import WorkflowRuntime
from .scheduler import WorkflowScheduler
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "ActivityBlueprint",
    "ActivityInstance",
    "ActivityRef",
    "ActivitySignal",
    "ActivityStatus",
    "InstanceActor",
    "InstanceStateMachine",
    "Operation",
    "RunResult",
    "SignalListener",
    "SignalOutcome",
    "SignalRelay",
    "StageBlueprint",
    "StageInstance",
    "StageStatus",
    "WorkflowBlueprint",
    "WorkflowInstance",
    "WorkflowRuntime",
    "WorkflowScheduler",
    "get_repository",
    "get_transport",
    "load_blueprint",
]

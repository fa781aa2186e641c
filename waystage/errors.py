"""Exception hierarchy for waystage."""

from __future__ import annotations


class WaystageError(Exception):
    """Base class for all waystage errors."""


class BlueprintValidationError(WaystageError, ValueError):
    """Raised when a workflow blueprint is malformed."""


class AlreadyInitialized(WaystageError):
    """Raised when ``Initialize`` is called on a populated instance."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Workflow instance {instance_id} is already initialized")
        self.instance_id = instance_id


class InstanceNotInitialized(WaystageError):
    """Raised when an operation reaches an instance before ``Initialize``."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Workflow instance {instance_id} has not been initialized")
        self.instance_id = instance_id


class NotFound(WaystageError, LookupError):
    """Base class for lookups that did not match anything."""


class ActivityNotFound(NotFound):
    def __init__(self, stage: str | None, code: str) -> None:
        super().__init__(f"Activity {code!r} not found in stage {stage!r}")
        self.stage = stage
        self.code = code


class InstanceNotFound(NotFound):
    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Workflow instance {instance_id} not found")
        self.instance_id = instance_id


class IllegalTransitionError(WaystageError, ValueError):
    """Raised when an activity status change is not permitted."""

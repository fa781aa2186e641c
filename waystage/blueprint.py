"""Immutable workflow templates: stages, activities and their dependencies."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .constants import DEFAULT_ACTIVITY_TYPE
from .errors import BlueprintValidationError


class ActivityBlueprint(BaseModel):
    """Defines one activity of a stage."""

    model_config = ConfigDict(frozen=True)

    name: str
    code: str
    type: str = DEFAULT_ACTIVITY_TYPE
    dependencies: tuple[str, ...] = ()

    @field_validator("dependencies", mode="before")
    @classmethod
    def _none_means_no_dependencies(cls, value: Any) -> Any:
        return () if value is None else value


class StageBlueprint(BaseModel):
    """An ordered group of activities whose dependencies stay inside the stage."""

    model_config = ConfigDict(frozen=True)

    name: str
    activities: tuple[ActivityBlueprint, ...]

    @model_validator(mode="after")
    def _check_dependencies(self) -> "StageBlueprint":
        if not self.activities:
            raise ValueError(f"stage {self.name!r} has no activities")

        codes: set[str] = set()
        for activity in self.activities:
            if activity.code in codes:
                raise ValueError(
                    f"duplicate activity code {activity.code!r} in stage {self.name!r}"
                )
            codes.add(activity.code)

        for activity in self.activities:
            unknown = [dep for dep in activity.dependencies if dep not in codes]
            if unknown:
                raise ValueError(
                    f"activity {activity.code!r} in stage {self.name!r} depends on "
                    f"unknown codes {unknown}"
                )

        cycle = _find_cycle(self.activities)
        if cycle:
            raise ValueError(
                f"cyclic dependency in stage {self.name!r}: {' -> '.join(cycle)}"
            )
        return self


class WorkflowBlueprint(BaseModel):
    """Template for a workflow run. Safe to share between concurrent runs."""

    model_config = ConfigDict(frozen=True)

    type: str
    stages: tuple[StageBlueprint, ...]

    @model_validator(mode="after")
    def _check_stages(self) -> "WorkflowBlueprint":
        if not self.stages:
            raise ValueError("blueprint has no stages")
        seen: set[str] = set()
        for stage in self.stages:
            if stage.name in seen:
                raise ValueError(f"duplicate stage name {stage.name!r}")
            seen.add(stage.name)
        return self

    def stage(self, name: str) -> Optional[StageBlueprint]:
        return next((s for s in self.stages if s.name == name), None)

    def codes(self, stage_name: str) -> list[str]:
        stage = self.stage(stage_name)
        return [a.code for a in stage.activities] if stage else []


def _find_cycle(activities: tuple[ActivityBlueprint, ...]) -> list[str] | None:
    """Return the codes forming a dependency cycle, or ``None``."""
    graph = {a.code: a.dependencies for a in activities}
    visiting: set[str] = set()
    done: set[str] = set()

    def visit(code: str, path: list[str]) -> list[str] | None:
        if code in done:
            return None
        if code in visiting:
            return path[path.index(code) :] + [code]
        visiting.add(code)
        path.append(code)
        for dep in graph[code]:
            cycle = visit(dep, path)
            if cycle:
                return cycle
        path.pop()
        visiting.discard(code)
        done.add(code)
        return None

    for code in graph:
        cycle = visit(code, [])
        if cycle:
            return cycle
    return None


def load_blueprint(path: str | Path) -> WorkflowBlueprint:
    """Load and validate a blueprint from a YAML or JSON file.

    Raises:
        BlueprintValidationError: If the document does not describe a valid
            blueprint.
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise BlueprintValidationError(f"Blueprint {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise BlueprintValidationError(f"Blueprint {path} must be a mapping")
    try:
        return WorkflowBlueprint.model_validate(data)
    except ValidationError as exc:
        raise BlueprintValidationError(f"Invalid blueprint {path}: {exc}") from exc

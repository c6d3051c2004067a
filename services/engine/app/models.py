"""Pydantic models for engine results and the HTTP surface."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from blueprint_schemas import Project, ProjectSubtask, ProjectTask


class LevelCounts(BaseModel):
    """Outcome of reconciling one tree level."""

    matched: int = Field(default=0, ge=0)
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)


class GemChange(BaseModel):
    changed: bool
    previous_gem: Optional[str] = None
    new_gem: Optional[str] = None


class DerivedState(BaseModel):
    """Progress and gem after a recalculation pass."""

    progress: float = Field(..., ge=0, le=100)
    gem_change: GemChange


class ReconciliationResult(BaseModel):
    project: Project
    stages: LevelCounts
    tasks: LevelCounts
    subtasks: LevelCounts
    gem_change: GemChange

    def counts_by_level(self) -> dict[str, dict[str, int]]:
        return {
            "stage": self.stages.model_dump(),
            "task": self.tasks.model_dump(),
            "subtask": self.subtasks.model_dump(),
        }


class SubtaskUpdateResult(BaseModel):
    """Returned by every single-field subtask operation."""

    updated: ProjectSubtask
    task: ProjectTask
    progress: float = Field(..., ge=0, le=100)
    gem_change: GemChange


ToggleResult = SubtaskUpdateResult


class TaskUpdateResult(BaseModel):
    updated: ProjectTask
    progress: float = Field(..., ge=0, le=100)
    gem_change: GemChange


class CreateProjectRequest(BaseModel):
    template_id: UUID
    name: Optional[str] = Field(
        None, min_length=1, max_length=200, description="Defaults to the template name"
    )


class TaskStatusRequest(BaseModel):
    # Kept as text so unknown values surface as InvalidStateError, not a 422.
    status: str = Field(..., min_length=1, max_length=40)


class SubtaskAnswerRequest(BaseModel):
    answer: Optional[str] = None


class LinkRequest(BaseModel):
    link: Optional[str] = None

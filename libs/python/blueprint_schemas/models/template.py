"""Immutable onboarding templates and the drafts used to author them."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ..utils.validators import ensure_contiguous_order


class TemplateSubtask(BaseModel):
    """Checklist item seeded into every project subtask."""

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=1000)
    order: int = Field(..., ge=0)


class TemplateTask(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    order: int = Field(..., ge=0)
    subtasks: list[TemplateSubtask] = Field(default_factory=list)

    @field_validator("subtasks")
    @classmethod
    def validate_subtask_order(cls, subtasks: list[TemplateSubtask]) -> list[TemplateSubtask]:
        ensure_contiguous_order(subtasks, group="Template subtask")
        return subtasks


class TemplateStage(BaseModel):
    """Ordered stage of a template; ``order`` drives gem traversal."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    order: int = Field(..., ge=0)
    gem_type: Optional[str] = Field(
        None, max_length=80, description="Opaque achievement tag awarded for this stage"
    )
    tasks: list[TemplateTask] = Field(default_factory=list)

    @field_validator("tasks")
    @classmethod
    def validate_task_order(cls, tasks: list[TemplateTask]) -> list[TemplateTask]:
        ensure_contiguous_order(tasks, group="Template task")
        return tasks


class Template(BaseModel):
    """Versioned blueprint tree used to seed new projects."""

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    version: str = Field(default="1.0", min_length=1, max_length=40)
    description: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True
    stages: list[TemplateStage] = Field(default_factory=list)
    tasks: list[TemplateTask] = Field(
        default_factory=list, description="Tasks that belong to no stage"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("stages")
    @classmethod
    def validate_stage_order(cls, stages: list[TemplateStage]) -> list[TemplateStage]:
        ensure_contiguous_order(stages, group="Template stage")
        return stages

    @field_validator("tasks")
    @classmethod
    def validate_unstaged_order(cls, tasks: list[TemplateTask]) -> list[TemplateTask]:
        ensure_contiguous_order(tasks, group="Unstaged template task")
        return tasks


class SubtaskDraft(BaseModel):
    description: str = Field(..., min_length=1, max_length=1000)


class TaskDraft(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    subtasks: list[SubtaskDraft] = Field(default_factory=list)


class StageDraft(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    gem_type: Optional[str] = Field(None, max_length=80)
    tasks: list[TaskDraft] = Field(default_factory=list)


class TemplateDraft(BaseModel):
    """Authoring payload; ids and orders are assigned on creation."""

    name: str = Field(..., min_length=1, max_length=200)
    version: str = Field(default="1.0", min_length=1, max_length=40)
    description: Optional[str] = Field(None, max_length=2000)
    stages: list[StageDraft] = Field(default_factory=list)
    tasks: list[TaskDraft] = Field(default_factory=list)


class TemplateVersionOverrides(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    version: Optional[str] = Field(None, min_length=1, max_length=40)
    description: Optional[str] = Field(None, max_length=2000)

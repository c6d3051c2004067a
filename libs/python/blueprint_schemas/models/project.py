"""Mutable project trees instantiated from templates."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Iterator, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from ..enums import TaskStatus
from ..utils.validators import clean_optional_text, ensure_contiguous_order

ANSWER_MAX_LENGTH = 2000
LINK_MAX_LENGTH = 2048


class ProjectSubtask(BaseModel):
    """Leaf of the tree; ``completed`` is the atomic progress signal."""

    id: UUID = Field(default_factory=uuid4)
    task_id: UUID
    description: str = Field(..., min_length=1, max_length=1000)
    order: int = Field(..., ge=0)
    completed: bool = False
    answer: Optional[str] = None
    link: Optional[str] = None

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, value: Optional[str]) -> Optional[str]:
        return clean_optional_text(value, limit=ANSWER_MAX_LENGTH, field_name="Subtask answer")

    @field_validator("link")
    @classmethod
    def validate_link(cls, value: Optional[str]) -> Optional[str]:
        return clean_optional_text(value, limit=LINK_MAX_LENGTH, field_name="Subtask link")


class LeafTask(BaseModel):
    """Task without subtasks; its own fields are the source of truth."""

    kind: Literal["leaf"] = "leaf"
    completed: bool
    status: TaskStatus


class CompositeTask(BaseModel):
    """Task whose status is derived from its subtasks."""

    kind: Literal["composite"] = "composite"
    subtasks: list[ProjectSubtask] = Field(..., min_length=1)

    @property
    def completed_count(self) -> int:
        return sum(1 for subtask in self.subtasks if subtask.completed)


TaskShape = Annotated[Union[LeafTask, CompositeTask], Field(discriminator="kind")]


class ProjectTask(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    stage_id: Optional[UUID] = Field(
        None, description="None marks an unstaged task attached directly to the project"
    )
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    order: int = Field(..., ge=0)
    status: TaskStatus = TaskStatus.TODO
    completed: bool = False
    link: Optional[str] = None
    subtasks: list[ProjectSubtask] = Field(default_factory=list)

    @field_validator("link")
    @classmethod
    def validate_link(cls, value: Optional[str]) -> Optional[str]:
        return clean_optional_text(value, limit=LINK_MAX_LENGTH, field_name="Task link")

    @field_validator("subtasks")
    @classmethod
    def validate_subtask_order(cls, subtasks: list[ProjectSubtask]) -> list[ProjectSubtask]:
        ensure_contiguous_order(subtasks, group="Subtask")
        return subtasks

    @model_validator(mode="after")
    def validate_completion_matches_status(self) -> "ProjectTask":
        if self.completed != (self.status == TaskStatus.DONE):
            raise ValueError("Task completed flag must match DONE status")
        return self

    def shape(self) -> Union[LeafTask, CompositeTask]:
        if self.subtasks:
            return CompositeTask(subtasks=self.subtasks)
        return LeafTask(completed=self.completed, status=self.status)


class ProjectStage(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    order: int = Field(..., ge=0)
    gem_type: Optional[str] = Field(None, max_length=80)
    tasks: list[ProjectTask] = Field(default_factory=list)

    @field_validator("tasks")
    @classmethod
    def validate_task_order(cls, tasks: list[ProjectTask]) -> list[ProjectTask]:
        ensure_contiguous_order(tasks, group="Stage task")
        return tasks


class Project(BaseModel):
    """A user's instantiation of a template with derived progress state."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    template_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    progress: float = Field(default=0.0, ge=0, le=100)
    current_gem: Optional[str] = None
    stages: list[ProjectStage] = Field(default_factory=list)
    tasks: list[ProjectTask] = Field(
        default_factory=list, description="Unstaged tasks attached directly to the project"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("stages")
    @classmethod
    def validate_stage_order(cls, stages: list[ProjectStage]) -> list[ProjectStage]:
        ensure_contiguous_order(stages, group="Project stage")
        return stages

    @field_validator("tasks")
    @classmethod
    def validate_unstaged_order(cls, tasks: list[ProjectTask]) -> list[ProjectTask]:
        ensure_contiguous_order(tasks, group="Unstaged task")
        return tasks

    def iter_tasks(self) -> Iterator[ProjectTask]:
        for stage in self.stages:
            yield from stage.tasks
        yield from self.tasks

    def iter_subtasks(self) -> Iterator[ProjectSubtask]:
        for task in self.iter_tasks():
            yield from task.subtasks

"""Typed failures surfaced by engine operations."""

from __future__ import annotations

from typing import Optional
from uuid import UUID


class EngineError(RuntimeError):
    """Base error raised by the blueprint engine."""

    def __init__(self, message: str, *, entity_id: Optional[UUID] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class NotFoundError(EngineError):
    """A referenced element is absent, or sits under a different parent."""

    entity = "Entity"

    def __init__(self, entity_id: UUID, message: Optional[str] = None) -> None:
        super().__init__(message or f"{self.entity} {entity_id} not found", entity_id=entity_id)


class TemplateNotFound(NotFoundError):
    entity = "Template"


class ProjectNotFound(NotFoundError):
    entity = "Project"


class StageNotFound(NotFoundError):
    entity = "Stage"


class TaskNotFound(NotFoundError):
    entity = "Task"


class SubtaskNotFound(NotFoundError):
    entity = "Subtask"


class ForbiddenError(EngineError):
    """The caller does not own the addressed project."""


class InvalidStateError(EngineError):
    """The requested change conflicts with the tree's rules."""

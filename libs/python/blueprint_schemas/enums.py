"""Enum definitions shared across the engine and its collaborators."""

from __future__ import annotations

from enum import Enum


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class TreeLevel(str, Enum):
    """Depth of an element inside a project tree."""

    STAGE = "stage"
    TASK = "task"
    SUBTASK = "subtask"


class StructureAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

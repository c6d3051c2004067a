"""Ownership and parent-scoping checks run before any mutation."""

from __future__ import annotations

from uuid import UUID

from blueprint_schemas import Project, ProjectSubtask, ProjectTask
from blueprint_store import ProjectRepository

from .errors import ForbiddenError, ProjectNotFound, SubtaskNotFound, TaskNotFound


def require_owned_project(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    *,
    missing_is_forbidden: bool = False,
) -> Project:
    """Return the project row when ``user_id`` owns it.

    A missing project raises :class:`ProjectNotFound`, or
    :class:`ForbiddenError` when ``missing_is_forbidden`` is set so callers
    cannot probe for ids they do not own.
    """

    project = store.find_owned_project(project_id, user_id)
    if project is not None:
        return project
    if missing_is_forbidden or store.get_project(project_id) is not None:
        raise ForbiddenError(f"Project {project_id} is not accessible", entity_id=project_id)
    raise ProjectNotFound(project_id)


def require_project_task(store: ProjectRepository, project_id: UUID, task_id: UUID) -> ProjectTask:
    task = store.get_task(task_id)
    if task is None or task.project_id != project_id:
        raise TaskNotFound(task_id)
    return task


def require_project_subtask(
    store: ProjectRepository, project_id: UUID, subtask_id: UUID
) -> tuple[ProjectSubtask, ProjectTask]:
    """Return the subtask with its parent task, both scoped to ``project_id``."""

    subtask = store.get_subtask(subtask_id)
    if subtask is None:
        raise SubtaskNotFound(subtask_id)
    task = store.get_task(subtask.task_id)
    if task is None or task.project_id != project_id:
        raise SubtaskNotFound(subtask_id)
    return subtask, task

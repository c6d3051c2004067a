"""Resolve the project's current achievement gem by walking stages in order."""

from __future__ import annotations

import logging
from typing import Iterable, Optional
from uuid import UUID

from blueprint_schemas import CompositeTask, ProjectStage, ProjectTask
from blueprint_store import ProjectRepository

from ..models import GemChange

logger = logging.getLogger(__name__)


def task_complete(task: ProjectTask) -> bool:
    shape = task.shape()
    if isinstance(shape, CompositeTask):
        return shape.completed_count == len(shape.subtasks)
    return shape.completed


def stage_complete(stage: ProjectStage) -> bool:
    # A stage without tasks has nothing left to do.
    return all(task_complete(task) for task in stage.tasks)


def stage_started(stage: ProjectStage) -> bool:
    return any(
        task_complete(task) or any(subtask.completed for subtask in task.subtasks)
        for task in stage.tasks
    )


def walk_stages(stages: Iterable[ProjectStage]) -> Optional[str]:
    """Return the gem of the last fully completed stage.

    When no stage is complete yet, the first stage contributes its gem once
    started. The first incomplete stage always ends the walk.
    """

    current: Optional[str] = None
    for stage in sorted(stages, key=lambda item: item.order):
        if stage_complete(stage):
            current = stage.gem_type
            continue
        if current is None and stage_started(stage):
            current = stage.gem_type
        break
    return current


def resolve_gem(store: ProjectRepository, project_id: UUID) -> GemChange:
    """Persist the resolved gem and report whether it differs from the stored one."""

    project = store.load_project_tree(project_id)
    if project is None:
        logger.debug("Gem resolution skipped for missing project", extra={"project_id": project_id})
        return GemChange(changed=False)

    previous = project.current_gem
    resolved = walk_stages(project.stages)
    if resolved == previous:
        return GemChange(changed=False, previous_gem=previous, new_gem=resolved)

    store.update_project(project_id, {"current_gem": resolved})
    logger.info(
        "Project gem changed",
        extra={"project_id": project_id, "previous_gem": previous, "new_gem": resolved},
    )
    return GemChange(changed=True, previous_gem=previous, new_gem=resolved)

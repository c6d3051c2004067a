"""Leaf-counted project progress."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from blueprint_schemas import Project
from blueprint_store import ProjectRepository

logger = logging.getLogger(__name__)


def compute_progress(project: Project) -> float:
    """Percentage of completed subtasks across staged and unstaged tasks."""

    total = 0
    completed = 0
    for subtask in project.iter_subtasks():
        total += 1
        completed += subtask.completed
    if total == 0:
        return 0.0
    return 100.0 * completed / total


def recalculate_progress(store: ProjectRepository, project_id: UUID) -> Optional[float]:
    """Recompute and persist ``progress``; ``None`` when the project is gone."""

    project = store.load_project_tree(project_id)
    if project is None:
        logger.debug("Progress recalculation skipped for missing project", extra={"project_id": project_id})
        return None

    progress = compute_progress(project)
    if progress != project.progress:
        store.update_project(project_id, {"progress": progress})
        logger.info("Project progress updated", extra={"project_id": project_id, "progress": progress})
    return progress

"""Derive task status bottom-up from subtask completion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from blueprint_schemas import CompositeTask, LeafTask, ProjectTask, TaskStatus
from blueprint_store import ProjectRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DerivedStatus:
    status: TaskStatus
    completed: bool


def derive_status(
    shape: Union[LeafTask, CompositeTask], previous_status: TaskStatus
) -> Optional[DerivedStatus]:
    """Return the status implied by ``shape``.

    ``None`` means the task is a leaf and its own fields are authoritative.
    A partially completed task is promoted from TODO to IN_PROGRESS and stays
    there; only the "nothing completed" branch resets it to TODO. DONE always
    implies ``completed``, so a partially completed DONE task drops to
    IN_PROGRESS.
    """

    if isinstance(shape, LeafTask):
        return None

    done = shape.completed_count
    if done == len(shape.subtasks):
        return DerivedStatus(TaskStatus.DONE, True)
    if done == 0:
        return DerivedStatus(TaskStatus.TODO, False)
    if previous_status == TaskStatus.IN_PROGRESS:
        return DerivedStatus(previous_status, False)
    return DerivedStatus(TaskStatus.IN_PROGRESS, False)


def propagate_from_subtasks(store: ProjectRepository, task_id: UUID) -> Optional[ProjectTask]:
    """Recompute and persist a task's status from its subtasks.

    Returns the task as it stands afterwards, or ``None`` when it no longer
    exists. The write is skipped when neither field changes.
    """

    task = store.get_task(task_id)
    if task is None:
        logger.debug("Status propagation skipped for missing task", extra={"task_id": task_id})
        return None

    task = task.model_copy(update={"subtasks": store.list_subtasks(task_id)})
    derived = derive_status(task.shape(), task.status)
    if derived is None or (derived.status, derived.completed) == (task.status, task.completed):
        return task

    store.update_task(task_id, {"status": derived.status, "completed": derived.completed})
    logger.info(
        "Task status derived from subtasks",
        extra={"task_id": task_id, "project_id": task.project_id, "status": derived.status},
    )
    return task.model_copy(update={"status": derived.status, "completed": derived.completed})

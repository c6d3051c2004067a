"""Externally triggered engine operations.

Each flow runs its whole chain synchronously: guard, write, then derived
state in the fixed order status -> progress -> gem. The repository is always
passed in explicitly.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Iterator, Optional, Union
from uuid import UUID

from blueprint_observability import (
    log_context,
    observe_operation,
    observe_structure_counts,
    record_gem_change,
)
from blueprint_schemas import Project, ProjectTask, StructureEdit, TaskStatus, TextLengthError
from blueprint_schemas.models.project import ANSWER_MAX_LENGTH, LINK_MAX_LENGTH
from blueprint_schemas.utils.validators import clean_optional_text
from blueprint_store import ProjectRepository

from .errors import EngineError, InvalidStateError
from .gems import engine as gem_engine
from .guards import require_owned_project, require_project_subtask, require_project_task
from .materialize import materialize
from .models import (
    DerivedState,
    GemChange,
    ReconciliationResult,
    SubtaskUpdateResult,
    TaskUpdateResult,
    ToggleResult,
)
from .progress import engine as progress_engine
from .status import propagate_from_subtasks
from .structure import reconcile

logger = logging.getLogger(__name__)
SERVICE_NAME = "engine"


@contextmanager
def _operation(name: str, **context: Any) -> Iterator[None]:
    start = perf_counter()
    status = "success"
    with log_context(operation=name, **context):
        try:
            yield
        except EngineError as exc:
            status = "rejected"
            logger.warning("Operation rejected: %s", exc.message, extra={"error": type(exc).__name__})
            raise
        except Exception:
            status = "error"
            logger.exception("Operation failed")
            raise
        else:
            logger.info(
                "Operation completed",
                extra={"latency_ms": round((perf_counter() - start) * 1000, 2)},
            )
        finally:
            observe_operation(name, perf_counter() - start, service_name=SERVICE_NAME, status=status)


def _note_gem_change(gem_change: GemChange) -> None:
    if gem_change.changed:
        record_gem_change(SERVICE_NAME)


def _refresh(store: ProjectRepository, project_id: UUID) -> DerivedState:
    progress = progress_engine.recalculate_progress(store, project_id)
    gem_change = gem_engine.resolve_gem(store, project_id)
    _note_gem_change(gem_change)
    return DerivedState(progress=progress or 0.0, gem_change=gem_change)


def _clean_text(value: Optional[str], *, limit: int, field_name: str, entity_id: UUID) -> Optional[str]:
    try:
        return clean_optional_text(value, limit=limit, field_name=field_name)
    except TextLengthError as exc:
        raise InvalidStateError(str(exc), entity_id=entity_id) from exc


# Projects


def create_project(
    store: ProjectRepository,
    user_id: UUID,
    template_id: UUID,
    name: Optional[str] = None,
) -> Project:
    with _operation("create_project", user_id=user_id, template_id=template_id):
        return materialize(store, template_id, user_id=user_id, name=name)


def list_projects(store: ProjectRepository, user_id: UUID) -> list[Project]:
    with _operation("list_projects", user_id=user_id):
        return store.list_projects(user_id)


def get_project(store: ProjectRepository, project_id: UUID, user_id: UUID) -> Project:
    with _operation("get_project", project_id=project_id, user_id=user_id):
        require_owned_project(store, project_id, user_id)
        return store.load_project_tree(project_id)


def delete_project(store: ProjectRepository, project_id: UUID, user_id: UUID) -> None:
    """Delete the project bottom-up: subtasks, tasks, stages, then the project row."""

    with _operation("delete_project", project_id=project_id, user_id=user_id):
        require_owned_project(store, project_id, user_id)
        project = store.load_project_tree(project_id)
        rows = 0
        for task in project.iter_tasks():
            for subtask in task.subtasks:
                store.delete_subtask(subtask.id)
                rows += 1
            store.delete_task(task.id)
            rows += 1
        for stage in project.stages:
            store.delete_stage(stage.id)
            rows += 1
        store.delete_project(project_id)
        logger.info("Project deleted", extra={"deleted_rows": rows + 1})


# Structure


def update_structure(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    edit: StructureEdit,
) -> ReconciliationResult:
    with _operation("update_structure", project_id=project_id, user_id=user_id):
        require_owned_project(store, project_id, user_id, missing_is_forbidden=True)
        result = reconcile(store, project_id, edit)
        observe_structure_counts(result.counts_by_level(), service_name=SERVICE_NAME)
        _note_gem_change(result.gem_change)
        return result


# Leaf mutations


def toggle_subtask(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    subtask_id: UUID,
) -> ToggleResult:
    """Flip a subtask's completion and run status, progress and gem in turn."""

    with _operation("toggle_subtask", project_id=project_id, user_id=user_id, subtask_id=subtask_id):
        require_owned_project(store, project_id, user_id)
        subtask, task = require_project_subtask(store, project_id, subtask_id)

        completed = not subtask.completed
        store.update_subtask(subtask_id, {"completed": completed})
        logger.info("Subtask toggled", extra={"task_id": task.id, "completed": completed})

        task = propagate_from_subtasks(store, task.id) or task
        derived = _refresh(store, project_id)
        return ToggleResult(
            updated=subtask.model_copy(update={"completed": completed}),
            task=task,
            progress=derived.progress,
            gem_change=derived.gem_change,
        )


def set_task_status(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    task_id: UUID,
    status: Union[str, TaskStatus],
) -> TaskUpdateResult:
    """Set the status of a task without subtasks; ``completed`` follows DONE."""

    with _operation("set_task_status", project_id=project_id, user_id=user_id, task_id=task_id):
        try:
            new_status = TaskStatus(status)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in TaskStatus)
            raise InvalidStateError(
                f"Unknown task status {status!r}; expected one of {allowed}", entity_id=task_id
            ) from exc

        require_owned_project(store, project_id, user_id)
        task = require_project_task(store, project_id, task_id)
        if store.list_subtasks(task_id):
            raise InvalidStateError(
                f"Task {task_id} status is derived from its subtasks", entity_id=task_id
            )

        completed = new_status == TaskStatus.DONE
        if (task.status, task.completed) != (new_status, completed):
            store.update_task(task_id, {"status": new_status, "completed": completed})
            logger.info("Task status set", extra={"status": new_status})
            task = task.model_copy(update={"status": new_status, "completed": completed})

        derived = _refresh(store, project_id)
        return TaskUpdateResult(updated=task, progress=derived.progress, gem_change=derived.gem_change)


def answer_subtask(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    subtask_id: UUID,
    answer: Optional[str],
) -> SubtaskUpdateResult:
    with _operation("answer_subtask", project_id=project_id, user_id=user_id, subtask_id=subtask_id):
        return _set_subtask_field(
            store, project_id, user_id, subtask_id, "answer", answer, limit=ANSWER_MAX_LENGTH
        )


def set_subtask_link(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    subtask_id: UUID,
    link: Optional[str],
) -> SubtaskUpdateResult:
    with _operation("set_subtask_link", project_id=project_id, user_id=user_id, subtask_id=subtask_id):
        return _set_subtask_field(
            store, project_id, user_id, subtask_id, "link", link, limit=LINK_MAX_LENGTH
        )


def _set_subtask_field(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    subtask_id: UUID,
    field_name: str,
    raw_value: Optional[str],
    *,
    limit: int,
) -> SubtaskUpdateResult:
    value = _clean_text(raw_value, limit=limit, field_name=f"Subtask {field_name}", entity_id=subtask_id)
    require_owned_project(store, project_id, user_id)
    subtask, task = require_project_subtask(store, project_id, subtask_id)

    if getattr(subtask, field_name) != value:
        store.update_subtask(subtask_id, {field_name: value})
        subtask = subtask.model_copy(update={field_name: value})

    derived = _refresh(store, project_id)
    return SubtaskUpdateResult(
        updated=subtask,
        task=task.model_copy(update={"subtasks": store.list_subtasks(task.id)}),
        progress=derived.progress,
        gem_change=derived.gem_change,
    )


def set_task_link(
    store: ProjectRepository,
    project_id: UUID,
    user_id: UUID,
    task_id: UUID,
    link: Optional[str],
) -> TaskUpdateResult:
    with _operation("set_task_link", project_id=project_id, user_id=user_id, task_id=task_id):
        value = _clean_text(link, limit=LINK_MAX_LENGTH, field_name="Task link", entity_id=task_id)
        require_owned_project(store, project_id, user_id)
        task: ProjectTask = require_project_task(store, project_id, task_id)

        if task.link != value:
            store.update_task(task_id, {"link": value})
            task = task.model_copy(update={"link": value})

        derived = _refresh(store, project_id)
        return TaskUpdateResult(updated=task, progress=derived.progress, gem_change=derived.gem_change)


# Derived state


def recalculate_progress(store: ProjectRepository, project_id: UUID) -> Optional[float]:
    with _operation("recalculate_progress", project_id=project_id):
        return progress_engine.recalculate_progress(store, project_id)


def resolve_gem(store: ProjectRepository, project_id: UUID) -> GemChange:
    with _operation("resolve_gem", project_id=project_id):
        gem_change = gem_engine.resolve_gem(store, project_id)
        _note_gem_change(gem_change)
        return gem_change


def refresh_derived_state(
    store: ProjectRepository,
    project_id: UUID,
    user_id: Optional[UUID] = None,
) -> DerivedState:
    """Recompute progress then gem; checks ownership when ``user_id`` is given."""

    with _operation("refresh_derived_state", project_id=project_id, user_id=user_id):
        if user_id is not None:
            require_owned_project(store, project_id, user_id)
        return _refresh(store, project_id)

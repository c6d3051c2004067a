"""Apply planned structure edits and run the derived-state chain."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from blueprint_schemas import Project, StructureAction, StructureEdit, TreeLevel
from blueprint_store import ProjectRepository

from ..errors import ProjectNotFound, StageNotFound, SubtaskNotFound, TaskNotFound
from ..gems import resolve_gem
from ..models import ReconciliationResult
from ..progress import recalculate_progress
from ..status import propagate_from_subtasks
from .planner import StructureOp, StructurePlan, plan_structure

logger = logging.getLogger(__name__)

_NOT_FOUND = {
    TreeLevel.STAGE: StageNotFound,
    TreeLevel.TASK: TaskNotFound,
    TreeLevel.SUBTASK: SubtaskNotFound,
}


def apply_plan(store: ProjectRepository, plan: StructurePlan) -> None:
    """Execute plan operations in order; parents are always written before children."""

    for op in plan.operations:
        _apply(store, op)

    for level, row_id in plan.unmatched:
        logger.warning(
            "Unmatched %s id created as a new row",
            level.value,
            extra={"project_id": plan.project_id, f"{level.value}_id": row_id},
        )


def _apply(store: ProjectRepository, op: StructureOp) -> None:
    if op.action == StructureAction.DELETE:
        delete = {
            TreeLevel.STAGE: store.delete_stage,
            TreeLevel.TASK: store.delete_task,
            TreeLevel.SUBTASK: store.delete_subtask,
        }[op.level]
        delete(op.row_id)
    elif op.action == StructureAction.CREATE:
        insert = {
            TreeLevel.STAGE: store.insert_stage,
            TreeLevel.TASK: store.insert_task,
            TreeLevel.SUBTASK: store.insert_subtask,
        }[op.level]
        insert(op.row)
    else:
        update = {
            TreeLevel.STAGE: store.update_stage,
            TreeLevel.TASK: store.update_task,
            TreeLevel.SUBTASK: store.update_subtask,
        }[op.level]
        # False when the row was deleted after planning.
        if not update(op.row_id, op.fields):
            raise _NOT_FOUND[op.level](op.row_id)


def reconcile(store: ProjectRepository, project_id: UUID, edit: StructureEdit) -> ReconciliationResult:
    """Reconcile ``edit`` against the stored tree of ``project_id``.

    Ownership is checked by the caller. The chain after the structural writes
    is status propagation, then progress, then gem resolution.
    """

    existing = store.load_project_tree(project_id)
    if existing is None:
        raise ProjectNotFound(project_id)

    plan = plan_structure(existing, edit)
    if plan.has_writes:
        apply_plan(store, plan)
        store.update_project(project_id, {"updated_at": datetime.utcnow()})

    for task_id in plan.task_ids:
        propagate_from_subtasks(store, task_id)
    recalculate_progress(store, project_id)
    gem_change = resolve_gem(store, project_id)

    project: Project = store.load_project_tree(project_id)
    logger.info(
        "Structure reconciled",
        extra={
            "project_id": project_id,
            "operation_count": len(plan.operations),
            "rows_created": sum(counts.created for counts in plan.counts.values()),
            "rows_deleted": sum(counts.deleted for counts in plan.counts.values()),
        },
    )
    return ReconciliationResult(
        project=project,
        stages=plan.counts[TreeLevel.STAGE],
        tasks=plan.counts[TreeLevel.TASK],
        subtasks=plan.counts[TreeLevel.SUBTASK],
        gem_change=gem_change,
    )

"""Pure planning step of structure reconciliation.

The planner matches a submitted edit against the persisted tree sibling group
by sibling group and emits an ordered list of row operations. It performs no
I/O, so every validation failure surfaces before the first write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, TypeVar, Union
from uuid import UUID

from blueprint_schemas import (
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    StageEdit,
    StructureAction,
    StructureEdit,
    SubtaskEdit,
    TaskEdit,
    TreeLevel,
)

from ..errors import InvalidStateError
from ..models import LevelCounts

Row = Union[ProjectStage, ProjectTask, ProjectSubtask]
_R = TypeVar("_R", ProjectStage, ProjectTask, ProjectSubtask)
_E = TypeVar("_E", StageEdit, TaskEdit, SubtaskEdit)

_REQUIRED = {
    TreeLevel.STAGE: "name",
    TreeLevel.TASK: "title",
    TreeLevel.SUBTASK: "description",
}


@dataclass(frozen=True)
class StructureOp:
    """One row write. ``row`` is set for creates, ``fields`` for updates."""

    action: StructureAction
    level: TreeLevel
    row_id: UUID
    fields: Mapping[str, Any] = field(default_factory=dict)
    row: Optional[Row] = None


@dataclass
class StructurePlan:
    project_id: UUID
    operations: list[StructureOp] = field(default_factory=list)
    counts: dict[TreeLevel, LevelCounts] = field(
        default_factory=lambda: {level: LevelCounts() for level in TreeLevel}
    )
    # Tasks present in the submitted tree, in submission order.
    task_ids: list[UUID] = field(default_factory=list)
    # Ids that matched nothing in their sibling group and fell back to create.
    unmatched: list[tuple[TreeLevel, UUID]] = field(default_factory=list)

    @property
    def has_writes(self) -> bool:
        return bool(self.operations)

    def add(self, op: StructureOp) -> None:
        self.operations.append(op)
        counts = self.counts[op.level]
        if op.action == StructureAction.CREATE:
            counts.created += 1
        elif op.action == StructureAction.UPDATE:
            counts.updated += 1
        else:
            counts.deleted += 1


def plan_structure(existing: Project, edit: StructureEdit) -> StructurePlan:
    """Plan the writes that turn ``existing`` into the submitted structure.

    ``existing`` must be a fully loaded tree. Each top-level group (stages,
    unstaged tasks) is reconciled only when the edit supplies it.
    """

    plan = StructurePlan(project_id=existing.id)
    if edit.stages is not None:
        _plan_stages(existing, edit.stages, plan)
    if edit.tasks is not None:
        _plan_tasks(existing.id, None, existing.tasks, edit.tasks, plan)
    return plan


def _plan_stages(existing: Project, edits: Sequence[StageEdit], plan: StructurePlan) -> None:
    pairs, removed = _match(existing.stages, edits, TreeLevel.STAGE, plan)

    for stage in removed:
        _delete_stage(stage, plan)

    for position, (stage_edit, stage) in enumerate(pairs):
        if stage is None:
            stage_id = _create_stage(existing.id, stage_edit, position, plan)
            current_tasks: Sequence[ProjectTask] = ()
        else:
            stage_id = stage.id
            _update_row(stage, stage_edit, ("name", "description", "gem_type"), position, TreeLevel.STAGE, plan)
            current_tasks = stage.tasks
        if stage is None or stage_edit.tasks is not None:
            _plan_tasks(existing.id, stage_id, current_tasks, stage_edit.tasks or [], plan)


def _match(
    rows: Sequence[_R],
    edits: Sequence[_E],
    level: TreeLevel,
    plan: StructurePlan,
) -> tuple[list[tuple[_E, Optional[_R]]], list[_R]]:
    """Pair each edit with the sibling row sharing its id.

    Only the first occurrence of an id matches; repeats and ids from any other
    parent are treated as new rows.
    """

    by_id = {row.id: row for row in rows}
    claimed: set[UUID] = set()
    pairs: list[tuple[_E, Optional[_R]]] = []
    for edit in edits:
        row = None
        if edit.id is not None:
            if edit.id in by_id and edit.id not in claimed:
                row = by_id[edit.id]
                claimed.add(edit.id)
                plan.counts[level].matched += 1
            else:
                plan.unmatched.append((level, edit.id))
        pairs.append((edit, row))
    removed = [row for row in rows if row.id not in claimed]
    return pairs, removed


def _require_creatable(edit: _E, level: TreeLevel) -> None:
    required = _REQUIRED[level]
    if getattr(edit, required) is None:
        raise InvalidStateError(f"Cannot create a {level.value} without a {required}")


def _update_row(
    row: Row,
    edit: _E,
    names: Sequence[str],
    position: int,
    level: TreeLevel,
    plan: StructurePlan,
) -> None:
    provided = edit.provided(*names)
    required = _REQUIRED[level]
    if required in provided and provided[required] is None:
        raise InvalidStateError(f"{level.value.capitalize()} {required} cannot be cleared", entity_id=row.id)

    changes = {name: value for name, value in provided.items() if getattr(row, name) != value}
    if row.order != position:
        changes["order"] = position
    if changes:
        plan.add(StructureOp(StructureAction.UPDATE, level, row.id, fields=changes))


def _create_stage(project_id: UUID, edit: StageEdit, position: int, plan: StructurePlan) -> UUID:
    _require_creatable(edit, TreeLevel.STAGE)
    stage = ProjectStage(
        project_id=project_id,
        order=position,
        **edit.provided("name", "description", "gem_type"),
    )
    plan.add(StructureOp(StructureAction.CREATE, TreeLevel.STAGE, stage.id, row=stage))
    return stage.id


def _delete_stage(stage: ProjectStage, plan: StructurePlan) -> None:
    for task in stage.tasks:
        _delete_task(task, plan)
    plan.add(StructureOp(StructureAction.DELETE, TreeLevel.STAGE, stage.id))


def _delete_task(task: ProjectTask, plan: StructurePlan) -> None:
    for subtask in task.subtasks:
        plan.add(StructureOp(StructureAction.DELETE, TreeLevel.SUBTASK, subtask.id))
    plan.add(StructureOp(StructureAction.DELETE, TreeLevel.TASK, task.id))


def _plan_tasks(
    project_id: UUID,
    stage_id: Optional[UUID],
    rows: Sequence[ProjectTask],
    edits: Sequence[TaskEdit],
    plan: StructurePlan,
) -> None:
    pairs, removed = _match(rows, edits, TreeLevel.TASK, plan)
    for task in removed:
        _delete_task(task, plan)

    for position, (task_edit, task) in enumerate(pairs):
        if task is None:
            _require_creatable(task_edit, TreeLevel.TASK)
            task = ProjectTask(
                project_id=project_id,
                stage_id=stage_id,
                order=position,
                **task_edit.provided("title", "description", "link"),
            )
            plan.add(StructureOp(StructureAction.CREATE, TreeLevel.TASK, task.id, row=task))
            current_subtasks: Sequence[ProjectSubtask] = ()
            reconcile_children = True
        else:
            _update_row(task, task_edit, ("title", "description", "link"), position, TreeLevel.TASK, plan)
            current_subtasks = task.subtasks
            reconcile_children = task_edit.subtasks is not None

        plan.task_ids.append(task.id)
        if reconcile_children:
            _plan_subtasks(task.id, current_subtasks, task_edit.subtasks or [], plan)


def _plan_subtasks(
    task_id: UUID,
    rows: Sequence[ProjectSubtask],
    edits: Sequence[SubtaskEdit],
    plan: StructurePlan,
) -> None:
    pairs, removed = _match(rows, edits, TreeLevel.SUBTASK, plan)
    for subtask in removed:
        plan.add(StructureOp(StructureAction.DELETE, TreeLevel.SUBTASK, subtask.id))

    for position, (subtask_edit, subtask) in enumerate(pairs):
        if subtask is None:
            _require_creatable(subtask_edit, TreeLevel.SUBTASK)
            created = ProjectSubtask(task_id=task_id, order=position, description=subtask_edit.description)
            plan.add(StructureOp(StructureAction.CREATE, TreeLevel.SUBTASK, created.id, row=created))
        else:
            _update_row(subtask, subtask_edit, ("description",), position, TreeLevel.SUBTASK, plan)

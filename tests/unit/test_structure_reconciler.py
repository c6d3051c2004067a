"""Tests for planning and applying structure edits."""

import logging
from uuid import uuid4

import pytest

from blueprint_schemas import (
    StageEdit,
    StructureAction,
    StructureEdit,
    SubtaskEdit,
    TaskEdit,
    TaskStatus,
    TreeLevel,
)

from services.engine.app.errors import InvalidStateError, ProjectNotFound, StageNotFound
from services.engine.app.flows import create_project, toggle_subtask
from services.engine.app.structure import apply_plan, plan_structure, reconcile
from services.engine.app.templates import create_template
from tests.utils.builders import make_draft, mirror_edit


def _writes(store) -> int:
    return sum(store.operations.values())


def test_identical_resubmission_is_idempotent(store, project) -> None:
    before = _writes(store)

    result = reconcile(store, project.id, mirror_edit(project))

    assert _writes(store) == before
    assert result.stages.matched == 2
    assert result.tasks.matched == 4
    assert result.subtasks.matched == 8
    for counts in (result.stages, result.tasks, result.subtasks):
        assert (counts.created, counts.updated, counts.deleted) == (0, 0, 0)
    assert [stage.order for stage in result.project.stages] == [0, 1]
    assert result.project == store.load_project_tree(project.id)


def test_removing_a_stage_cascades_and_reorders(store, user_id) -> None:
    three = create_template(store, make_draft(stages=3))
    project = store.load_project_tree(create_project(store, user_id, three.id).id)
    removed = project.stages[1]
    edit = mirror_edit(project)
    edit.stages.pop(1)

    result = reconcile(store, project.id, edit)

    assert result.stages.deleted == 1
    assert result.tasks.deleted == 2
    assert result.subtasks.deleted == 4
    assert result.stages.created == 0
    assert [stage.id for stage in result.project.stages] == [project.stages[0].id, project.stages[2].id]
    assert [stage.order for stage in result.project.stages] == [0, 1]
    assert store.list_stage_tasks(removed.id) == []
    assert all(store.get_task(task.id) is None for task in removed.tasks)


def test_partial_edit_only_overwrites_supplied_fields(store, project) -> None:
    stage = project.stages[0]
    edit = StructureEdit(
        stages=[
            StageEdit(id=stage.id, name="Renamed"),
            StageEdit(id=project.stages[1].id),
        ]
    )

    result = reconcile(store, project.id, edit)

    updated = result.project.stages[0]
    assert updated.name == "Renamed"
    assert updated.description == stage.description
    assert updated.gem_type == stage.gem_type
    assert [task.id for task in updated.tasks] == [task.id for task in stage.tasks]
    assert result.stages.updated == 1
    assert result.tasks.matched == 0


def test_reordering_reassigns_positions(store, project) -> None:
    edit = mirror_edit(project)
    edit.stages.reverse()
    edit.stages[0].tasks.reverse()

    result = reconcile(store, project.id, edit)

    assert [stage.id for stage in result.project.stages] == [project.stages[1].id, project.stages[0].id]
    assert [task.id for task in result.project.stages[0].tasks] == [
        task.id for task in reversed(project.stages[1].tasks)
    ]
    assert result.stages.updated == 2
    assert result.stages.created == result.stages.deleted == 0


def test_wrong_parent_id_is_recreated_not_relinked(store, project, caplog) -> None:
    foreign = project.stages[1].tasks[0]
    edit = mirror_edit(project)
    edit.stages[0].tasks.append(TaskEdit(id=foreign.id, title=foreign.title))

    with caplog.at_level(logging.WARNING):
        result = reconcile(store, project.id, edit)

    created = result.project.stages[0].tasks[2]
    assert created.id != foreign.id
    assert created.title == foreign.title
    assert store.get_task(foreign.id).stage_id == project.stages[1].id
    assert result.tasks.created == 1
    assert any(getattr(record, "task_id", None) == foreign.id for record in caplog.records)


def test_unknown_id_falls_back_to_create(store, project) -> None:
    ghost = uuid4()
    edit = mirror_edit(project)
    edit.stages.append(StageEdit(id=ghost, name="Retried", tasks=[TaskEdit(title="Again")]))

    plan = plan_structure(store.load_project_tree(project.id), edit)
    assert plan.unmatched == [(TreeLevel.STAGE, ghost)]

    result = reconcile(store, project.id, edit)

    assert result.stages.created == 1
    assert result.tasks.created == 1
    assert ghost not in {stage.id for stage in result.project.stages}
    assert result.project.stages[2].name == "Retried"


def test_duplicate_ids_match_only_once(store, project) -> None:
    stage = project.stages[0]
    edit = mirror_edit(project)
    edit.stages.append(StageEdit(id=stage.id, name="Copy"))

    result = reconcile(store, project.id, edit)

    assert result.stages.matched == 2
    assert result.stages.created == 1
    assert len(result.project.stages) == 3


def test_create_without_name_is_rejected_before_writes(store, project) -> None:
    before = _writes(store)
    edit = mirror_edit(project)
    edit.stages.insert(0, StageEdit(description="No name"))

    with pytest.raises(InvalidStateError):
        reconcile(store, project.id, edit)

    with pytest.raises(InvalidStateError):
        reconcile(
            store,
            project.id,
            StructureEdit(stages=[StageEdit(id=project.stages[0].id, tasks=[TaskEdit(subtasks=[])])]),
        )
    assert _writes(store) == before


def test_explicit_empty_list_clears_children(store, project) -> None:
    stage = project.stages[0]
    task = stage.tasks[0]
    edit = StructureEdit(
        stages=[
            StageEdit(id=stage.id, tasks=[TaskEdit(id=task.id, subtasks=[])]),
            StageEdit(id=project.stages[1].id, tasks=[]),
        ]
    )

    result = reconcile(store, project.id, edit)

    assert [t.id for t in result.project.stages[0].tasks] == [task.id]
    assert result.project.stages[0].tasks[0].subtasks == []
    assert result.project.stages[1].tasks == []
    assert result.tasks.deleted == 3
    assert result.subtasks.deleted == 2 + 2 + 4


def test_plan_orders_deletes_before_creates(store, project) -> None:
    edit = mirror_edit(project)
    edit.stages[0] = StageEdit(
        name="Fresh",
        tasks=[TaskEdit(title="New", subtasks=[SubtaskEdit(description="s")])],
    )

    plan = plan_structure(project, edit)

    actions = [(op.action, op.level) for op in plan.operations]
    first_create = actions.index((StructureAction.CREATE, TreeLevel.STAGE))
    assert actions[:first_create] == [
        (StructureAction.DELETE, TreeLevel.SUBTASK),
        (StructureAction.DELETE, TreeLevel.SUBTASK),
        (StructureAction.DELETE, TreeLevel.TASK),
        (StructureAction.DELETE, TreeLevel.SUBTASK),
        (StructureAction.DELETE, TreeLevel.SUBTASK),
        (StructureAction.DELETE, TreeLevel.TASK),
        (StructureAction.DELETE, TreeLevel.STAGE),
    ]
    assert actions[first_create + 1:first_create + 3] == [
        (StructureAction.CREATE, TreeLevel.TASK),
        (StructureAction.CREATE, TreeLevel.SUBTASK),
    ]


def test_removing_open_subtask_completes_task(store, project, user_id) -> None:
    stage = project.stages[0]
    task = stage.tasks[0]
    done, open_ = task.subtasks
    toggle_subtask(store, project.id, user_id, done.id)
    assert store.get_task(task.id).status == TaskStatus.IN_PROGRESS

    edit = StructureEdit(
        stages=[
            StageEdit(
                id=stage.id,
                tasks=[
                    TaskEdit(id=task.id, subtasks=[SubtaskEdit(id=done.id)]),
                    TaskEdit(id=stage.tasks[1].id),
                ],
            ),
            StageEdit(id=project.stages[1].id),
        ]
    )
    result = reconcile(store, project.id, edit)

    assert store.get_task(task.id).status == TaskStatus.DONE
    assert store.get_subtask(open_.id) is None
    assert result.project.progress == pytest.approx(100 * 1 / 7)


def test_unstaged_tasks_reconcile_only_when_supplied(store, user_id) -> None:

    template = create_template(store, make_draft(stages=1, unstaged=2))
    project = store.load_project_tree(create_project(store, user_id, template.id).id)

    untouched = reconcile(store, project.id, mirror_edit(project, include_unstaged=False))
    assert len(untouched.project.tasks) == 2

    edit = mirror_edit(project)
    edit.tasks = [TaskEdit(id=project.tasks[1].id), TaskEdit(title="Loose end")]
    result = reconcile(store, project.id, edit)

    assert result.project.tasks[0].id == project.tasks[1].id
    assert result.project.tasks[1].title == "Loose end"
    assert result.project.tasks[1].stage_id is None
    assert result.tasks.deleted == 1


def test_reconcile_missing_project(store) -> None:
    with pytest.raises(ProjectNotFound):
        reconcile(store, uuid4(), StructureEdit())


def test_reconcile_logs_summary_at_info(store, project, caplog) -> None:
    edit = mirror_edit(project)
    edit.stages.append(StageEdit(name="Launch", tasks=[TaskEdit(title="Ship it")]))

    with caplog.at_level(logging.INFO):
        result = reconcile(store, project.id, edit)

    assert result.stages.created == 1
    summary = next(record for record in caplog.records if record.getMessage() == "Structure reconciled")
    assert summary.rows_created == 2
    assert summary.rows_deleted == 0


def test_omitted_stage_list_leaves_stages_untouched(store, user_id) -> None:
    template = create_template(store, make_draft(stages=2, unstaged=1))
    project = store.load_project_tree(create_project(store, user_id, template.id).id)

    edit = StructureEdit.model_validate({"tasks": [{"title": "Loose task"}]})
    result = reconcile(store, project.id, edit)

    assert [stage.id for stage in result.project.stages] == [stage.id for stage in project.stages]
    assert (result.stages.deleted, result.tasks.deleted) == (0, 1)
    assert result.subtasks.deleted == 2
    assert [task.title for task in result.project.tasks] == ["Loose task"]


def test_update_of_row_deleted_after_planning_raises(store, project) -> None:
    stage = project.stages[0]
    plan = plan_structure(
        store.load_project_tree(project.id),
        StructureEdit(stages=[StageEdit(id=stage.id, name="Renamed"), StageEdit(id=project.stages[1].id)]),
    )
    for task in stage.tasks:
        for subtask in task.subtasks:
            store.delete_subtask(subtask.id)
        store.delete_task(task.id)
    store.delete_stage(stage.id)

    with pytest.raises(StageNotFound) as excinfo:
        apply_plan(store, plan)

    assert excinfo.value.entity_id == stage.id

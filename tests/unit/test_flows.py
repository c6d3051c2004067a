"""Tests for guarded engine operations."""

from uuid import uuid4

import pytest

from blueprint_schemas import StageEdit, StructureEdit, TaskStatus

from services.engine.app import flows
from services.engine.app.errors import (
    ForbiddenError,
    InvalidStateError,
    ProjectNotFound,
    SubtaskNotFound,
    TaskNotFound,
    TemplateNotFound,
)
from services.engine.app.templates import create_template
from tests.utils.builders import make_draft


@pytest.fixture
def leaf_project(store, user_id):
    template = create_template(store, make_draft(stages=1, tasks=2, subtasks=0))
    return store.load_project_tree(flows.create_project(store, user_id, template.id).id)


def test_create_project_defaults_name_to_template(store, template, user_id) -> None:
    project = flows.create_project(store, user_id, template.id)

    assert project.name == template.name
    assert [p.id for p in flows.list_projects(store, user_id)] == [project.id]
    assert flows.list_projects(store, uuid4()) == []
    with pytest.raises(TemplateNotFound):
        flows.create_project(store, user_id, uuid4())


def test_get_project_guards_ownership(store, project, user_id) -> None:
    assert flows.get_project(store, project.id, user_id) == project

    with pytest.raises(ForbiddenError):
        flows.get_project(store, project.id, uuid4())
    with pytest.raises(ProjectNotFound):
        flows.get_project(store, uuid4(), user_id)


def test_update_structure_hides_missing_projects(store, project, user_id) -> None:
    with pytest.raises(ForbiddenError):
        flows.update_structure(store, uuid4(), user_id, StructureEdit())
    with pytest.raises(ForbiddenError):
        flows.update_structure(store, project.id, uuid4(), StructureEdit())


def test_update_structure_runs_derived_chain(store, project, user_id) -> None:
    edit = StructureEdit(stages=[StageEdit(id=project.stages[1].id), StageEdit(name="Empty", gem_type="zero")])

    result = flows.update_structure(store, project.id, user_id, edit)

    assert result.stages.deleted == 1
    assert result.stages.created == 1
    assert result.project.current_gem is None
    assert result.gem_change.changed is False


def test_toggle_returns_updated_state(store, project, user_id) -> None:
    subtask = project.stages[0].tasks[0].subtasks[0]

    result = flows.toggle_subtask(store, project.id, user_id, subtask.id)

    assert result.updated.id == subtask.id
    assert result.updated.completed is True
    assert result.progress == pytest.approx(100 / 8)
    assert result.gem_change.new_gem == "gem-0"
    assert store.get_project(project.id).progress == pytest.approx(100 / 8)


def test_toggle_scopes_subtask_to_project(store, template, project, user_id) -> None:
    other = store.load_project_tree(flows.create_project(store, user_id, template.id).id)
    foreign = other.stages[0].tasks[0].subtasks[0]

    with pytest.raises(SubtaskNotFound):
        flows.toggle_subtask(store, project.id, user_id, foreign.id)
    with pytest.raises(SubtaskNotFound):
        flows.toggle_subtask(store, project.id, user_id, uuid4())
    with pytest.raises(ForbiddenError):
        flows.toggle_subtask(store, project.id, uuid4(), project.stages[0].tasks[0].subtasks[0].id)
    assert store.get_subtask(foreign.id).completed is False


def test_set_task_status_on_leaf_task(store, leaf_project, user_id) -> None:
    first, second = leaf_project.stages[0].tasks

    result = flows.set_task_status(store, leaf_project.id, user_id, first.id, "DONE")
    assert result.updated.status == TaskStatus.DONE
    assert result.updated.completed is True
    assert result.gem_change.new_gem == "gem-0"

    result = flows.set_task_status(store, leaf_project.id, user_id, second.id, TaskStatus.DONE)
    assert store.get_project(leaf_project.id).current_gem == "gem-0"

    result = flows.set_task_status(store, leaf_project.id, user_id, first.id, "IN_PROGRESS")
    assert store.get_task(first.id).completed is False
    assert result.progress == 0.0


def test_set_task_status_rejects_unknown_values(store, leaf_project, user_id) -> None:
    task = leaf_project.stages[0].tasks[0]

    with pytest.raises(InvalidStateError):
        flows.set_task_status(store, leaf_project.id, user_id, task.id, "FINISHED")
    with pytest.raises(TaskNotFound):
        flows.set_task_status(store, leaf_project.id, user_id, uuid4(), "DONE")
    assert store.get_task(task.id).status == TaskStatus.TODO


def test_set_task_status_rejects_derived_tasks(store, project, user_id) -> None:
    task = project.stages[0].tasks[0]

    with pytest.raises(InvalidStateError):
        flows.set_task_status(store, project.id, user_id, task.id, "DONE")


def test_answer_and_links_are_normalised(store, project, user_id) -> None:
    task = project.stages[0].tasks[0]
    subtask = task.subtasks[0]

    result = flows.answer_subtask(store, project.id, user_id, subtask.id, "  Developers  ")
    assert result.updated.answer == "Developers"
    assert result.task.id == task.id

    flows.set_subtask_link(store, project.id, user_id, subtask.id, "https://example.com/brief")
    flows.set_task_link(store, project.id, user_id, task.id, "https://example.com/task")
    assert store.get_subtask(subtask.id).link == "https://example.com/brief"
    assert store.get_task(task.id).link == "https://example.com/task"

    flows.answer_subtask(store, project.id, user_id, subtask.id, "   ")
    assert store.get_subtask(subtask.id).answer is None

    with pytest.raises(InvalidStateError):
        flows.answer_subtask(store, project.id, user_id, subtask.id, "x" * 2001)


def test_delete_project_removes_whole_tree(store, project, user_id) -> None:
    with pytest.raises(ForbiddenError):
        flows.delete_project(store, project.id, uuid4())

    flows.delete_project(store, project.id, user_id)

    assert store.get_project(project.id) is None
    assert store.write_count("delete", "subtasks") == 8
    assert store.write_count("delete", "tasks") == 4
    assert store.write_count("delete", "stages") == 2


def test_derived_state_helpers(store, project, user_id) -> None:
    assert flows.recalculate_progress(store, uuid4()) is None
    assert flows.resolve_gem(store, uuid4()).changed is False

    store.update_subtask(project.stages[0].tasks[0].subtasks[0].id, {"completed": True})
    state = flows.refresh_derived_state(store, project.id, user_id)

    assert state.progress == pytest.approx(12.5)
    assert state.gem_change.new_gem == "gem-0"
    with pytest.raises(ForbiddenError):
        flows.refresh_derived_state(store, project.id, uuid4())

"""Tests for ordered gem resolution."""

from uuid import uuid4

import pytest

from blueprint_schemas import StageDraft, SubtaskDraft, TaskDraft, TemplateDraft

from services.engine.app.flows import create_project, set_task_status, toggle_subtask
from services.engine.app.gems import resolve_gem, walk_stages
from services.engine.app.templates import create_template


@pytest.fixture
def abc_project(store, user_id):
    draft = TemplateDraft(
        name="Gems",
        stages=[
            StageDraft(
                name=f"Stage {gem}",
                gem_type=gem,
                tasks=[
                    TaskDraft(
                        title=f"{gem} task {t}",
                        subtasks=[SubtaskDraft(description=f"{gem} step {s}") for s in range(2)],
                    )
                    for t in range(2)
                ],
            )
            for gem in ("A", "B", "C")
        ],
    )
    template = create_template(store, draft)
    project = create_project(store, user_id, template.id)
    return store.load_project_tree(project.id)


def _complete_stage(store, project, user_id, index: int) -> None:
    for task in project.stages[index].tasks:
        for subtask in task.subtasks:
            toggle_subtask(store, project.id, user_id, subtask.id)


def test_nothing_completed_keeps_gem_empty(store, abc_project) -> None:
    change = resolve_gem(store, abc_project.id)

    assert change.changed is False
    assert change.new_gem is None
    assert store.get_project(abc_project.id).current_gem is None


def test_started_first_stage_awards_its_gem(store, abc_project, user_id) -> None:
    first = abc_project.stages[0].tasks[0].subtasks[0]
    result = toggle_subtask(store, abc_project.id, user_id, first.id)

    assert result.gem_change.changed is True
    assert result.gem_change.previous_gem is None
    assert result.gem_change.new_gem == "A"


def test_started_second_stage_keeps_last_completed_gem(store, abc_project, user_id) -> None:
    """Stage A complete and stage B started still yields A, not B.

    The walk stops at the first incomplete stage after a complete one, so the
    gem only moves to B once stage B completes.
    """

    _complete_stage(store, abc_project, user_id, 0)
    task = abc_project.stages[1].tasks[0]
    for subtask in task.subtasks:
        toggle_subtask(store, abc_project.id, user_id, subtask.id)

    assert store.get_project(abc_project.id).current_gem == "A"


def test_last_fully_completed_stage_wins(store, abc_project, user_id) -> None:
    _complete_stage(store, abc_project, user_id, 0)
    _complete_stage(store, abc_project, user_id, 1)

    tree = store.load_project_tree(abc_project.id)
    assert tree.current_gem == "B"
    assert walk_stages(tree.stages) == "B"
    assert tree.progress == pytest.approx(100 * 8 / 12)


def test_incomplete_stage_halts_the_walk(store, abc_project, user_id) -> None:
    _complete_stage(store, abc_project, user_id, 0)
    _complete_stage(store, abc_project, user_id, 2)

    assert store.get_project(abc_project.id).current_gem == "A"


def test_gem_drops_back_when_stage_reopens(store, abc_project, user_id) -> None:
    _complete_stage(store, abc_project, user_id, 0)
    reopened = abc_project.stages[0].tasks[0].subtasks[0]

    result = toggle_subtask(store, abc_project.id, user_id, reopened.id)

    # Stage A is still started, so its gem stays awarded.
    assert result.gem_change.changed is False
    assert result.gem_change.new_gem == "A"


def test_empty_stage_counts_as_complete(store, user_id) -> None:
    draft = TemplateDraft(
        name="Sparse",
        stages=[
            StageDraft(name="Intro", gem_type="welcome"),
            StageDraft(name="Work", gem_type="worker", tasks=[TaskDraft(title="Solo")]),
        ],
    )
    template = create_template(store, draft)
    project = create_project(store, user_id, template.id)

    assert resolve_gem(store, project.id).new_gem == "welcome"

    solo = store.load_project_tree(project.id).stages[1].tasks[0]
    result = set_task_status(store, project.id, user_id, solo.id, "DONE")
    assert result.gem_change.new_gem == "worker"


def test_resolve_gem_on_missing_project_is_noop(store) -> None:
    change = resolve_gem(store, uuid4())

    assert change.changed is False
    assert store.write_count("update") == 0

"""Instantiate a fresh project tree from a template snapshot."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID, uuid4

from blueprint_schemas import (
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    TaskStatus,
    Template,
    TemplateTask,
)
from blueprint_store import ProjectRepository

from ..errors import TemplateNotFound

logger = logging.getLogger(__name__)


def build_project_tree(
    template: Template,
    *,
    user_id: UUID,
    name: Optional[str] = None,
    project_id: Optional[UUID] = None,
) -> Project:
    """Return an unsaved project mirroring ``template`` with fresh ids.

    Stages, tasks and subtasks are walked in ascending ``order`` and keep their
    template order; every completion flag starts false and progress at zero.
    """

    project_id = project_id or uuid4()
    stages = []
    for template_stage in sorted(template.stages, key=lambda stage: stage.order):
        stage_id = uuid4()
        stages.append(
            ProjectStage(
                id=stage_id,
                project_id=project_id,
                name=template_stage.name,
                description=template_stage.description,
                order=template_stage.order,
                gem_type=template_stage.gem_type,
                tasks=[
                    _build_task(task, project_id=project_id, stage_id=stage_id)
                    for task in sorted(template_stage.tasks, key=lambda task: task.order)
                ],
            )
        )

    return Project(
        id=project_id,
        user_id=user_id,
        template_id=template.id,
        name=name or template.name,
        progress=0.0,
        current_gem=None,
        stages=stages,
        tasks=[
            _build_task(task, project_id=project_id, stage_id=None)
            for task in sorted(template.tasks, key=lambda task: task.order)
        ],
    )


def _build_task(template_task: TemplateTask, *, project_id: UUID, stage_id: Optional[UUID]) -> ProjectTask:
    task_id = uuid4()
    return ProjectTask(
        id=task_id,
        project_id=project_id,
        stage_id=stage_id,
        title=template_task.title,
        description=template_task.description,
        order=template_task.order,
        status=TaskStatus.TODO,
        completed=False,
        subtasks=[
            ProjectSubtask(
                task_id=task_id,
                description=subtask.description,
                order=subtask.order,
                completed=False,
            )
            for subtask in sorted(template_task.subtasks, key=lambda subtask: subtask.order)
        ],
    )


def materialize(
    store: ProjectRepository,
    template_id: UUID,
    *,
    user_id: UUID,
    name: Optional[str] = None,
) -> Project:
    """Read the template, then write the whole project tree in one transaction."""

    template = store.get_template(template_id)
    if template is None:
        raise TemplateNotFound(template_id)

    project = build_project_tree(template, user_id=user_id, name=name)
    store.insert_project_tree(project)
    logger.info(
        "Project materialized",
        extra={
            "project_id": project.id,
            "template_id": template.id,
            "stage_count": len(project.stages),
            "task_count": sum(1 for _ in project.iter_tasks()),
            "subtask_count": sum(1 for _ in project.iter_subtasks()),
        },
    )
    return project

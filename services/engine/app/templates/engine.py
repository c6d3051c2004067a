"""Template authoring: creation, versioning and activation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID, uuid4

from blueprint_schemas import (
    TaskDraft,
    Template,
    TemplateDraft,
    TemplateStage,
    TemplateSubtask,
    TemplateTask,
    TemplateVersionOverrides,
)
from blueprint_store import ProjectRepository

from ..errors import TemplateNotFound

logger = logging.getLogger(__name__)


def create_template(store: ProjectRepository, draft: TemplateDraft) -> Template:
    """Build a template from ``draft``, assigning ids and positional orders."""

    template = Template(
        name=draft.name,
        version=draft.version,
        description=draft.description,
        stages=[
            TemplateStage(
                name=stage.name,
                description=stage.description,
                order=index,
                gem_type=stage.gem_type,
                tasks=_build_tasks(stage.tasks),
            )
            for index, stage in enumerate(draft.stages)
        ],
        tasks=_build_tasks(draft.tasks),
    )
    store.insert_template(template)
    logger.info(
        "Template created",
        extra={
            "template_id": template.id,
            "stage_count": len(template.stages),
            "unstaged_task_count": len(template.tasks),
        },
    )
    return template


def _build_tasks(drafts: Iterable[TaskDraft]) -> list[TemplateTask]:
    return [
        TemplateTask(
            title=task.title,
            description=task.description,
            order=index,
            subtasks=[
                TemplateSubtask(description=subtask.description, order=sub_index)
                for sub_index, subtask in enumerate(task.subtasks)
            ],
        )
        for index, task in enumerate(drafts)
    ]


def create_template_version(
    store: ProjectRepository,
    template_id: UUID,
    overrides: Optional[TemplateVersionOverrides] = None,
) -> Template:
    """Copy an existing template into a new one with fresh ids.

    The source stays untouched, so projects materialized from it keep their
    snapshot semantics.
    """

    source = get_template(store, template_id)
    overrides = overrides or TemplateVersionOverrides()

    version = source.model_copy(
        update={
            "id": uuid4(),
            "name": overrides.name or source.name,
            "version": overrides.version or f"{source.version}-1",
            "description": (
                overrides.description if "description" in overrides.model_fields_set else source.description
            ),
            "is_active": True,
            "created_at": datetime.utcnow(),
            "stages": [
                stage.model_copy(update={"id": uuid4(), "tasks": _copy_tasks(stage.tasks)})
                for stage in source.stages
            ],
            "tasks": _copy_tasks(source.tasks),
        }
    )
    store.insert_template(version)
    logger.info(
        "Template version created",
        extra={"template_id": version.id, "source_template_id": str(source.id), "version": version.version},
    )
    return version


def _copy_tasks(tasks: Iterable[TemplateTask]) -> list[TemplateTask]:
    return [
        task.model_copy(
            update={
                "id": uuid4(),
                "subtasks": [sub.model_copy(update={"id": uuid4()}) for sub in task.subtasks],
            }
        )
        for task in tasks
    ]


def toggle_template_active(store: ProjectRepository, template_id: UUID) -> Template:
    template = get_template(store, template_id)
    store.set_template_active(template_id, not template.is_active)
    toggled = template.model_copy(update={"is_active": not template.is_active})
    logger.info(
        "Template activation toggled",
        extra={"template_id": template_id, "is_active": toggled.is_active},
    )
    return toggled


def get_template(store: ProjectRepository, template_id: UUID) -> Template:
    template = store.get_template(template_id)
    if template is None:
        raise TemplateNotFound(template_id)
    return template


def list_templates(store: ProjectRepository, *, active_only: bool = False) -> list[Template]:
    return store.list_templates(active_only=active_only)

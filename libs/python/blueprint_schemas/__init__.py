"""Shared pydantic schemas for templates, projects and structure edits."""

from .enums import StructureAction, TaskStatus, TreeLevel
from .models.edits import StageEdit, StructureEdit, SubtaskEdit, TaskEdit
from .models.project import (
    CompositeTask,
    LeafTask,
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    TaskShape,
)
from .models.template import (
    StageDraft,
    SubtaskDraft,
    TaskDraft,
    Template,
    TemplateDraft,
    TemplateStage,
    TemplateSubtask,
    TemplateTask,
    TemplateVersionOverrides,
)
from .utils.validators import OrderingError, TextLengthError

__all__ = [
    "CompositeTask",
    "LeafTask",
    "OrderingError",
    "Project",
    "ProjectStage",
    "ProjectSubtask",
    "ProjectTask",
    "StageDraft",
    "StageEdit",
    "StructureAction",
    "StructureEdit",
    "SubtaskDraft",
    "SubtaskEdit",
    "TaskDraft",
    "TaskEdit",
    "TaskShape",
    "TaskStatus",
    "Template",
    "TemplateDraft",
    "TemplateStage",
    "TemplateSubtask",
    "TemplateTask",
    "TemplateVersionOverrides",
    "TextLengthError",
    "TreeLevel",
]

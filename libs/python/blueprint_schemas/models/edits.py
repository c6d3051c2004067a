"""Client-submitted structure edits.

Every element may carry the id of an existing row ("update in place") or no
id ("create new"). Only fields the client actually sent are applied, which is
read from pydantic's ``model_fields_set``; a child list that is omitted leaves
that group untouched while an explicit empty list clears it.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ..utils.validators import clean_optional_text
from .project import LINK_MAX_LENGTH


class _Edit(BaseModel):
    id: Optional[UUID] = None

    def provided(self, *names: str) -> dict[str, Any]:
        """Return the subset of ``names`` that the client explicitly supplied."""

        return {name: getattr(self, name) for name in names if name in self.model_fields_set}


class SubtaskEdit(_Edit):
    description: Optional[str] = Field(None, min_length=1, max_length=1000)


class TaskEdit(_Edit):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    link: Optional[str] = None
    subtasks: Optional[list[SubtaskEdit]] = None

    @field_validator("link")
    @classmethod
    def validate_link(cls, value: Optional[str]) -> Optional[str]:
        return clean_optional_text(value, limit=LINK_MAX_LENGTH, field_name="Task link")


class StageEdit(_Edit):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    gem_type: Optional[str] = Field(None, max_length=80)
    tasks: Optional[list[TaskEdit]] = None


class StructureEdit(BaseModel):
    """Ordered stage list and unstaged task group; an omitted group is untouched."""

    stages: Optional[list[StageEdit]] = Field(None, description="Stages; omit to leave them untouched")
    tasks: Optional[list[TaskEdit]] = Field(
        None, description="Unstaged tasks; omit to leave them untouched"
    )

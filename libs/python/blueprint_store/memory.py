"""Deterministic in-memory store for tests and offline development."""

from __future__ import annotations

import threading
from collections import Counter
from typing import Any, Mapping, Optional, TypeVar
from uuid import UUID

from blueprint_schemas import (
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    Template,
)
from pydantic import BaseModel

from .base import ProjectRepository
from .exceptions import StoreIntegrityError

_Row = TypeVar("_Row", bound=BaseModel)


def _detach(row: _Row, **children: list) -> _Row:
    return row.model_copy(update=children, deep=True)


class MemoryStore(ProjectRepository):
    """Keeps rows in dictionaries and counts every write.

    ``operations`` maps ``(action, table)`` to the number of writes, which
    lets tests assert that an edit created or deleted nothing.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._templates: dict[UUID, Template] = {}
        self._projects: dict[UUID, Project] = {}
        self._stages: dict[UUID, ProjectStage] = {}
        self._tasks: dict[UUID, ProjectTask] = {}
        self._subtasks: dict[UUID, ProjectSubtask] = {}
        self.operations: Counter[tuple[str, str]] = Counter()

    def _record(self, action: str, table: str) -> None:
        self.operations[(action, table)] += 1

    # Templates

    def get_template(self, template_id: UUID) -> Optional[Template]:
        with self._lock:
            template = self._templates.get(template_id)
            return template.model_copy(deep=True) if template else None

    def list_templates(self, *, active_only: bool = False) -> list[Template]:
        with self._lock:
            templates = sorted(self._templates.values(), key=lambda tpl: tpl.created_at)
            return [
                tpl.model_copy(deep=True)
                for tpl in templates
                if tpl.is_active or not active_only
            ]

    def insert_template(self, template: Template) -> None:
        with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
            self._record("insert", "templates")

    def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return False
            self._templates[template_id] = template.model_copy(update={"is_active": is_active})
            self._record("update", "templates")
            return True

    # Projects

    def insert_project_tree(self, project: Project) -> None:
        with self._lock:
            self._projects[project.id] = _detach(project, stages=[], tasks=[])
            self._record("insert", "projects")
            for stage in project.stages:
                self.insert_stage(stage)
                for task in stage.tasks:
                    self._insert_task_tree(task)
            for task in project.tasks:
                self._insert_task_tree(task)

    def _insert_task_tree(self, task: ProjectTask) -> None:
        self.insert_task(task)
        for subtask in task.subtasks:
            self.insert_subtask(subtask)

    def get_project(self, project_id: UUID) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            return _detach(project) if project else None

    def find_owned_project(self, project_id: UUID, user_id: UUID) -> Optional[Project]:
        project = self.get_project(project_id)
        if project is None or project.user_id != user_id:
            return None
        return project

    def list_projects(self, user_id: UUID) -> list[Project]:
        with self._lock:
            owned = [p for p in self._projects.values() if p.user_id == user_id]
            return [_detach(p) for p in sorted(owned, key=lambda p: p.created_at)]

    def update_project(self, project_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update(self._projects, project_id, fields, "projects")

    def delete_project(self, project_id: UUID) -> bool:
        with self._lock:
            if project_id not in self._projects:
                return False
            if any(s.project_id == project_id for s in self._stages.values()) or any(
                t.project_id == project_id for t in self._tasks.values()
            ):
                raise StoreIntegrityError(f"Project {project_id} still has stages or tasks")
            del self._projects[project_id]
            self._record("delete", "projects")
            return True

    # Stages

    def list_stages(self, project_id: UUID) -> list[ProjectStage]:
        with self._lock:
            stages = [s for s in self._stages.values() if s.project_id == project_id]
            return [_detach(s) for s in sorted(stages, key=lambda s: s.order)]

    def insert_stage(self, stage: ProjectStage) -> None:
        with self._lock:
            if stage.project_id not in self._projects:
                raise StoreIntegrityError(f"Unknown project {stage.project_id}")
            self._stages[stage.id] = _detach(stage, tasks=[])
            self._record("insert", "stages")

    def update_stage(self, stage_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update(self._stages, stage_id, fields, "stages")

    def delete_stage(self, stage_id: UUID) -> bool:
        with self._lock:
            if stage_id not in self._stages:
                return False
            if any(t.stage_id == stage_id for t in self._tasks.values()):
                raise StoreIntegrityError(f"Stage {stage_id} still has tasks")
            del self._stages[stage_id]
            self._record("delete", "stages")
            return True

    # Tasks

    def get_task(self, task_id: UUID) -> Optional[ProjectTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return _detach(task) if task else None

    def list_stage_tasks(self, stage_id: UUID) -> list[ProjectTask]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.stage_id == stage_id]
            return [_detach(t) for t in sorted(tasks, key=lambda t: t.order)]

    def list_unstaged_tasks(self, project_id: UUID) -> list[ProjectTask]:
        with self._lock:
            tasks = [
                t for t in self._tasks.values()
                if t.project_id == project_id and t.stage_id is None
            ]
            return [_detach(t) for t in sorted(tasks, key=lambda t: t.order)]

    def insert_task(self, task: ProjectTask) -> None:
        with self._lock:
            if task.project_id not in self._projects:
                raise StoreIntegrityError(f"Unknown project {task.project_id}")
            if task.stage_id is not None and task.stage_id not in self._stages:
                raise StoreIntegrityError(f"Unknown stage {task.stage_id}")
            self._tasks[task.id] = _detach(task, subtasks=[])
            self._record("insert", "tasks")

    def update_task(self, task_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update(self._tasks, task_id, fields, "tasks")

    def delete_task(self, task_id: UUID) -> bool:
        with self._lock:
            if task_id not in self._tasks:
                return False
            if any(s.task_id == task_id for s in self._subtasks.values()):
                raise StoreIntegrityError(f"Task {task_id} still has subtasks")
            del self._tasks[task_id]
            self._record("delete", "tasks")
            return True

    # Subtasks

    def get_subtask(self, subtask_id: UUID) -> Optional[ProjectSubtask]:
        with self._lock:
            subtask = self._subtasks.get(subtask_id)
            return _detach(subtask) if subtask else None

    def list_subtasks(self, task_id: UUID) -> list[ProjectSubtask]:
        with self._lock:
            subtasks = [s for s in self._subtasks.values() if s.task_id == task_id]
            return [_detach(s) for s in sorted(subtasks, key=lambda s: s.order)]

    def insert_subtask(self, subtask: ProjectSubtask) -> None:
        with self._lock:
            if subtask.task_id not in self._tasks:
                raise StoreIntegrityError(f"Unknown task {subtask.task_id}")
            self._subtasks[subtask.id] = _detach(subtask)
            self._record("insert", "subtasks")

    def update_subtask(self, subtask_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update(self._subtasks, subtask_id, fields, "subtasks")

    def delete_subtask(self, subtask_id: UUID) -> bool:
        with self._lock:
            if self._subtasks.pop(subtask_id, None) is None:
                return False
            self._record("delete", "subtasks")
            return True

    def _update(
        self,
        table: dict[UUID, _Row],
        row_id: UUID,
        fields: Mapping[str, Any],
        table_name: str,
    ) -> bool:
        with self._lock:
            row = table.get(row_id)
            if row is None:
                return False
            table[row_id] = row.model_copy(update=dict(fields))
            self._record("update", table_name)
            return True

    def write_count(self, action: str, table: str | None = None) -> int:
        """Total writes of ``action``, optionally restricted to one table."""

        return sum(
            count
            for (recorded_action, recorded_table), count in self.operations.items()
            if recorded_action == action and (table is None or recorded_table == table)
        )

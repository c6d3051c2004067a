"""Repository interface consumed by the engine.

Every read returns detached models: mutating a returned object never changes
stored state, only explicit ``insert_*``/``update_*``/``delete_*`` calls do.
Reads of individual rows come back without children; ``load_project_tree``
assembles the nested view. Deletes never cascade; callers remove children
first.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional
from uuid import UUID

from blueprint_schemas import (
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    Template,
)


class ProjectRepository(ABC):
    """Abstract persistence collaborator implemented by concrete stores."""

    name: str

    # Templates

    @abstractmethod
    def get_template(self, template_id: UUID) -> Optional[Template]:
        """Return the full template tree or ``None``."""

    @abstractmethod
    def list_templates(self, *, active_only: bool = False) -> list[Template]:
        """Return full template trees ordered by creation time."""

    @abstractmethod
    def insert_template(self, template: Template) -> None:
        """Persist a template and its whole tree in one transaction."""

    @abstractmethod
    def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        """Set the active flag; return ``False`` when the template is absent."""

    # Projects

    @abstractmethod
    def insert_project_tree(self, project: Project) -> None:
        """Persist a project with its stages, tasks and subtasks in one transaction."""

    @abstractmethod
    def get_project(self, project_id: UUID) -> Optional[Project]:
        """Return the project row without children."""

    @abstractmethod
    def find_owned_project(self, project_id: UUID, user_id: UUID) -> Optional[Project]:
        """Ownership check: the project row when ``user_id`` owns it, else ``None``."""

    @abstractmethod
    def list_projects(self, user_id: UUID) -> list[Project]:
        """Return project rows owned by ``user_id`` without children."""

    @abstractmethod
    def update_project(self, project_id: UUID, fields: Mapping[str, Any]) -> bool:
        """Overwrite the given project columns."""

    @abstractmethod
    def delete_project(self, project_id: UUID) -> bool:
        """Delete the project row; children must already be gone."""

    # Stages

    @abstractmethod
    def list_stages(self, project_id: UUID) -> list[ProjectStage]:
        """Return stages of a project in ascending ``order``."""

    @abstractmethod
    def insert_stage(self, stage: ProjectStage) -> None: ...

    @abstractmethod
    def update_stage(self, stage_id: UUID, fields: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    def delete_stage(self, stage_id: UUID) -> bool: ...

    # Tasks

    @abstractmethod
    def get_task(self, task_id: UUID) -> Optional[ProjectTask]: ...

    @abstractmethod
    def list_stage_tasks(self, stage_id: UUID) -> list[ProjectTask]:
        """Return tasks of a stage in ascending ``order``."""

    @abstractmethod
    def list_unstaged_tasks(self, project_id: UUID) -> list[ProjectTask]:
        """Return tasks with no stage in ascending ``order``."""

    @abstractmethod
    def insert_task(self, task: ProjectTask) -> None: ...

    @abstractmethod
    def update_task(self, task_id: UUID, fields: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    def delete_task(self, task_id: UUID) -> bool: ...

    # Subtasks

    @abstractmethod
    def get_subtask(self, subtask_id: UUID) -> Optional[ProjectSubtask]: ...

    @abstractmethod
    def list_subtasks(self, task_id: UUID) -> list[ProjectSubtask]:
        """Return subtasks of a task in ascending ``order``."""

    @abstractmethod
    def insert_subtask(self, subtask: ProjectSubtask) -> None: ...

    @abstractmethod
    def update_subtask(self, subtask_id: UUID, fields: Mapping[str, Any]) -> bool: ...

    @abstractmethod
    def delete_subtask(self, subtask_id: UUID) -> bool: ...

    def load_project_tree(self, project_id: UUID) -> Optional[Project]:
        """Assemble the nested project view from row-level reads."""

        project = self.get_project(project_id)
        if project is None:
            return None

        def with_subtasks(task: ProjectTask) -> ProjectTask:
            return task.model_copy(update={"subtasks": self.list_subtasks(task.id)})

        stages = [
            stage.model_copy(
                update={"tasks": [with_subtasks(task) for task in self.list_stage_tasks(stage.id)]}
            )
            for stage in self.list_stages(project_id)
        ]
        tasks = [with_subtasks(task) for task in self.list_unstaged_tasks(project_id)]
        return project.model_copy(update={"stages": stages, "tasks": tasks})

    def initialise_schema(self) -> None:
        """Create backing tables if needed; stores without a schema keep the default."""

    def close(self) -> None:
        """Release held resources; stores without any keep the default."""

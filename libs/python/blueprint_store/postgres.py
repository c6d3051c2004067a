"""PostgreSQL store backed by psycopg 3 and a shared connection pool."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional
from uuid import UUID

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from blueprint_schemas import (
    Project,
    ProjectStage,
    ProjectSubtask,
    ProjectTask,
    Template,
    TemplateStage,
    TemplateSubtask,
    TemplateTask,
)

from .base import ProjectRepository
from .config import StoreConfig
from .exceptions import StoreConfigError

logger = logging.getLogger(__name__)

# Project child tables have no ON DELETE CASCADE; the engine removes
# children before deleting a parent row.
SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS templates (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    description TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMP WITHOUT TIME ZONE DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS template_stages (
    id UUID PRIMARY KEY,
    template_id UUID NOT NULL REFERENCES templates(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT,
    position INTEGER NOT NULL,
    gem_type TEXT
);

CREATE TABLE IF NOT EXISTS template_tasks (
    id UUID PRIMARY KEY,
    template_id UUID NOT NULL REFERENCES templates(id) ON DELETE CASCADE,
    stage_id UUID REFERENCES template_stages(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    position INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS template_subtasks (
    id UUID PRIMARY KEY,
    task_id UUID NOT NULL REFERENCES template_tasks(id) ON DELETE CASCADE,
    description TEXT NOT NULL,
    position INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id UUID PRIMARY KEY,
    user_id UUID NOT NULL,
    template_id UUID NOT NULL REFERENCES templates(id),
    name TEXT NOT NULL,
    progress DOUBLE PRECISION NOT NULL DEFAULT 0,
    current_gem TEXT,
    created_at TIMESTAMP WITHOUT TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITHOUT TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id);

CREATE TABLE IF NOT EXISTS project_stages (
    id UUID PRIMARY KEY,
    project_id UUID NOT NULL REFERENCES projects(id),
    name TEXT NOT NULL,
    description TEXT,
    position INTEGER NOT NULL,
    gem_type TEXT
);

CREATE INDEX IF NOT EXISTS idx_project_stages_project ON project_stages(project_id);

CREATE TABLE IF NOT EXISTS project_tasks (
    id UUID PRIMARY KEY,
    project_id UUID NOT NULL REFERENCES projects(id),
    stage_id UUID REFERENCES project_stages(id),
    title TEXT NOT NULL,
    description TEXT,
    position INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'TODO',
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    link TEXT
);

CREATE INDEX IF NOT EXISTS idx_project_tasks_project ON project_tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_project_tasks_stage ON project_tasks(stage_id);

CREATE TABLE IF NOT EXISTS project_subtasks (
    id UUID PRIMARY KEY,
    task_id UUID NOT NULL REFERENCES project_tasks(id),
    description TEXT NOT NULL,
    position INTEGER NOT NULL,
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    answer TEXT,
    link TEXT
);

CREATE INDEX IF NOT EXISTS idx_project_subtasks_task ON project_subtasks(task_id);
"""

_STAGE_COLUMNS = "id, project_id, name, description, position AS \"order\", gem_type"
_TASK_COLUMNS = (
    "id, project_id, stage_id, title, description, position AS \"order\", status, completed, link"
)
_SUBTASK_COLUMNS = "id, task_id, description, position AS \"order\", completed, answer, link"
_PROJECT_COLUMNS = "id, user_id, template_id, name, progress, current_gem, created_at, updated_at"

# Model field -> column, limited to the fields the engine is allowed to overwrite.
_UPDATABLE: dict[str, dict[str, str]] = {
    "projects": {"name": "name", "progress": "progress", "current_gem": "current_gem", "updated_at": "updated_at"},
    "project_stages": {"name": "name", "description": "description", "order": "position", "gem_type": "gem_type"},
    "project_tasks": {
        "title": "title",
        "description": "description",
        "order": "position",
        "status": "status",
        "completed": "completed",
        "link": "link",
    },
    "project_subtasks": {
        "description": "description",
        "order": "position",
        "completed": "completed",
        "answer": "answer",
        "link": "link",
    },
}


class PostgresStore(ProjectRepository):
    """Row-level repository over the schema in :data:`SCHEMA_DDL`."""

    name = "postgres"

    def __init__(self, config: StoreConfig) -> None:
        if not config.conninfo:
            raise StoreConfigError("DATABASE_URL environment variable is required")
        self._pool = ConnectionPool(
            config.conninfo,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            open=True,
        )

    def initialise_schema(self) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(SCHEMA_DDL)
            conn.commit()
        logger.info("Store schema initialised", extra={"store": self.name})

    def close(self) -> None:
        self._pool.close()

    def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Optional[dict[str, Any]]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return cur.fetchone()

    def _execute(self, query: Any, params: tuple[Any, ...]) -> int:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(query, params)
            affected = cur.rowcount
            conn.commit()
        return affected

    def _update(self, table: str, row_id: UUID, fields: Mapping[str, Any]) -> bool:
        columns = _UPDATABLE[table]
        unknown = set(fields) - set(columns)
        if unknown:
            raise StoreConfigError(f"Cannot update {sorted(unknown)} on {table}")
        if not fields:
            return self._fetch_one(f"SELECT 1 FROM {table} WHERE id = %s", (row_id,)) is not None
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(columns[name])) for name in fields
        )
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s").format(sql.Identifier(table), assignments)
        values = tuple(_to_db(value) for value in fields.values())
        return self._execute(query, values + (row_id,)) > 0

    # Templates

    def get_template(self, template_id: UUID) -> Optional[Template]:
        row = self._fetch_one(
            "SELECT id, name, version, description, is_active, created_at FROM templates WHERE id = %s",
            (template_id,),
        )
        if row is None:
            return None
        return self._assemble_template(row)

    def list_templates(self, *, active_only: bool = False) -> list[Template]:
        query = "SELECT id, name, version, description, is_active, created_at FROM templates"
        if active_only:
            query += " WHERE is_active"
        rows = self._fetch_all(query + " ORDER BY created_at ASC", ())
        return [self._assemble_template(row) for row in rows]

    def _assemble_template(self, row: dict[str, Any]) -> Template:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT id, name, description, position, gem_type FROM template_stages "
                "WHERE template_id = %s ORDER BY position ASC",
                (row["id"],),
            )
            stage_rows = cur.fetchall()
            cur.execute(
                "SELECT id, stage_id, title, description, position FROM template_tasks "
                "WHERE template_id = %s ORDER BY position ASC",
                (row["id"],),
            )
            task_rows = cur.fetchall()
            cur.execute(
                "SELECT s.id, s.task_id, s.description, s.position FROM template_subtasks s "
                "JOIN template_tasks t ON t.id = s.task_id "
                "WHERE t.template_id = %s ORDER BY s.position ASC",
                (row["id"],),
            )
            subtask_rows = cur.fetchall()

        subtasks_by_task: dict[UUID, list[TemplateSubtask]] = {}
        for sub in subtask_rows:
            subtasks_by_task.setdefault(sub["task_id"], []).append(
                TemplateSubtask(id=sub["id"], description=sub["description"], order=sub["position"])
            )

        tasks_by_stage: dict[Optional[UUID], list[TemplateTask]] = {}
        for task in task_rows:
            tasks_by_stage.setdefault(task["stage_id"], []).append(
                TemplateTask(
                    id=task["id"],
                    title=task["title"],
                    description=task["description"],
                    order=task["position"],
                    subtasks=subtasks_by_task.get(task["id"], []),
                )
            )

        stages = [
            TemplateStage(
                id=stage["id"],
                name=stage["name"],
                description=stage["description"],
                order=stage["position"],
                gem_type=stage["gem_type"],
                tasks=tasks_by_stage.get(stage["id"], []),
            )
            for stage in stage_rows
        ]
        return Template(**row, stages=stages, tasks=tasks_by_stage.get(None, []))

    def insert_template(self, template: Template) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "INSERT INTO templates (id, name, version, description, is_active, created_at) "
                "VALUES (%s, %s, %s, %s, %s, %s)",
                (
                    template.id,
                    template.name,
                    template.version,
                    template.description,
                    template.is_active,
                    template.created_at,
                ),
            )
            for stage in template.stages:
                cur.execute(
                    "INSERT INTO template_stages (id, template_id, name, description, position, gem_type) "
                    "VALUES (%s, %s, %s, %s, %s, %s)",
                    (stage.id, template.id, stage.name, stage.description, stage.order, stage.gem_type),
                )
                for task in stage.tasks:
                    self._insert_template_task(cur, template.id, stage.id, task)
            for task in template.tasks:
                self._insert_template_task(cur, template.id, None, task)
            conn.commit()

    @staticmethod
    def _insert_template_task(cur, template_id: UUID, stage_id: Optional[UUID], task: TemplateTask) -> None:
        cur.execute(
            "INSERT INTO template_tasks (id, template_id, stage_id, title, description, position) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            (task.id, template_id, stage_id, task.title, task.description, task.order),
        )
        for subtask in task.subtasks:
            cur.execute(
                "INSERT INTO template_subtasks (id, task_id, description, position) VALUES (%s, %s, %s, %s)",
                (subtask.id, task.id, subtask.description, subtask.order),
            )

    def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        return self._execute(
            "UPDATE templates SET is_active = %s WHERE id = %s", (is_active, template_id)
        ) > 0

    # Projects

    def insert_project_tree(self, project: Project) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                "INSERT INTO projects (id, user_id, template_id, name, progress, current_gem, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    project.id,
                    project.user_id,
                    project.template_id,
                    project.name,
                    project.progress,
                    project.current_gem,
                    project.created_at,
                    project.updated_at,
                ),
            )
            for stage in project.stages:
                self._insert_stage_row(cur, stage)
                for task in stage.tasks:
                    self._insert_task_tree(cur, task)
            for task in project.tasks:
                self._insert_task_tree(cur, task)
            conn.commit()

    def get_project(self, project_id: UUID) -> Optional[Project]:
        row = self._fetch_one(f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = %s", (project_id,))
        return Project(**row) if row else None

    def find_owned_project(self, project_id: UUID, user_id: UUID) -> Optional[Project]:
        row = self._fetch_one(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = %s AND user_id = %s",
            (project_id, user_id),
        )
        return Project(**row) if row else None

    def list_projects(self, user_id: UUID) -> list[Project]:
        rows = self._fetch_all(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE user_id = %s ORDER BY created_at ASC",
            (user_id,),
        )
        return [Project(**row) for row in rows]

    def update_project(self, project_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update("projects", project_id, fields)

    def delete_project(self, project_id: UUID) -> bool:
        return self._execute("DELETE FROM projects WHERE id = %s", (project_id,)) > 0

    # Stages

    def list_stages(self, project_id: UUID) -> list[ProjectStage]:
        rows = self._fetch_all(
            f"SELECT {_STAGE_COLUMNS} FROM project_stages WHERE project_id = %s ORDER BY position ASC",
            (project_id,),
        )
        return [ProjectStage(**row) for row in rows]

    def insert_stage(self, stage: ProjectStage) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            self._insert_stage_row(cur, stage)
            conn.commit()

    @staticmethod
    def _insert_stage_row(cur, stage: ProjectStage) -> None:
        cur.execute(
            "INSERT INTO project_stages (id, project_id, name, description, position, gem_type) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            (stage.id, stage.project_id, stage.name, stage.description, stage.order, stage.gem_type),
        )

    def update_stage(self, stage_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update("project_stages", stage_id, fields)

    def delete_stage(self, stage_id: UUID) -> bool:
        return self._execute("DELETE FROM project_stages WHERE id = %s", (stage_id,)) > 0

    # Tasks

    def get_task(self, task_id: UUID) -> Optional[ProjectTask]:
        row = self._fetch_one(f"SELECT {_TASK_COLUMNS} FROM project_tasks WHERE id = %s", (task_id,))
        return ProjectTask(**row) if row else None

    def list_stage_tasks(self, stage_id: UUID) -> list[ProjectTask]:
        rows = self._fetch_all(
            f"SELECT {_TASK_COLUMNS} FROM project_tasks WHERE stage_id = %s ORDER BY position ASC",
            (stage_id,),
        )
        return [ProjectTask(**row) for row in rows]

    def list_unstaged_tasks(self, project_id: UUID) -> list[ProjectTask]:
        rows = self._fetch_all(
            f"SELECT {_TASK_COLUMNS} FROM project_tasks "
            "WHERE project_id = %s AND stage_id IS NULL ORDER BY position ASC",
            (project_id,),
        )
        return [ProjectTask(**row) for row in rows]

    def insert_task(self, task: ProjectTask) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            self._insert_task_row(cur, task)
            conn.commit()

    def _insert_task_tree(self, cur, task: ProjectTask) -> None:
        self._insert_task_row(cur, task)
        for subtask in task.subtasks:
            self._insert_subtask_row(cur, subtask)

    @staticmethod
    def _insert_task_row(cur, task: ProjectTask) -> None:
        cur.execute(
            "INSERT INTO project_tasks "
            "(id, project_id, stage_id, title, description, position, status, completed, link) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)",
            (
                task.id,
                task.project_id,
                task.stage_id,
                task.title,
                task.description,
                task.order,
                task.status.value,
                task.completed,
                task.link,
            ),
        )

    def update_task(self, task_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update("project_tasks", task_id, fields)

    def delete_task(self, task_id: UUID) -> bool:
        return self._execute("DELETE FROM project_tasks WHERE id = %s", (task_id,)) > 0

    # Subtasks

    def get_subtask(self, subtask_id: UUID) -> Optional[ProjectSubtask]:
        row = self._fetch_one(
            f"SELECT {_SUBTASK_COLUMNS} FROM project_subtasks WHERE id = %s", (subtask_id,)
        )
        return ProjectSubtask(**row) if row else None

    def list_subtasks(self, task_id: UUID) -> list[ProjectSubtask]:
        rows = self._fetch_all(
            f"SELECT {_SUBTASK_COLUMNS} FROM project_subtasks WHERE task_id = %s ORDER BY position ASC",
            (task_id,),
        )
        return [ProjectSubtask(**row) for row in rows]

    def insert_subtask(self, subtask: ProjectSubtask) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            self._insert_subtask_row(cur, subtask)
            conn.commit()

    @staticmethod
    def _insert_subtask_row(cur, subtask: ProjectSubtask) -> None:
        cur.execute(
            "INSERT INTO project_subtasks (id, task_id, description, position, completed, answer, link) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s)",
            (
                subtask.id,
                subtask.task_id,
                subtask.description,
                subtask.order,
                subtask.completed,
                subtask.answer,
                subtask.link,
            ),
        )

    def update_subtask(self, subtask_id: UUID, fields: Mapping[str, Any]) -> bool:
        return self._update("project_subtasks", subtask_id, fields)

    def delete_subtask(self, subtask_id: UUID) -> bool:
        return self._execute("DELETE FROM project_subtasks WHERE id = %s", (subtask_id,)) > 0


def _to_db(value: Any) -> Any:
    # Enum members are stored by value.
    return getattr(value, "value", value)

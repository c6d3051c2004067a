"""FastAPI entrypoint exposing the blueprint engine."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Optional
from uuid import UUID

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from blueprint_observability import env_flag, log_context, setup_fastapi_metrics, setup_logging
from blueprint_schemas import Project, StructureEdit, Template, TemplateDraft, TemplateVersionOverrides
from blueprint_store import ProjectRepository, StoreFactory

from . import flows, templates
from .errors import EngineError, ForbiddenError, InvalidStateError, NotFoundError
from .models import (
    CreateProjectRequest,
    DerivedState,
    LinkRequest,
    ReconciliationResult,
    SubtaskAnswerRequest,
    SubtaskUpdateResult,
    TaskStatusRequest,
    TaskUpdateResult,
)
from .seed import seed_default_template

SERVICE_NAME = "engine"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("BLUEPRINT_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
SEED_DEFAULT_TEMPLATE = env_flag("BLUEPRINT_SEED_DEFAULT_TEMPLATE", default=True)

_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_409_CONFLICT),
)

app = FastAPI(title="Blueprint Engine", version="0.1.0")
setup_fastapi_metrics(app, service_name=SERVICE_NAME)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _on_startup() -> None:
    store = StoreFactory.create()
    store.initialise_schema()
    if SEED_DEFAULT_TEMPLATE:
        seed_default_template(store)
    app.state.store = store
    logger.info("Engine started", extra={"store": store.name})


@app.on_event("shutdown")
def _on_shutdown() -> None:
    store: Optional[ProjectRepository] = getattr(app.state, "store", None)
    if store is not None:
        store.close()


def get_store(request: Request) -> ProjectRepository:
    return request.app.state.store


def current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    """Identity forwarded by the upstream gateway."""

    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        return UUID(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user identity") from exc


async def _run(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        return await run_in_threadpool(func, *args, **kwargs)
    except EngineError as exc:
        for error_type, status_code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                raise HTTPException(status_code=status_code, detail=exc.message) from exc
        raise


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    """Simple readiness check."""

    return {"status": "ok"}


# Templates


@app.get("/templates", response_model=list[Template], tags=["templates"])
async def list_templates(
    active_only: bool = False,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> list[Template]:
    return await _run(templates.list_templates, store, active_only=active_only)


@app.get("/templates/{template_id}", response_model=Template, tags=["templates"])
async def get_template(
    template_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Template:
    return await _run(templates.get_template, store, template_id)


@app.post("/templates", response_model=Template, status_code=status.HTTP_201_CREATED, tags=["templates"])
async def create_template(
    payload: TemplateDraft,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Template:
    with log_context(user_id=str(user_id)):
        return await _run(templates.create_template, store, payload)


@app.post(
    "/templates/{template_id}/version",
    response_model=Template,
    status_code=status.HTTP_201_CREATED,
    tags=["templates"],
)
async def create_template_version(
    template_id: UUID,
    payload: Optional[TemplateVersionOverrides] = Body(None),
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Template:
    return await _run(templates.create_template_version, store, template_id, payload)


@app.patch("/templates/{template_id}/toggle-active", response_model=Template, tags=["templates"])
async def toggle_template_active(
    template_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Template:
    return await _run(templates.toggle_template_active, store, template_id)


# Projects


@app.get("/projects", response_model=list[Project], tags=["projects"])
async def list_projects(
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> list[Project]:
    return await _run(flows.list_projects, store, user_id)


@app.post("/projects", response_model=Project, status_code=status.HTTP_201_CREATED, tags=["projects"])
async def create_project(
    payload: CreateProjectRequest,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Project:
    return await _run(flows.create_project, store, user_id, payload.template_id, payload.name)


@app.get("/projects/{project_id}", response_model=Project, tags=["projects"])
async def get_project(
    project_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> Project:
    return await _run(flows.get_project, store, project_id, user_id)


@app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["projects"])
async def delete_project(
    project_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> None:
    await _run(flows.delete_project, store, project_id, user_id)


@app.put("/projects/{project_id}/structure", response_model=ReconciliationResult, tags=["structure"])
async def update_structure(
    project_id: UUID,
    payload: StructureEdit,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> ReconciliationResult:
    return await _run(flows.update_structure, store, project_id, user_id, payload)


@app.post("/projects/{project_id}/recalculate", response_model=DerivedState, tags=["projects"])
async def recalculate(
    project_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> DerivedState:
    return await _run(flows.refresh_derived_state, store, project_id, user_id)


# Leaf mutations


@app.post(
    "/projects/{project_id}/subtasks/{subtask_id}/toggle",
    response_model=SubtaskUpdateResult,
    tags=["subtasks"],
)
async def toggle_subtask(
    project_id: UUID,
    subtask_id: UUID,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> SubtaskUpdateResult:
    return await _run(flows.toggle_subtask, store, project_id, user_id, subtask_id)


@app.put(
    "/projects/{project_id}/subtasks/{subtask_id}/answer",
    response_model=SubtaskUpdateResult,
    tags=["subtasks"],
)
async def answer_subtask(
    project_id: UUID,
    subtask_id: UUID,
    payload: SubtaskAnswerRequest,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> SubtaskUpdateResult:
    return await _run(flows.answer_subtask, store, project_id, user_id, subtask_id, payload.answer)


@app.put(
    "/projects/{project_id}/subtasks/{subtask_id}/link",
    response_model=SubtaskUpdateResult,
    tags=["subtasks"],
)
async def set_subtask_link(
    project_id: UUID,
    subtask_id: UUID,
    payload: LinkRequest,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> SubtaskUpdateResult:
    return await _run(flows.set_subtask_link, store, project_id, user_id, subtask_id, payload.link)


@app.put(
    "/projects/{project_id}/tasks/{task_id}/status",
    response_model=TaskUpdateResult,
    tags=["tasks"],
)
async def set_task_status(
    project_id: UUID,
    task_id: UUID,
    payload: TaskStatusRequest,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> TaskUpdateResult:
    return await _run(flows.set_task_status, store, project_id, user_id, task_id, payload.status)


@app.put(
    "/projects/{project_id}/tasks/{task_id}/link",
    response_model=TaskUpdateResult,
    tags=["tasks"],
)
async def set_task_link(
    project_id: UUID,
    task_id: UUID,
    payload: LinkRequest,
    store: ProjectRepository = Depends(get_store),
    user_id: UUID = Depends(current_user_id),
) -> TaskUpdateResult:
    return await _run(flows.set_task_link, store, project_id, user_id, task_id, payload.link)

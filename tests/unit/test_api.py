"""HTTP surface tests using FastAPI's TestClient."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from services.engine.app.main import app, get_store
from tests.utils.builders import make_draft


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def template_id(client, headers):
    response = client.post("/templates", json=make_draft().model_dump(), headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_identity_header_is_required(client) -> None:
    assert client.get("/projects").status_code == 401
    assert client.get("/projects", headers={"X-User-Id": "not-a-uuid"}).status_code == 401


def test_project_lifecycle(client, headers, template_id) -> None:
    created = client.post("/projects", json={"template_id": template_id, "name": "Mine"}, headers=headers)
    assert created.status_code == 201
    project = created.json()
    assert project["progress"] == 0
    assert len(project["stages"]) == 2

    listed = client.get("/projects", headers=headers).json()
    assert [item["id"] for item in listed] == [project["id"]]

    subtask_id = project["stages"][0]["tasks"][0]["subtasks"][0]["id"]
    toggled = client.post(f"/projects/{project['id']}/subtasks/{subtask_id}/toggle", headers=headers)
    assert toggled.status_code == 200
    body = toggled.json()
    assert body["updated"]["completed"] is True
    assert body["task"]["status"] == "IN_PROGRESS"
    assert body["gem_change"] == {"changed": True, "previous_gem": None, "new_gem": "gem-0"}

    fetched = client.get(f"/projects/{project['id']}", headers=headers).json()
    assert fetched["progress"] == pytest.approx(12.5)
    assert fetched["current_gem"] == "gem-0"

    assert client.delete(f"/projects/{project['id']}", headers=headers).status_code == 204
    assert client.get(f"/projects/{project['id']}", headers=headers).status_code == 404


def test_error_mapping(client, headers, template_id) -> None:
    project = client.post("/projects", json={"template_id": template_id}, headers=headers).json()
    task_id = project["stages"][0]["tasks"][0]["id"]

    stranger = {"X-User-Id": str(uuid4())}
    assert client.get(f"/projects/{project['id']}", headers=stranger).status_code == 403
    assert client.post("/projects", json={"template_id": str(uuid4())}, headers=headers).status_code == 404

    conflict = client.put(
        f"/projects/{project['id']}/tasks/{task_id}/status", json={"status": "FINISHED"}, headers=headers
    )
    assert conflict.status_code == 409

    missing = client.put(f"/projects/{uuid4()}/structure", json={"stages": []}, headers=headers)
    assert missing.status_code == 403


def test_structure_update_over_http(client, headers, template_id) -> None:
    project = client.post("/projects", json={"template_id": template_id}, headers=headers).json()
    kept = project["stages"][1]

    response = client.put(
        f"/projects/{project['id']}/structure",
        json={"stages": [{"id": kept["id"], "name": "Only stage"}, {"name": "Appended", "gem_type": "new"}]},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["stages"] == {"matched": 1, "created": 1, "updated": 1, "deleted": 1}
    assert [stage["name"] for stage in body["project"]["stages"]] == ["Only stage", "Appended"]
    assert body["project"]["stages"][0]["id"] == kept["id"]


def test_template_routes(client, headers, template_id) -> None:
    version = client.post(f"/templates/{template_id}/version", headers=headers)
    assert version.status_code == 201
    assert version.json()["version"] == "1.0-1"

    toggled = client.patch(f"/templates/{template_id}/toggle-active", headers=headers)
    assert toggled.json()["is_active"] is False

    active = client.get("/templates", params={"active_only": True}, headers=headers).json()
    assert [item["id"] for item in active] == [version.json()["id"]]
    assert client.get(f"/templates/{uuid4()}", headers=headers).status_code == 404


def test_leaf_field_routes(client, headers, template_id) -> None:
    project = client.post("/projects", json={"template_id": template_id}, headers=headers).json()
    task = project["stages"][0]["tasks"][0]
    subtask_id = task["subtasks"][0]["id"]
    base = f"/projects/{project['id']}"

    answered = client.put(f"{base}/subtasks/{subtask_id}/answer", json={"answer": " yes "}, headers=headers)
    assert answered.json()["updated"]["answer"] == "yes"

    linked = client.put(f"{base}/subtasks/{subtask_id}/link", json={"link": "https://example.com"}, headers=headers)
    assert linked.json()["updated"]["link"] == "https://example.com"

    task_link = client.put(f"{base}/tasks/{task['id']}/link", json={"link": "https://example.com/t"}, headers=headers)
    assert task_link.json()["updated"]["link"] == "https://example.com/t"

    recalculated = client.post(f"{base}/recalculate", headers=headers)
    assert recalculated.json() == {
        "progress": 0.0,
        "gem_change": {"changed": False, "previous_gem": None, "new_gem": None},
    }

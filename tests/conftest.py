"""Shared pytest configuration for the blueprint project."""

from __future__ import annotations

import sys
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parent.parent
EXTRA_PATHS = [ROOT, ROOT / "libs/python"]
for extra in EXTRA_PATHS:
    sys.path.insert(0, str(extra))

from blueprint_store import MemoryStore  # noqa: E402

from services.engine.app.flows import create_project  # noqa: E402
from services.engine.app.templates import create_template  # noqa: E402
from tests.utils.builders import make_draft  # noqa: E402


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def template(store):
    return create_template(store, make_draft())


@pytest.fixture
def project(store, template, user_id):
    """Freshly materialized 2x2x2 project, loaded as a full tree."""

    created = create_project(store, user_id, template.id, "My onboarding")
    return store.load_project_tree(created.id)

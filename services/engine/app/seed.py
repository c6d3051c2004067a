"""Default template seeded into an empty store."""

from __future__ import annotations

import logging
from typing import Optional

from blueprint_schemas import StageDraft, SubtaskDraft, TaskDraft, Template, TemplateDraft
from blueprint_store import ProjectRepository

from .templates import create_template

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = TemplateDraft(
    name="Product Template",
    description="Starter checklist for shaping a new product",
    stages=[
        StageDraft(
            name="Discovery",
            description="Understand who the product is for",
            gem_type="bronze",
            tasks=[
                TaskDraft(
                    title="Define target audience",
                    description="Who is the product for?",
                    subtasks=[
                        SubtaskDraft(description="Describe demographics"),
                        SubtaskDraft(description="Describe behaviours"),
                    ],
                ),
            ],
        ),
        StageDraft(
            name="Positioning",
            description="Explain why the audience should care",
            gem_type="silver",
            tasks=[
                TaskDraft(
                    title="Define value proposition",
                    description="Value proposition text",
                    subtasks=[
                        SubtaskDraft(description="Unique features"),
                        SubtaskDraft(description="Benefits"),
                    ],
                ),
            ],
        ),
    ],
)


def seed_default_template(store: ProjectRepository) -> Optional[Template]:
    """Create :data:`DEFAULT_TEMPLATE` unless the store already holds templates."""

    if store.list_templates():
        logger.debug("Templates present; skipping default seed")
        return None
    template = create_template(store, DEFAULT_TEMPLATE)
    logger.info("Seeded default template", extra={"template_id": template.id})
    return template

from .engine import (
    create_template,
    create_template_version,
    get_template,
    list_templates,
    toggle_template_active,
)

__all__ = [
    "create_template",
    "create_template_version",
    "get_template",
    "list_templates",
    "toggle_template_active",
]

from .engine import build_project_tree, materialize

__all__ = ["build_project_tree", "materialize"]

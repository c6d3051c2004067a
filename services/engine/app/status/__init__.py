from .engine import DerivedStatus, derive_status, propagate_from_subtasks

__all__ = ["DerivedStatus", "derive_status", "propagate_from_subtasks"]

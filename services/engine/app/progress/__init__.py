from .engine import compute_progress, recalculate_progress

__all__ = ["compute_progress", "recalculate_progress"]

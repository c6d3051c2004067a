from .engine import resolve_gem, stage_complete, stage_started, task_complete, walk_stages

__all__ = ["resolve_gem", "stage_complete", "stage_started", "task_complete", "walk_stages"]

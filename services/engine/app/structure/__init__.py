from .engine import apply_plan, reconcile
from .planner import StructureOp, StructurePlan, plan_structure

__all__ = ["StructureOp", "StructurePlan", "apply_plan", "plan_structure", "reconcile"]

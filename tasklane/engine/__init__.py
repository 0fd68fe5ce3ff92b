"""Ordering and rollover engine for tasklane."""

from tasklane.engine.positions import PositionManager, apply_order, zone_sorted
from tasklane.engine.rollover import RolloverCache, RolloverEngine, RolloverResult

__all__ = [
    "PositionManager",
    "apply_order",
    "zone_sorted",
    "RolloverCache",
    "RolloverEngine",
    "RolloverResult",
]

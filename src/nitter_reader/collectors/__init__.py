"""Collection contracts and the Nitter timeline collector."""

from .base import (
    CollectionLimits,
    CollectionResult,
    CollectionState,
    Collector,
    StopReason,
    add_new_items,
)
from .timeline import StopDecision, TimelineCollector, decide_stop

__all__ = [
    "CollectionLimits",
    "CollectionResult",
    "CollectionState",
    "Collector",
    "StopDecision",
    "StopReason",
    "TimelineCollector",
    "add_new_items",
    "decide_stop",
]

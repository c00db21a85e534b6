"""Nitter instance health tracking."""

from .base import HealthStatus, InstanceStatus, NitterInstance, ProbeResult, Prober
from .probe import InstanceProber, has_content_markers
from .registry import InstanceRegistry

__all__ = [
    "HealthStatus",
    "InstanceProber",
    "InstanceRegistry",
    "InstanceStatus",
    "NitterInstance",
    "ProbeResult",
    "Prober",
    "has_content_markers",
]

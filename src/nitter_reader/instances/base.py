"""Instance health contracts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class InstanceStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    RATE_LIMITED = "rate_limited"


@dataclass
class NitterInstance:
    url: str
    status: InstanceStatus = InstanceStatus.UNKNOWN
    consecutive_failures: int = 0
    avg_response_time: float = 0.0
    rate_limited_until: float = 0.0
    last_checked: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status.value,
            "consecutive_failures": self.consecutive_failures,
            "avg_response_time_ms": round(self.avg_response_time, 1),
            "rate_limited_until": self.rate_limited_until or None,
            "last_checked": self.last_checked or None,
        }


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    response_time_ms: float = 0.0
    status_code: int | None = None
    is_rate_limit: bool = False
    error: str | None = None


@dataclass(frozen=True)
class HealthStatus:
    total: int
    healthy: int
    unhealthy: int
    rate_limited: int
    unknown: int
    instances: tuple[dict[str, Any], ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "healthy": self.healthy,
            "unhealthy": self.unhealthy,
            "rate_limited": self.rate_limited,
            "unknown": self.unknown,
            "instances": list(self.instances),
        }


class Prober(Protocol):
    async def probe(self, url: str) -> ProbeResult:
        """Probe one instance and report reachability."""

    async def aclose(self) -> None:
        """Release transport resources."""

"""Health-tracked pool of Nitter instances with round-robin failover."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Callable, Iterable

from nitter_reader.config import InstancesConfig
from nitter_reader.errors import NoInstanceAvailableError
from nitter_reader.scheduler.periodic import PeriodicTask

from .base import HealthStatus, InstanceStatus, NitterInstance, ProbeResult, Prober
from .probe import InstanceProber

logger = logging.getLogger(__name__)

EMA_WEIGHT = 0.2


class InstanceRegistry:
    """Track instance health and hand out the next usable instance.

    Unhealthy instances are skipped except for a small random chance per
    selection, so a recovered mirror can be noticed without waiting for the
    next periodic probe.
    """

    def __init__(
        self,
        urls: Iterable[str],
        *,
        prober: Prober | None = None,
        config: InstancesConfig | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config if config is not None else InstancesConfig()
        self._instances: dict[str, NitterInstance] = {}
        for url in urls:
            normalized = url.rstrip("/")
            self._instances.setdefault(normalized, NitterInstance(url=normalized))
        self._prober: Prober = prober if prober is not None else InstanceProber(
            timeout_seconds=self.config.probe_timeout_seconds,
            handle=self.config.probe_handle,
            thorough=self.config.thorough_probe,
        )
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()
        self._index = 0
        self._health_task: PeriodicTask | None = None

    @classmethod
    def from_config(cls, config: InstancesConfig, **kwargs) -> "InstanceRegistry":
        return cls(config.urls, config=config, **kwargs)

    @property
    def urls(self) -> tuple[str, ...]:
        return tuple(self._instances)

    def get_instance(self, url: str) -> NitterInstance | None:
        return self._instances.get(url.rstrip("/"))

    async def initialize(self) -> HealthStatus:
        logger.info("instance_registry_init instances=%s", len(self._instances))
        await self.refresh_health_checks()
        status = self.get_health_status()
        logger.info(
            "instance_registry_ready healthy=%s total=%s", status.healthy, status.total
        )
        if status.healthy == 0:
            logger.warning("instance_registry_no_healthy_instances total=%s", status.total)
        return status

    def select_instance(
        self, session_id: str | None = None, *, exclude: Iterable[str] = ()
    ) -> str:
        """Return the next candidate in rotation.

        Instances in ``exclude`` are passed over while any other candidate is
        left; they are only reused when nothing else is available.
        """
        now = self._clock()
        candidates = [
            instance for instance in self._instances.values() if self._is_candidate(instance, now)
        ]
        if not candidates:
            raise NoInstanceAvailableError(
                "No healthy Nitter instances available. All instances are down or rate-limited."
            )
        skipped = {url.rstrip("/") for url in exclude}
        start = self._index % len(candidates)
        rotation = candidates[start:] + candidates[:start]
        selected = next(
            (instance for instance in rotation if instance.url not in skipped), rotation[0]
        )
        self._index = (candidates.index(selected) + 1) % len(candidates)
        logger.debug(
            "instance_selected url=%s session=%s candidates=%s",
            selected.url,
            session_id,
            len(candidates),
        )
        return selected.url

    def mark_instance_failed(self, url: str, is_rate_limit: bool = False) -> None:
        instance = self.get_instance(url)
        if instance is None:
            return

        instance.consecutive_failures += 1
        if is_rate_limit:
            cooldown = self.config.rate_limit_cooldown_seconds + (
                self._rng.random() * self.config.rate_limit_jitter_seconds
            )
            instance.status = InstanceStatus.RATE_LIMITED
            instance.rate_limited_until = self._clock() + cooldown
            logger.warning(
                "instance_rate_limited url=%s cooldown_s=%.1f", instance.url, cooldown
            )
        elif instance.consecutive_failures >= self.config.max_consecutive_failures:
            if instance.status is not InstanceStatus.UNHEALTHY:
                logger.error(
                    "instance_unhealthy url=%s failures=%s",
                    instance.url,
                    instance.consecutive_failures,
                )
            instance.status = InstanceStatus.UNHEALTHY
        else:
            logger.warning(
                "instance_failed url=%s failures=%s/%s",
                instance.url,
                instance.consecutive_failures,
                self.config.max_consecutive_failures,
            )

    def mark_instance_success(self, url: str, response_time: float | None = None) -> None:
        instance = self.get_instance(url)
        if instance is None:
            return

        instance.consecutive_failures = 0
        if instance.status is not InstanceStatus.HEALTHY:
            if instance.status is not InstanceStatus.UNKNOWN:
                logger.info("instance_recovered url=%s previous=%s", instance.url, instance.status.value)
            instance.status = InstanceStatus.HEALTHY
            instance.rate_limited_until = 0.0

        if response_time is not None:
            if instance.avg_response_time == 0:
                instance.avg_response_time = response_time
            else:
                instance.avg_response_time = (
                    instance.avg_response_time * (1 - EMA_WEIGHT) + response_time * EMA_WEIGHT
                )

    def get_health_status(self) -> HealthStatus:
        instances = list(self._instances.values())

        def count(status: InstanceStatus) -> int:
            return sum(1 for instance in instances if instance.status is status)

        return HealthStatus(
            total=len(instances),
            healthy=count(InstanceStatus.HEALTHY),
            unhealthy=count(InstanceStatus.UNHEALTHY),
            rate_limited=count(InstanceStatus.RATE_LIMITED),
            unknown=count(InstanceStatus.UNKNOWN),
            instances=tuple(instance.to_dict() for instance in instances),
        )

    async def refresh_health_checks(self) -> None:
        urls = list(self._instances)
        results = await asyncio.gather(*(self._prober.probe(url) for url in urls))
        for url, result in zip(urls, results):
            self._apply_probe(self._instances[url], result)

    def start_periodic_health_checks(self, interval_seconds: float | None = None) -> None:
        if self._health_task is not None and self._health_task.running:
            return
        interval = interval_seconds or self.config.health_check_interval_seconds
        logger.info("instance_health_checks_started interval_s=%s", interval)
        self._health_task = PeriodicTask("instance-health", interval, self.refresh_health_checks)
        self._health_task.start()

    async def destroy(self) -> None:
        if self._health_task is not None:
            await self._health_task.stop()
            self._health_task = None
            logger.info("instance_health_checks_stopped")
        await self._prober.aclose()

    def _is_candidate(self, instance: NitterInstance, now: float) -> bool:
        if instance.status is InstanceStatus.UNHEALTHY:
            return self._rng.random() < self.config.self_heal_probability
        if instance.status is InstanceStatus.RATE_LIMITED and now < instance.rate_limited_until:
            return False
        return True

    def _apply_probe(self, instance: NitterInstance, result: ProbeResult) -> None:
        instance.last_checked = self._clock()
        if result.ok:
            if instance.status in (InstanceStatus.UNHEALTHY, InstanceStatus.RATE_LIMITED):
                logger.info("instance_recovered url=%s previous=%s", instance.url, instance.status.value)
            instance.consecutive_failures = 0
            instance.status = InstanceStatus.HEALTHY
            instance.rate_limited_until = 0.0
            instance.avg_response_time = result.response_time_ms
            return

        logger.warning("instance_probe_failed url=%s error=%s", instance.url, result.error)
        if result.is_rate_limit:
            self.mark_instance_failed(instance.url, is_rate_limit=True)
            return
        instance.consecutive_failures += 1
        if (
            instance.status is InstanceStatus.UNKNOWN
            or instance.consecutive_failures >= self.config.max_consecutive_failures
        ):
            instance.status = InstanceStatus.UNHEALTHY

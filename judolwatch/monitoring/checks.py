"""Bulk health checks against backend services."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Protocol

import httpx

from ..constants import HealthStatus
from ..errors import ValidationError
from ..models import ServiceHealth

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceDefinition:
    id: str
    name: str
    endpoint: str


DEFAULT_SERVICES: tuple[ServiceDefinition, ...] = (
    ServiceDefinition("crawler", "Crawler", "/api/crawler/health"),
    ServiceDefinition("reasoning-ai", "Reasoning AI", "/api/reasoning/health"),
    ServiceDefinition("sft-hukum", "SFT Hukum", "/api/sft-hukum/health"),
    ServiceDefinition("computer-vision", "Computer Vision", "/api/cv/health"),
)


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BulkCheckSummary:
    checked: int
    ok: int
    error: int


class HealthProbe(Protocol):
    async def __call__(self, service: ServiceDefinition) -> ProbeResult: ...


class HttpHealthProbe:
    """GET <base_url><endpoint>; any 2xx is healthy."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"User-Agent": "JudolWatch/1.0"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __call__(self, service: ServiceDefinition) -> ProbeResult:
        client = await self._get_client()
        started = time.perf_counter()
        try:
            resp = await client.get(f"{self.base_url}{service.endpoint}")
        except httpx.HTTPError as e:
            return ProbeResult(ok=False, error=str(e) or type(e).__name__)
        elapsed = int(round((time.perf_counter() - started) * 1000))
        if resp.is_success:
            return ProbeResult(ok=True, response_time_ms=elapsed)
        return ProbeResult(ok=False, response_time_ms=elapsed, error=f"HTTP {resp.status_code}")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class BulkHealthCheckRunner:
    """
    Probes services with bounded concurrency.

    A probe failure (exception or unhealthy result) is recorded as that
    service's error state; it never aborts sibling probes.
    """

    def __init__(
        self,
        services: Iterable[ServiceDefinition],
        probe: Callable[[ServiceDefinition], Awaitable[ProbeResult]],
        concurrency: int = 4,
        on_update: Optional[Callable[[ServiceHealth], None]] = None,
        on_complete: Optional[Callable[[BulkCheckSummary], None]] = None,
        clock: Callable[[], str] = _now_iso,
    ):
        self.services = {s.id: s for s in services}
        self.probe = probe
        self.concurrency = max(1, int(concurrency))
        self.on_update = on_update
        self.on_complete = on_complete
        self._clock = clock
        self._health: dict[str, ServiceHealth] = {
            s.id: ServiceHealth(id=s.id, name=s.name, endpoint=s.endpoint)
            for s in self.services.values()
        }
        self._running = 0

    @property
    def health(self) -> dict[str, ServiceHealth]:
        return dict(self._health)

    @property
    def is_running(self) -> bool:
        return self._running > 0

    async def run_all(self) -> BulkCheckSummary:
        return await self._run(list(self.services))

    async def run_selected(self, ids: Iterable[str]) -> BulkCheckSummary:
        selected = list(dict.fromkeys(ids))
        if not selected:
            raise ValidationError("Select at least one service to check")
        unknown = [i for i in selected if i not in self.services]
        if unknown:
            raise ValidationError(f"Unknown service id(s): {', '.join(unknown)}")
        return await self._run(selected)

    async def check_one(self, service_id: str) -> ServiceHealth:
        if service_id not in self.services:
            raise ValidationError(f"Unknown service id: {service_id}")
        return await self._check(self.services[service_id], asyncio.Semaphore(1))

    async def _run(self, ids: list[str]) -> BulkCheckSummary:
        semaphore = asyncio.Semaphore(self.concurrency)
        self._running += 1
        try:
            results = await asyncio.gather(
                *(self._check(self.services[i], semaphore) for i in ids)
            )
        finally:
            self._running -= 1

        ok = sum(1 for r in results if r.status == HealthStatus.OK)
        summary = BulkCheckSummary(checked=len(results), ok=ok, error=len(results) - ok)
        logger.info(
            "Health check finished: %d checked, %d ok, %d error",
            summary.checked,
            summary.ok,
            summary.error,
        )
        if self.on_complete is not None:
            self.on_complete(summary)
        return summary

    async def _check(self, service: ServiceDefinition, semaphore: asyncio.Semaphore) -> ServiceHealth:
        async with semaphore:
            try:
                result = await self.probe(service)
            except Exception as e:
                logger.warning("Health probe for %s failed: %s", service.id, e)
                result = ProbeResult(ok=False, error=str(e) or type(e).__name__)

        health = ServiceHealth(
            id=service.id,
            name=service.name,
            endpoint=service.endpoint,
            status=HealthStatus.OK if result.ok else HealthStatus.ERROR,
            last_checked_at=self._clock(),
            response_time_ms=result.response_time_ms,
            error=None if result.ok else (result.error or "Unhealthy"),
        )
        self._health[service.id] = health
        if self.on_update is not None:
            self.on_update(health)
        return health

    def snapshot(self) -> dict:
        """JSON status for /healthz."""
        values = list(self._health.values())
        ok = sum(1 for h in values if h.status == HealthStatus.OK)
        errors = sum(1 for h in values if h.status == HealthStatus.ERROR)
        return {
            "status": "error" if errors else "ok",
            "services_total": len(values),
            "services_ok": ok,
            "services_error": errors,
            "services_unknown": len(values) - ok - errors,
            "check_running": 1 if self.is_running else 0,
            "services": [h.to_dict() for h in values],
        }

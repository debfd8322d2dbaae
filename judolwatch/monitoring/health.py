"""Health and metrics endpoints for the backend service checks."""

from __future__ import annotations

import logging

from aiohttp import web

from ..constants import HealthStatus
from .checks import BulkHealthCheckRunner

logger = logging.getLogger(__name__)

METRIC_PREFIX = "judolwatch"


def _label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def render_metrics(runner: BulkHealthCheckRunner) -> str:
    """Prometheus text exposition of the runner's latest service health."""
    services = list(runner.health.values())
    counts = {state: 0 for state in HealthStatus}
    for health in services:
        counts[health.status] += 1

    lines = [
        f"# HELP {METRIC_PREFIX}_services Backend services by last known health state.",
        f"# TYPE {METRIC_PREFIX}_services gauge",
    ]
    lines += [f'{METRIC_PREFIX}_services{{state="{state.value}"}} {n}' for state, n in counts.items()]

    lines += [
        f"# HELP {METRIC_PREFIX}_service_up Whether the last check of a service succeeded.",
        f"# TYPE {METRIC_PREFIX}_service_up gauge",
    ]
    for health in services:
        if health.status == HealthStatus.UNKNOWN:
            continue
        up = 1 if health.status == HealthStatus.OK else 0
        lines.append(f'{METRIC_PREFIX}_service_up{{service="{_label(health.id)}"}} {up}')

    lines += [
        f"# HELP {METRIC_PREFIX}_service_response_ms Response time of the last check.",
        f"# TYPE {METRIC_PREFIX}_service_response_ms gauge",
    ]
    for health in services:
        if health.response_time_ms is not None:
            lines.append(
                f'{METRIC_PREFIX}_service_response_ms{{service="{_label(health.id)}"}} '
                f"{health.response_time_ms}"
            )

    lines += [
        f"# HELP {METRIC_PREFIX}_check_running Whether a bulk check is in progress.",
        f"# TYPE {METRIC_PREFIX}_check_running gauge",
        f"{METRIC_PREFIX}_check_running {1 if runner.is_running else 0}",
    ]
    return "\n".join(lines) + "\n"


class HealthServer:
    """Serves /healthz and /metrics for a BulkHealthCheckRunner."""

    def __init__(
        self,
        host: str,
        port: int,
        runner: BulkHealthCheckRunner,
        enabled: bool = True,
    ):
        self.host = host
        self.port = port
        self.runner = runner
        self.enabled = enabled
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self):
        if not self.enabled:
            logger.info("Health server disabled")
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self):
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    async def _handle_health(self, request):  # noqa: ANN001
        return web.json_response(self.runner.snapshot(), headers={"Access-Control-Allow-Origin": "*"})

    async def _handle_metrics(self, request):  # noqa: ANN001
        return web.Response(
            text=render_metrics(self.runner),
            content_type="text/plain",
            charset="utf-8",
        )

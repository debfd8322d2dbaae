"""Service health checks and the health/metrics server."""

from .checks import (
    DEFAULT_SERVICES,
    BulkCheckSummary,
    BulkHealthCheckRunner,
    HttpHealthProbe,
    ProbeResult,
    ServiceDefinition,
)
from .health import HealthServer, render_metrics

__all__ = [
    "DEFAULT_SERVICES",
    "BulkCheckSummary",
    "BulkHealthCheckRunner",
    "HealthServer",
    "HttpHealthProbe",
    "ProbeResult",
    "ServiceDefinition",
    "render_metrics",
]

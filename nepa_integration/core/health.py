"""Health classification rules for monitored services.

Pure functions over a probe result and a metrics snapshot, kept separate
from the monitor so the thresholds can be exercised directly.
"""

from typing import List

from nepa_integration.domain.models.api import Metrics
from nepa_integration.domain.models.monitoring import CheckResult, CheckStatus, HealthStatus

ERROR_RATE_UNHEALTHY = 0.10
ERROR_RATE_DEGRADED = 0.05
RESPONSE_TIME_UNHEALTHY_MS = 10000.0
RESPONSE_TIME_DEGRADED_MS = 5000.0
RECENT_ERRORS_WINDOW = 5
RECENT_ERRORS_DEGRADED = 3
RATE_LIMIT_HITS_WARN = 10


def determine_health_status(probe_healthy: bool, metrics: Metrics, recent_error_count: int) -> HealthStatus:
    """Classifies a service.

    Args:
        probe_healthy: Outcome of the service's health probe.
        metrics: Current metrics snapshot of the service's executor.
        recent_error_count: Number of the service's latest error log
            entries, capped at RECENT_ERRORS_WINDOW.

    Returns:
        UNHEALTHY when the probe fails, the error rate exceeds 10% or the
        average response time exceeds 10s; DEGRADED when the error rate
        exceeds 5%, the average exceeds 5s or more than three recent errors
        were logged; HEALTHY otherwise.
    """
    if not probe_healthy:
        return HealthStatus.UNHEALTHY

    error_rate = metrics.error_rate
    avg_response_time = metrics.average_response_time

    if error_rate > ERROR_RATE_UNHEALTHY or avg_response_time > RESPONSE_TIME_UNHEALTHY_MS:
        return HealthStatus.UNHEALTHY

    if (
        error_rate > ERROR_RATE_DEGRADED
        or avg_response_time > RESPONSE_TIME_DEGRADED_MS
        or recent_error_count > RECENT_ERRORS_DEGRADED
    ):
        return HealthStatus.DEGRADED

    return HealthStatus.HEALTHY


def build_checks(probe_healthy: bool, metrics: Metrics, probe_duration_ms: float) -> List[CheckResult]:
    """The four named sub-checks recorded with every health snapshot."""
    error_rate = metrics.error_rate
    return [
        CheckResult(
            name="api_connectivity",
            status=CheckStatus.PASS if probe_healthy else CheckStatus.FAIL,
            message="API is reachable" if probe_healthy else "API is not responding",
            duration=probe_duration_ms,
        ),
        CheckResult(
            name="error_rate",
            status=CheckStatus.PASS if error_rate < ERROR_RATE_DEGRADED else CheckStatus.FAIL,
            message=f"Error rate: {error_rate * 100:.2f}%",
        ),
        CheckResult(
            name="response_time",
            status=(
                CheckStatus.PASS if metrics.average_response_time < RESPONSE_TIME_DEGRADED_MS
                else CheckStatus.WARN
            ),
            message=f"Average response time: {metrics.average_response_time:.2f}ms",
        ),
        CheckResult(
            name="rate_limit",
            status=CheckStatus.PASS if metrics.rate_limit_hits < RATE_LIMIT_HITS_WARN else CheckStatus.WARN,
            message=f"Rate limit hits: {metrics.rate_limit_hits}",
        ),
    ]

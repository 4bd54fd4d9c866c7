import pytest

from nepa_integration.core.health import build_checks, determine_health_status
from nepa_integration.domain.models.api import Metrics
from nepa_integration.domain.models.monitoring import CheckStatus, HealthStatus


def metrics_with(failed: int, total: int = 100, average_response_time: float = 100.0, rate_limit_hits: int = 0):
    return Metrics(
        total_requests=total,
        successful_requests=total - failed,
        failed_requests=failed,
        average_response_time=average_response_time,
        rate_limit_hits=rate_limit_hits,
    )


@pytest.mark.parametrize("failed, expected", [
    (11, HealthStatus.UNHEALTHY),
    (6, HealthStatus.DEGRADED),
    (1, HealthStatus.HEALTHY),
])
def test_error_rate_thresholds(failed, expected):
    assert determine_health_status(True, metrics_with(failed), recent_error_count=0) is expected


@pytest.mark.parametrize("average, expected", [
    (10001.0, HealthStatus.UNHEALTHY),
    (5001.0, HealthStatus.DEGRADED),
    (5000.0, HealthStatus.HEALTHY),
])
def test_response_time_thresholds(average, expected):
    assert determine_health_status(True, metrics_with(0, average_response_time=average), 0) is expected


def test_failed_probe_is_unhealthy():
    assert determine_health_status(False, Metrics(), 0) is HealthStatus.UNHEALTHY


def test_recent_errors_degrade():
    assert determine_health_status(True, Metrics(), 4) is HealthStatus.DEGRADED
    assert determine_health_status(True, Metrics(), 3) is HealthStatus.HEALTHY


def test_no_requests_means_zero_error_rate():
    assert determine_health_status(True, Metrics(), 0) is HealthStatus.HEALTHY


def test_build_checks():
    checks = {check.name: check for check in build_checks(
        True, metrics_with(5, average_response_time=6000.0, rate_limit_hits=10), probe_duration_ms=12.0
    )}

    assert list(checks) == ["api_connectivity", "error_rate", "response_time", "rate_limit"]
    assert checks["api_connectivity"].status is CheckStatus.PASS
    assert checks["api_connectivity"].duration == 12.0
    assert checks["error_rate"].status is CheckStatus.FAIL
    assert checks["error_rate"].message == "Error rate: 5.00%"
    assert checks["response_time"].status is CheckStatus.WARN
    assert checks["rate_limit"].status is CheckStatus.WARN


def test_build_checks_for_failed_probe():
    checks = build_checks(False, Metrics(), probe_duration_ms=5000.0)
    assert checks[0].status is CheckStatus.FAIL
    assert checks[0].message == "API is not responding"

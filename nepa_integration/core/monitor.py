"""Cross-Service Monitor.

Aggregates structured logs from every registered executor, keeps a
bounded metrics history per service, re-evaluates service health on a
timer and raises cooldown-gated alerts to the configured channels.

The monitor never raises past its boundary: probe failures and alert
channel failures are recorded as error log entries.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from nepa_integration.core.health import RECENT_ERRORS_WINDOW, build_checks, determine_health_status
from nepa_integration.core.log_store import LogStore
from nepa_integration.core.request_executor import RequestExecutor
from nepa_integration.domain.events.api_events import (
    ApiCallDeferred, ApiCallFailed, ApiCallSucceeded, MetricsUpdated, RetryScheduled
)
from nepa_integration.domain.events.monitor_events import (
    AlertRaised, HealthChecked, LogRecorded, MetricsRecorded
)
from nepa_integration.domain.models.api import Metrics
from nepa_integration.domain.models.common import Metadata
from nepa_integration.domain.models.monitoring import (
    AlertSeverity, ErrorDetail, HealthCheck, HealthStatus, LogEntry, LogLevel,
    MetricsSample, MonitoringConfig, MonitoringSummary
)
from nepa_integration.infrastructure.events.event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

MONITOR_SERVICE = "monitor"
ALERT_DELIVERY_OPERATION = "alert_delivery"
MAX_ALERT_HISTORY = 1000
PERIOD_SECONDS = {"hour": 60 * 60, "day": 24 * 60 * 60, "week": 7 * 24 * 60 * 60}

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class IntegrationMonitor:
    """Observes any number of RequestExecutors registered under a name."""

    def __init__(self, config: Optional[MonitoringConfig] = None, clock=time.time):
        """Initializes the monitor. Timers start with start().

        Args:
            config: Monitoring settings; defaults to MonitoringConfig().
            clock: Wall-clock time source in seconds since the epoch.
        """
        self.config = config or MonitoringConfig()
        self._clock = clock
        self.events = EventBus(name="monitor")
        self._logs = LogStore(
            max_entries=self.config.max_log_entries,
            retention_days=self.config.retention_days,
            clock=clock,
        )
        self._services: Dict[str, RequestExecutor] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._health_checks: Dict[str, HealthCheck] = {}
        self._metrics_history: Dict[str, Deque[MetricsSample]] = {}
        self._alert_cooldowns: Dict[Tuple[str, str], float] = {}
        self._alerts: Deque[AlertRaised] = deque(maxlen=MAX_ALERT_HISTORY)
        self._pending_deliveries: Set[asyncio.Task] = set()
        self._health_task: Optional[asyncio.Task] = None
        self._metrics_task: Optional[asyncio.Task] = None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    # --- Service registration ---

    def register_service(self, name: str, executor: RequestExecutor) -> None:
        """Starts ingesting an executor's events under the given service name."""
        if name in self._services:
            self.unregister_service(name)

        self._services[name] = executor
        self._metrics_history[name] = deque(maxlen=self.config.metrics_history_size)

        def on_success(event: ApiCallSucceeded) -> None:
            self.log(
                LogLevel.INFO, name, "api_request", "API request successful",
                metadata={"statusCode": event.status_code, "url": event.url, "method": event.method},
                duration=event.latency_ms, status_code=event.status_code,
            )

        def on_failure(event: ApiCallFailed) -> None:
            self.log(
                LogLevel.ERROR, name, "api_request", "API request failed",
                metadata={
                    "statusCode": event.status_code, "url": event.url,
                    "method": event.method, "error": event.error,
                },
                duration=event.latency_ms, status_code=event.status_code,
            )

        def on_deferred(event: ApiCallDeferred) -> None:
            self.log(
                LogLevel.WARN, name, "rate_limit", "Request deferred by rate limiter",
                metadata={"target": event.target, "waitTimeSeconds": event.wait_time_seconds},
            )

        def on_retry(event: RetryScheduled) -> None:
            self.log(
                LogLevel.DEBUG, name, "retry", f"Retry {event.attempt_number} scheduled",
                metadata={"url": event.url, "method": event.method, "delaySeconds": event.delay_seconds},
            )

        def on_metrics(event: MetricsUpdated) -> None:
            self.record_metrics(name, event.metrics)

        self._subscriptions[name] = [
            executor.events.subscribe(ApiCallSucceeded, on_success),
            executor.events.subscribe(ApiCallFailed, on_failure),
            executor.events.subscribe(ApiCallDeferred, on_deferred),
            executor.events.subscribe(RetryScheduled, on_retry),
            executor.events.subscribe(MetricsUpdated, on_metrics),
        ]
        self.log(LogLevel.INFO, name, "service_registration", "Service registered for monitoring")

    def unregister_service(self, name: str) -> None:
        for subscription in self._subscriptions.pop(name, []):
            subscription.cancel()
        self._services.pop(name, None)
        self._metrics_history.pop(name, None)
        self._health_checks.pop(name, None)
        self.log(LogLevel.INFO, name, "service_unregistration", "Service unregistered from monitoring")

    @property
    def services(self) -> List[str]:
        return list(self._services)

    # --- Logging ---

    def _should_log(self, level: LogLevel) -> bool:
        return level.rank >= LogLevel(self.config.log_level).rank

    def log(
        self,
        level: LogLevel,
        service: str,
        operation: str,
        message: str,
        metadata: Optional[Metadata] = None,
        correlation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        duration: Optional[float] = None,
        status_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> Optional[LogEntry]:
        """Records a structured log entry.

        Entries below the configured level are dropped and None is returned.
        Error entries may raise a 'high_error_rate' alert for the service.
        """
        level = LogLevel(level)
        if not self._should_log(level):
            return None

        entry = LogEntry(
            timestamp=self._now(),
            level=level,
            service=service,
            operation=operation,
            message=message,
            metadata=dict(metadata) if metadata is not None else None,
            correlation_id=correlation_id,
            user_id=user_id,
            duration=duration,
            status_code=status_code,
            error=ErrorDetail.from_exception(error) if error is not None else None,
        )
        self._logs.append(entry)
        logging.getLogger(f"{__name__}.{service}").log(
            _STDLIB_LEVELS[level], f"[{operation}] {message}", exc_info=error
        )
        self.events.publish(LogRecorded(entry=entry))

        if level is LogLevel.ERROR and operation != ALERT_DELIVERY_OPERATION:
            self._check_error_alert(entry)
        return entry

    def get_logs(
        self,
        service: Optional[str] = None,
        level: Optional[LogLevel] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        return self._logs.query(
            service=service, level=level, start=start, end=end,
            correlation_id=correlation_id, limit=limit,
        )

    def clear_logs(self) -> None:
        self._logs.clear()

    def export_logs(self, fmt: str = "json") -> str:
        """Serializes all retained entries as 'json' or 'csv'."""
        return self._logs.export(fmt)

    # --- Metrics history ---

    def record_metrics(self, service_name: str, metrics: Metrics) -> None:
        history = self._metrics_history.setdefault(
            service_name, deque(maxlen=self.config.metrics_history_size)
        )
        history.append(MetricsSample(timestamp=self._now(), metrics=metrics.snapshot()))
        self.events.publish(MetricsRecorded(service_name=service_name, metrics=metrics.snapshot()))

    def collect_metrics(self) -> None:
        """Samples the live metrics of every registered service."""
        for name, executor in list(self._services.items()):
            self.record_metrics(name, executor.get_metrics())

    def get_service_metrics(self, service_name: str, period: Optional[str] = None) -> List[MetricsSample]:
        history = list(self._metrics_history.get(service_name, ()))
        if period is None:
            return history
        if period not in PERIOD_SECONDS:
            raise ValueError(f"Unknown period {period!r}; expected one of {sorted(PERIOD_SECONDS)}")
        cutoff = self._now() - timedelta(seconds=PERIOD_SECONDS[period])
        return [sample for sample in history if sample.timestamp >= cutoff]

    # --- Health evaluation ---

    async def perform_health_checks(self) -> Dict[str, HealthCheck]:
        """Runs one evaluation cycle over every registered service."""
        for name, executor in list(self._services.items()):
            try:
                start = self._clock()
                probe = await executor.health_check()
                response_time = (self._clock() - start) * 1000
                if name not in self._services:
                    continue

                probe_healthy = bool(probe.get("healthy"))
                metrics = executor.get_metrics()
                recent_errors = self._logs.recent_errors(name, RECENT_ERRORS_WINDOW)

                health_check = HealthCheck(
                    service=name,
                    status=determine_health_status(probe_healthy, metrics, len(recent_errors)),
                    timestamp=self._now(),
                    response_time=response_time,
                    metrics=metrics,
                    recent_errors=recent_errors,
                    active_connections=executor.in_flight,
                    checks=build_checks(probe_healthy, metrics, response_time),
                )
                self._health_checks[name] = health_check
                self.events.publish(HealthChecked(health_check=health_check))

                if health_check.status is not HealthStatus.HEALTHY:
                    self._check_health_alert(health_check)
            except Exception as e:
                self.log(LogLevel.ERROR, name, "health_check", "Health check failed", error=e)
        return self.get_health_checks()

    def get_health_checks(self) -> Dict[str, HealthCheck]:
        return dict(self._health_checks)

    # --- Alerting ---

    def _cooldown_allows(self, service_name: str, kind: str) -> bool:
        now = self._clock()
        last_alert = self._alert_cooldowns.get((service_name, kind))
        if last_alert is not None and now - last_alert < self.config.alert_config.cooldown_seconds:
            return False
        self._alert_cooldowns[(service_name, kind)] = now
        return True

    def _check_error_alert(self, entry: LogEntry) -> None:
        if not self.config.alert_config.enabled or not self._cooldown_allows(entry.service, "error"):
            return
        self._trigger_alert(AlertRaised(
            service_name=entry.service,
            alert_type="high_error_rate",
            message=f"High error rate detected in {entry.service}",
            severity=AlertSeverity.WARNING,
            metadata={
                "error": entry.message,
                "operation": entry.operation,
                "timestamp": entry.timestamp.isoformat(),
            },
            timestamp=self._clock(),
        ))

    def _check_health_alert(self, health_check: HealthCheck) -> None:
        if not self.config.alert_config.enabled or not self._cooldown_allows(health_check.service, "health"):
            return
        severity = AlertSeverity.CRITICAL if health_check.status is HealthStatus.UNHEALTHY else AlertSeverity.WARNING
        failing = [check.name for check in health_check.checks if check.status.value != "pass"]
        self._trigger_alert(AlertRaised(
            service_name=health_check.service,
            alert_type="health_issue",
            message=f"Health issue detected in {health_check.service}: {health_check.status.value}",
            severity=severity,
            metadata={
                "status": health_check.status.value,
                "responseTime": health_check.response_time,
                "failingChecks": ",".join(failing),
            },
            timestamp=self._clock(),
        ))

    def _trigger_alert(self, alert: AlertRaised) -> None:
        self._alerts.append(alert)
        logger.warning(f"Alert [{alert.severity.value}] {alert.alert_type}: {alert.message}")
        self.events.publish(alert)

        if not self.config.alert_config.channels:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; alert '{alert.alert_type}' not sent to channels")
            return
        task = loop.create_task(self._deliver_alert(alert))
        self._pending_deliveries.add(task)
        task.add_done_callback(self._pending_deliveries.discard)

    async def _deliver_alert(self, alert: AlertRaised) -> None:
        for channel in list(self.config.alert_config.channels):
            channel_type = getattr(channel, "channel_type", type(channel).__name__)
            try:
                await channel.send(alert)
            except Exception as e:
                self.log(
                    LogLevel.ERROR, MONITOR_SERVICE, ALERT_DELIVERY_OPERATION,
                    f"Failed to send alert to {channel_type}",
                    metadata={"channel": channel_type, "error": str(e) or type(e).__name__},
                )

    async def flush_alerts(self) -> None:
        """Waits for alert deliveries that are still in progress."""
        if self._pending_deliveries:
            await asyncio.gather(*list(self._pending_deliveries), return_exceptions=True)

    def get_alerts(self) -> List[AlertRaised]:
        return list(self._alerts)

    # --- Summary ---

    def get_monitoring_summary(self) -> MonitoringSummary:
        snapshots = list(self._health_checks.values())
        total_requests = 0
        weighted_response_time = 0.0
        failed_requests = 0
        for executor in self._services.values():
            metrics = executor.get_metrics()
            total_requests += metrics.total_requests
            weighted_response_time += metrics.average_response_time * metrics.total_requests
            failed_requests += metrics.failed_requests

        return MonitoringSummary(
            total_services=len(snapshots),
            healthy_services=sum(1 for s in snapshots if s.status is HealthStatus.HEALTHY),
            degraded_services=sum(1 for s in snapshots if s.status is HealthStatus.DEGRADED),
            unhealthy_services=sum(1 for s in snapshots if s.status is HealthStatus.UNHEALTHY),
            total_logs=len(self._logs),
            error_logs=self._logs.count(LogLevel.ERROR),
            average_response_time=weighted_response_time / total_requests if total_requests else 0.0,
            total_requests=total_requests,
            error_rate=failed_requests / total_requests if total_requests else 0.0,
        )

    # --- Timers ---

    @property
    def is_running(self) -> bool:
        return self._health_task is not None or self._metrics_task is not None

    def start(self) -> None:
        """Starts the health-check and metrics timers on the running loop."""
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._health_task = loop.create_task(self._health_check_loop(self.config.health_check_interval))
        self._metrics_task = loop.create_task(self._metrics_loop(self.config.metrics_interval))
        logger.info(
            f"Monitoring started: health every {self.config.health_check_interval}s, "
            f"metrics every {self.config.metrics_interval}s"
        )

    async def _health_check_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.perform_health_checks()

    async def _metrics_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.collect_metrics()

    async def stop(self) -> None:
        """Cancels both timers and waits until they have finished."""
        for task in (self._health_task, self._metrics_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._health_task = None
        self._metrics_task = None
        await self.flush_alerts()
        logger.info("Monitoring stopped")

    async def update_config(self, **changes: Any) -> None:
        """Partially updates the configuration; restarts timers if an interval changed."""
        self.config = replace(self.config, **changes)
        self._logs.reconfigure(self.config.max_log_entries, self.config.retention_days)
        intervals_changed = "health_check_interval" in changes or "metrics_interval" in changes
        if intervals_changed and self.is_running:
            await self.stop()
            self.start()

    async def __aenter__(self) -> "IntegrationMonitor":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), builds executors
for the named services and a monitor over them, and renders results
through the UserInterface.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from nepa_integration.core.monitor import IntegrationMonitor
from nepa_integration.core.request_executor import RequestExecutor
from nepa_integration.domain.interfaces.user_interface import UserInterface
from nepa_integration.domain.models.api import CallConfig
from nepa_integration.domain.models.errors import IntegrationError
from nepa_integration.domain.models.monitoring import HealthStatus, MonitoringConfig

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")


class CommandHandler:
    """Handles incoming commands and delegates to executors and the monitor."""

    def __init__(
        self,
        executor_factory: Callable[[str], RequestExecutor],
        monitoring_config_factory: Callable[[], MonitoringConfig],
        service_names: Callable[[], List[str]],
        ui: UserInterface,
    ):
        """Initializes the CommandHandler.

        Args:
            executor_factory: Builds a configured executor for a service name.
                Raises ConfigurationError for unknown or invalid services.
            monitoring_config_factory: Builds the monitor settings.
            service_names: Lists the configured services.
            ui: Output surface.
        """
        self.executor_factory = executor_factory
        self.monitoring_config_factory = monitoring_config_factory
        self.service_names = service_names
        self.ui = ui

    async def _build_executors(self, services: List[str]) -> Dict[str, RequestExecutor]:
        executors: Dict[str, RequestExecutor] = {}
        try:
            for name in services:
                executors[name] = self.executor_factory(name)
        except IntegrationError:
            await self._close_all(executors)
            raise
        return executors

    async def _close_all(self, executors: Dict[str, RequestExecutor]) -> None:
        for executor in executors.values():
            await executor.aclose()

    async def handle_call(
        self,
        service: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> bool:
        """Handles the 'call' command. Returns whether the call succeeded."""
        logger.info(f"Handling 'call' command: {method} {service}{path}")
        try:
            call = CallConfig(method, path, params=params, body=body)
            executor = self.executor_factory(service)
        except IntegrationError as e:
            logger.error(f"Call command rejected: {e}")
            self.ui.display_error(str(e))
            return False

        async with executor:
            result = await executor.execute(call)
        self.ui.display_result(result, title=f"{call.method} {service}{call.path}")
        return result.success

    async def handle_health(self, services: Optional[List[str]] = None) -> bool:
        """Handles the 'health' command: one health cycle over the services.

        Returns:
            True when every checked service is healthy.
        """
        services = list(services or self.service_names())
        if not services:
            self.ui.display_warning("No services configured")
            return False
        logger.info(f"Handling 'health' command for: {', '.join(services)}")

        try:
            monitoring_config = self.monitoring_config_factory()
            executors = await self._build_executors(services)
        except IntegrationError as e:
            self.ui.display_error(str(e))
            return False

        monitor = IntegrationMonitor(monitoring_config)
        try:
            for name, executor in executors.items():
                monitor.register_service(name, executor)
            health_checks = await monitor.perform_health_checks()
            await monitor.flush_alerts()
        finally:
            await self._close_all(executors)

        self.ui.display_health(list(health_checks.values()))
        self.ui.display_summary(monitor.get_monitoring_summary())
        return bool(health_checks) and all(
            check.status is HealthStatus.HEALTHY for check in health_checks.values()
        )

    async def handle_monitor(
        self,
        duration: float,
        services: Optional[List[str]] = None,
        export_format: Optional[str] = None,
        output: Optional[Path] = None,
    ) -> bool:
        """Handles the 'monitor' command: runs the monitor timers for a while.

        Args:
            duration: Seconds to keep the timers running.
            services: Services to watch (defaults to all configured).
            export_format: 'json' or 'csv' to export the collected logs.
            output: File for the export; printed to the console if None.
        """
        if export_format is not None and export_format not in EXPORT_FORMATS:
            self.ui.display_error(f"Unsupported export format '{export_format}'. Choose 'json' or 'csv'.")
            return False

        services = list(services or self.service_names())
        if not services:
            self.ui.display_warning("No services configured")
            return False

        try:
            monitoring_config = self.monitoring_config_factory()
            executors = await self._build_executors(services)
        except IntegrationError as e:
            self.ui.display_error(str(e))
            return False

        self.ui.display_info(f"Monitoring {', '.join(services)} for {duration:g}s")
        monitor = IntegrationMonitor(monitoring_config)
        try:
            for name, executor in executors.items():
                monitor.register_service(name, executor)
                executor.start_metrics_broadcast(monitoring_config.metrics_interval)
            async with monitor:
                await asyncio.sleep(duration)
            await monitor.perform_health_checks()
            await monitor.flush_alerts()
        finally:
            await self._close_all(executors)

        self.ui.display_health(list(monitor.get_health_checks().values()))
        self.ui.display_summary(monitor.get_monitoring_summary())
        for alert in monitor.get_alerts():
            self.ui.display_warning(f"[{alert.severity.value}] {alert.service_name}: {alert.message}")

        if export_format is not None:
            exported = monitor.export_logs(export_format)
            if output is not None:
                output.write_text(exported, encoding="utf-8")
                self.ui.display_info(f"Exported {len(monitor.get_logs())} log entries to {output}")
            else:
                self.ui.display_raw(exported)
        return True

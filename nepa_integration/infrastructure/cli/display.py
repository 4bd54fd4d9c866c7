import json
import logging
from typing import Any, List, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from nepa_integration.domain.interfaces.user_interface import UserInterface
from nepa_integration.domain.models.api import ApiResult
from nepa_integration.domain.models.monitoring import CheckStatus, HealthCheck, HealthStatus, MonitoringSummary

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    HealthStatus.HEALTHY: "bold green",
    HealthStatus.DEGRADED: "bold yellow",
    HealthStatus.UNHEALTHY: "bold red",
}
CHECK_STYLES = {
    CheckStatus.PASS: "green",
    CheckStatus.WARN: "yellow",
    CheckStatus.FAIL: "red",
}


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_result(self, result: ApiResult, **kwargs: Any) -> None:
        """Displays the envelope of one call as a panel.

        Args:
            result: The result to display.
            **kwargs: Additional arguments including:
                - title: Panel title (default: "Result")
        """
        title = kwargs.get("title", "Result")
        status = "[bold green]OK[/bold green]" if result.success else "[bold red]FAILED[/bold red]"
        details = f"status={result.status_code}  time={result.response_time:.1f}ms"
        if result.cached:
            details += "  [cyan](cached)[/cyan]"
        header = f"[bold white]{title}[/bold white] {status} [dim]{details}[/dim]"

        if result.success:
            body = Syntax(json.dumps(result.data, indent=2, default=str), "json", word_wrap=True)
        else:
            body = Text(result.error or "Unknown error", style="white")

        self.console.print(Panel(
            body,
            title=header,
            title_align="left",
            border_style="green" if result.success else "red",
            box=ROUNDED,
            padding=(0, 1),
        ))

    def display_health(self, health_checks: List[HealthCheck]) -> None:
        if not health_checks:
            self.display_warning("No health data available")
            return

        table = Table(title="Service Health", box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Service", style="bold")
        table.add_column("Status")
        table.add_column("Probe (ms)", justify="right")
        table.add_column("Requests", justify="right")
        table.add_column("Error rate", justify="right")
        table.add_column("Avg (ms)", justify="right")
        table.add_column("In flight", justify="right")
        table.add_column("Checks")

        for health_check in health_checks:
            style = STATUS_STYLES.get(health_check.status, "white")
            checks = " ".join(
                f"[{CHECK_STYLES.get(check.status, 'white')}]{check.name}[/]"
                for check in health_check.checks
            )
            table.add_row(
                health_check.service,
                f"[{style}]{health_check.status.value}[/{style}]",
                f"{health_check.response_time:.1f}",
                str(health_check.metrics.total_requests),
                f"{health_check.metrics.error_rate * 100:.2f}%",
                f"{health_check.metrics.average_response_time:.1f}",
                str(health_check.active_connections),
                checks,
            )
        self.console.print(table)

    def display_summary(self, summary: MonitoringSummary) -> None:
        table = Table(show_header=False, box=SIMPLE, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="bold", justify="right")
        table.add_row("Services", str(summary.total_services))
        table.add_row("Healthy", f"[green]{summary.healthy_services}[/green]")
        table.add_row("Degraded", f"[yellow]{summary.degraded_services}[/yellow]")
        table.add_row("Unhealthy", f"[red]{summary.unhealthy_services}[/red]")
        table.add_row("Requests", str(summary.total_requests))
        table.add_row("Error rate", f"{summary.error_rate * 100:.2f}%")
        table.add_row("Avg response (ms)", f"{summary.average_response_time:.1f}")
        table.add_row("Log entries", f"{summary.total_logs} ({summary.error_logs} errors)")
        self.console.print(Panel(table, title="[bold cyan]Monitoring Summary[/bold cyan]", box=ROUNDED))

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.debug(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_raw(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

"""Main entry point for the NEPA integration CLI.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Coroutine, Dict, List, Optional

import typer

# --- Core Layer ---
from nepa_integration.core.command_handler import CommandHandler
from nepa_integration.core.request_executor import RequestExecutor

# --- Domain Layer ---
from nepa_integration.domain.models.errors import ValidationError

# --- Infrastructure Layer ---
from nepa_integration.infrastructure.cli.display import ConsoleDisplay
from nepa_integration.infrastructure.config.settings import (
    build_api_config, build_cache_config, build_monitoring_config, build_rate_limit_config,
    get_config, list_services, load_configuration
)
from nepa_integration.infrastructure.monitoring.logger_setup import parse_log_level, setup_logging

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

_dependencies: Dict[str, Any] = {}


def build_executor(service: str) -> RequestExecutor:
    """Creates a RequestExecutor for a configured service."""
    return RequestExecutor(
        build_api_config(service),
        build_rate_limit_config(service),
        build_cache_config(service),
        name=service,
    )


def create_dependencies(log_level: Optional[str] = None, config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    if config_file is not None:
        load_configuration(config_file=config_file, force=True)
    else:
        load_configuration()

    setup_logging(
        log_level=log_level or str(get_config("logging.level", "WARNING")),
        log_file=get_config("logging.file"),
    )
    logger.debug("Configuration and logging initialized.")

    dependencies: Dict[str, Any] = {"ui": ConsoleDisplay()}
    dependencies["command_handler"] = CommandHandler(
        executor_factory=build_executor,
        monitoring_config_factory=build_monitoring_config,
        service_names=list_services,
        ui=dependencies["ui"],
    )
    return dependencies


def _handler() -> CommandHandler:
    if not _dependencies:
        _dependencies.update(create_dependencies())
    return _dependencies["command_handler"]


# --- Typer App Definition ---
app = typer.Typer(
    name="nepa-integration",
    help="Resilient API integration layer: call services, check health and monitor them.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> None:
    """Runs a handler coroutine and exits non-zero when it reports failure."""
    try:
        succeeded = asyncio.run(coro)
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        _dependencies["ui"].display_error(f"Command execution failed: {e}")
        raise typer.Exit(code=1)
    if not succeeded:
        raise typer.Exit(code=1)


def parse_params(raw_params: Optional[List[str]]) -> Optional[Dict[str, str]]:
    """Turns repeated 'key=value' options into a query dict."""
    if not raw_params:
        return None
    params: Dict[str, str] = {}
    for raw in raw_params:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise ValidationError(f"Invalid --param '{raw}', expected key=value")
        params[key] = value
    return params


def parse_body(raw_body: Optional[str]) -> Any:
    if raw_body is None:
        return None
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValidationError(f"--data is not valid JSON: {e}")


# --- CLI Commands ---

ServicesArgument = Annotated[
    Optional[List[str]],
    typer.Argument(help="Service names from the configuration. Defaults to all configured services.")
]


@app.command()
def call(
    service: Annotated[str, typer.Argument(help="Configured service name, e.g. 'banking'.")],
    path: Annotated[str, typer.Argument(help="Request path relative to the service base URL.")],
    method: Annotated[str, typer.Option("--method", "-X", help="HTTP method.")] = "GET",
    data: Annotated[Optional[str], typer.Option("--data", "-d", help="JSON request body.")] = None,
    param: Annotated[Optional[List[str]], typer.Option("--param", "-p", help="Query parameter key=value.")] = None,
):
    """Execute one request against a configured service."""
    handler = _handler()
    try:
        params = parse_params(param)
        body = parse_body(data)
    except ValidationError as e:
        _dependencies["ui"].display_error(str(e))
        raise typer.Exit(code=2)
    run_async(handler.handle_call(service, method, path, params=params, body=body))


@app.command()
def health(services: ServicesArgument = None):
    """Run one health-check cycle and show the results."""
    run_async(_handler().handle_health(services))


@app.command()
def monitor(
    services: ServicesArgument = None,
    duration: Annotated[float, typer.Option("--duration", min=0, help="Seconds to keep monitoring.")] = 60.0,
    export: Annotated[Optional[str], typer.Option("--export", help="Export collected logs: 'json' or 'csv'.")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="File to write the export to.")] = None,
):
    """Run the monitor for a while, then show health, summary and alerts."""
    run_async(_handler().handle_monitor(duration, services, export_format=export, output=output))


@app.callback()
def main_callback(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Logging level (debug, info, warning, error).")
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", exists=True, dir_okay=False, help="Path to a YAML configuration file.")
    ] = None,
):
    """NEPA integration layer command line."""
    if log_level is not None:
        try:
            parse_log_level(log_level)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--log-level")
    _dependencies.clear()
    _dependencies.update(create_dependencies(log_level=log_level, config_file=config))


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()

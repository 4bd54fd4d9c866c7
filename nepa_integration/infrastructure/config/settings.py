"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
YAML configuration file (~/.nepa/config.yaml). Keys are dotted paths into
the YAML document, e.g. ``services.banking.base_url``; the matching
environment variable is ``NEPA_SERVICES_BANKING_BASE_URL``.

Example config.yaml::

    services:
      banking:
        base_url: https://banking.example.com/api
        retry_attempts: 3
        auth: {type: apikey, api_key: secret}
        rate_limit: {window_seconds: 60, max_requests: 100}
        cache: {enabled: true, ttl_seconds: 300, strategy: lru}
    monitoring:
      log_level: info
      alerts:
        cooldown_seconds: 300
        channels:
          - {type: slack, webhook_url: https://hooks.slack.com/...}
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from nepa_integration.domain.models.api import (
    ApiConfig, AuthConfig, AuthType, CacheConfig, CacheStrategy, RateLimitConfig
)
from nepa_integration.domain.models.errors import ConfigurationError
from nepa_integration.domain.models.monitoring import AlertConfig, LogLevel, MonitoringConfig
from nepa_integration.infrastructure.alerts.channels import build_alert_channel

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".nepa"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "NEPA_"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def load_configuration(
    config_file: Path = DEFAULT_CONFIG_FILE,
    env_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values supplied by the caller

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    config_file = Path(config_file)
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False so real environment variables win
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path and load_dotenv(dotenv_path=dotenv_path, override=False):
        logger.info(f"Loaded environment variables from: {dotenv_path}")

    # 3. Environment variables are read on demand by get_config
    _loaded = True
    logger.debug("Configuration loading process completed.")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def env_var_name(key: str) -> str:
    return ENV_PREFIX + key.upper().replace(".", "_")


def _coerce_env_value(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return value


def _lookup_yaml(key: str) -> Any:
    if key in _config:
        return _config[key]
    node: Any = _config
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by dotted key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (NEPA_ prefix)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key, e.g. 'services.banking.timeout'
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce_env_value(os.environ[env_key])

    value = _lookup_yaml(key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# --- Value validation ---

def _number(key: str, value: Any, cast=float, minimum: float = 0.0, inclusive: bool = False):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if number < minimum or (number == minimum and not inclusive):
        bound = ">=" if inclusive else ">"
        raise ConfigurationError(f"'{key}' must be {bound} {minimum}, got {value!r}")
    return number


def _flag(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
        return value.lower() in ("true", "1", "yes")
    if isinstance(value, int):
        return bool(value)
    raise ConfigurationError(f"'{key}' must be a boolean, got {value!r}")


def _enum(key: str, value: Any, enum_type):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ConfigurationError(f"'{key}' must be one of: {allowed}; got {value!r}")


# --- Typed builders ---

def list_services() -> List[str]:
    """Names of all services that have a configuration section."""
    names = set()
    services = _lookup_yaml("services")
    if isinstance(services, dict):
        names.update(services)
    for key in _test_config:
        parts = key.split(".")
        if len(parts) >= 3 and parts[0] == "services":
            names.add(parts[1])
    return sorted(names)


def build_auth_config(service: str) -> Optional[AuthConfig]:
    prefix = f"services.{service}.auth"
    auth_type = get_config(f"{prefix}.type")
    if auth_type is None:
        return None
    credentials = dict(get_config(f"{prefix}.credentials") or {})
    for name in ("api_key", "token", "access_token"):
        value = get_config(f"{prefix}.{name}")
        if value is not None:
            credentials[name] = str(value)
    return AuthConfig(type=_enum(f"{prefix}.type", auth_type, AuthType), credentials=credentials)


def build_api_config(service: str) -> ApiConfig:
    """Builds the connection settings of one service.

    Raises:
        ConfigurationError: base_url is missing or a value is invalid.
    """
    prefix = f"services.{service}"
    base_url = get_config(f"{prefix}.base_url")
    if not base_url:
        raise ConfigurationError(f"Service '{service}' has no base_url (set {env_var_name(prefix + '.base_url')})")

    headers = get_config(f"{prefix}.headers") or {}
    if not isinstance(headers, dict):
        raise ConfigurationError(f"'{prefix}.headers' must be a mapping")

    return ApiConfig(
        base_url=str(base_url),
        timeout=_number(f"{prefix}.timeout", get_config(f"{prefix}.timeout", 30.0)),
        retry_attempts=_number(
            f"{prefix}.retry_attempts", get_config(f"{prefix}.retry_attempts", 3), cast=int, inclusive=True
        ),
        retry_delay=_number(
            f"{prefix}.retry_delay", get_config(f"{prefix}.retry_delay", 1.0), inclusive=True
        ),
        auth=build_auth_config(service),
        headers={str(k): str(v) for k, v in headers.items()},
    )


def build_rate_limit_config(service: str) -> RateLimitConfig:
    prefix = f"services.{service}.rate_limit"
    return RateLimitConfig(
        window_seconds=_number(f"{prefix}.window_seconds", get_config(f"{prefix}.window_seconds", 60.0)),
        max_requests=_number(f"{prefix}.max_requests", get_config(f"{prefix}.max_requests", 100), cast=int),
    )


def build_cache_config(service: str) -> CacheConfig:
    prefix = f"services.{service}.cache"
    return CacheConfig(
        enabled=_flag(f"{prefix}.enabled", get_config(f"{prefix}.enabled", True)),
        ttl_seconds=_number(f"{prefix}.ttl_seconds", get_config(f"{prefix}.ttl_seconds", 300.0)),
        max_size=_number(f"{prefix}.max_size", get_config(f"{prefix}.max_size", 1000), cast=int),
        strategy=_enum(f"{prefix}.strategy", get_config(f"{prefix}.strategy", "lru"), CacheStrategy),
    )


def build_monitoring_config(http_client=None) -> MonitoringConfig:
    """Builds the monitor settings, including its alert channels.

    Args:
        http_client: Optional shared httpx.AsyncClient for the HTTP channels.
    """
    prefix = "monitoring"
    channel_specs = get_config(f"{prefix}.alerts.channels") or []
    if not isinstance(channel_specs, list):
        raise ConfigurationError(f"'{prefix}.alerts.channels' must be a list")

    alert_config = AlertConfig(
        enabled=_flag(f"{prefix}.alerts.enabled", get_config(f"{prefix}.alerts.enabled", True)),
        cooldown_seconds=_number(
            f"{prefix}.alerts.cooldown_seconds",
            get_config(f"{prefix}.alerts.cooldown_seconds", 300.0),
            inclusive=True,
        ),
        channels=[build_alert_channel(spec, http_client=http_client) for spec in channel_specs],
    )
    return MonitoringConfig(
        log_level=_enum(f"{prefix}.log_level", get_config(f"{prefix}.log_level", "info"), LogLevel),
        retention_days=_number(f"{prefix}.retention_days", get_config(f"{prefix}.retention_days", 7.0)),
        max_log_entries=_number(
            f"{prefix}.max_log_entries", get_config(f"{prefix}.max_log_entries", 10000), cast=int
        ),
        alert_config=alert_config,
        health_check_interval=_number(
            f"{prefix}.health_check_interval", get_config(f"{prefix}.health_check_interval", 30.0)
        ),
        metrics_interval=_number(f"{prefix}.metrics_interval", get_config(f"{prefix}.metrics_interval", 60.0)),
        metrics_history_size=_number(
            f"{prefix}.metrics_history_size", get_config(f"{prefix}.metrics_history_size", 100), cast=int
        ),
    )


# Load configuration when the module is imported
load_configuration()

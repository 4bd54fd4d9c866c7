"""Interface for presenting results to the operator.

Defines the contract for displaying call results, health snapshots,
monitoring summaries and plain messages, allowing different UI
implementations (e.g., console, tests).
"""

import abc
from typing import Any, List

from nepa_integration.domain.models.api import ApiResult
from nepa_integration.domain.models.monitoring import HealthCheck, MonitoringSummary


class UserInterface(abc.ABC):
    """Abstract Base Class for operator-facing output."""

    @abc.abstractmethod
    def display_result(self, result: ApiResult, **kwargs: Any) -> None:
        """Displays the result envelope of one call.

        Args:
            result: The executor's result.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_health(self, health_checks: List[HealthCheck]) -> None:
        """Displays the latest health snapshot of each service."""
        pass

    @abc.abstractmethod
    def display_summary(self, summary: MonitoringSummary) -> None:
        """Displays the cross-service monitoring summary."""
        pass

    @abc.abstractmethod
    def display_raw(self, text: str) -> None:
        """Writes text verbatim, without markup or wrapping (e.g. exported logs)."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

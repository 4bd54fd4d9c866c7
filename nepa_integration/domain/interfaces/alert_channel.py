"""Interface for alert notification channels.

A channel receives every alert that passed its cooldown gate. Delivery
failures are raised to the monitor, which records them as log entries.
"""

import abc

from nepa_integration.domain.events.monitor_events import AlertRaised


class AlertChannel(abc.ABC):
    """Abstract Base Class for alert delivery."""

    #: Short identifier used in logs, e.g. 'slack'.
    channel_type: str = "generic"

    @abc.abstractmethod
    async def send(self, alert: AlertRaised) -> None:
        """Delivers one alert.

        Args:
            alert: The alert to deliver.

        Raises:
            Exception: Any delivery failure; the caller logs it.
        """
        pass

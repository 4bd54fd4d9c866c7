"""Service for executing API calls with automatic retries.

Implements exponential backoff for transient errors: network failures and
non-2xx responses are retried up to the configured number of attempts,
after which the last error is surfaced wrapped in MaxRetryError.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional

from nepa_integration.domain.events.api_events import RetryScheduled
from nepa_integration.domain.models.errors import MaxRetryError, ServerError, TransportError

logger = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS = (TransportError, ServerError)


class ApiRetryService:
    """Runs an async callable with retries and exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        initial_backoff_s: float = 1.0,
        backoff_factor: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Optional[Callable[[RetryScheduled], None]] = None,
    ):
        """Initializes the ApiRetryService.

        Args:
            max_retries: Retries after the first attempt (attempts = max_retries + 1).
            initial_backoff_s: Delay in seconds before the first retry.
            backoff_factor: Multiplier applied to the delay after every retry.
            sleep: Coroutine function used to wait between attempts.
            on_retry: Optional callback receiving a RetryScheduled event.
        """
        self.max_retries = max_retries
        self.initial_backoff_s = initial_backoff_s
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self._on_retry = on_retry
        logger.debug(
            f"ApiRetryService initialized: max_retries={max_retries}, "
            f"initial_backoff={initial_backoff_s}s, factor={backoff_factor}"
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return self.initial_backoff_s * (self.backoff_factor ** attempt)

    async def execute_with_retry(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        url: str = "",
        method: str = "",
        **kwargs: Any,
    ) -> Any:
        """Executes an async function, retrying on failure.

        Args:
            func: The async function (API call) to execute.
            *args: Positional arguments for the function.
            url: Target URL, used for logging and retry events.
            method: HTTP verb, used for logging and retry events.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the first successful attempt.

        Raises:
            MaxRetryError: If every attempt failed.
        """
        last_exception: Optional[Exception] = None
        total_attempts = self.max_retries + 1

        for attempt in range(total_attempts):
            try:
                return await func(*args, **kwargs)
            except RETRYABLE_EXCEPTIONS as e:
                last_exception = e
                logger.warning(
                    f"Retryable error calling {method} {url} on attempt {attempt + 1}/{total_attempts}: "
                    f"{type(e).__name__}: {e}"
                )
            except Exception as e:
                last_exception = e
                logger.error(f"Unexpected error calling {method} {url} on attempt {attempt + 1}: {e}", exc_info=True)

            if attempt < self.max_retries:
                delay = self.backoff_for(attempt)
                if self._on_retry is not None:
                    self._on_retry(RetryScheduled(url=url, method=method, attempt_number=attempt + 1, delay_seconds=delay))
                logger.debug(f"Waiting {delay:.2f}s before retrying {method} {url}")
                await self._sleep(delay)

        logger.error(f"Max retries ({self.max_retries}) reached for {method} {url}. Last error: {last_exception}")
        raise MaxRetryError(last_exception, total_attempts)

"""
Retry logic for asset downloads.
Failures are retried with a linearly growing delay between attempts.
"""

from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import anyio

from ...constants import (
    DEFAULT_DOWNLOAD_MAX_RETRIES,
    DEFAULT_DOWNLOAD_RETRY_BASE_DELAY_SECONDS,
)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], None]


class RetryHandler:
    """Handles retry logic with linear backoff for transient failures."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_DOWNLOAD_MAX_RETRIES,
        base_delay: float = DEFAULT_DOWNLOAD_RETRY_BASE_DELAY_SECONDS,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ):
        """
        Initialize retry handler.

        Args:
            max_attempts: Total number of attempts, including the first
            base_delay: Delay in seconds after the first failure; the n-th
                failure waits ``base_delay * n``
            retry_on: Exception types that trigger another attempt
            sleep: Awaitable sleep used between attempts
        """
        self.max_attempts = max_attempts
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )

        self.base_delay = base_delay
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be non-negative, got {self.base_delay}")

        self.retry_on = retry_on
        self._sleep = sleep

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        on_retry: Optional[RetryCallback] = None,
        **kwargs: Any,
    ) -> T:
        """
        Execute a function, retrying on the configured exception types.

        Args:
            func: The async function to execute
            *args: Positional arguments to pass to the function
            on_retry: Called with (attempt, error, delay) before each wait
            **kwargs: Keyword arguments to pass to the function

        Returns:
            The result from the function

        Raises:
            The last exception if every attempt fails
        """
        attempt = 1
        while True:
            try:
                return await func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.calculate_delay(attempt)
                if on_retry is not None:
                    on_retry(attempt, e, delay)
                await self._sleep(delay)
                attempt += 1

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the linear backoff delay.

        Args:
            attempt: The attempt that just failed (1-based)

        Returns:
            Delay in seconds
        """
        return self.base_delay * attempt

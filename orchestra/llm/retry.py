"""
Retry strategy for provider API calls.

This module provides retry logic with exponential backoff for provider
overload errors. Only errors the adapter classifies as overload signals are
retried; every other error propagates immediately.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from orchestra.constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_BASE_DELAY
from orchestra.exceptions import ProviderOverloadedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunction = Callable[[float], Awaitable[Any]]


class RetryStrategy:
    """
    Strategy for retrying overloaded provider calls with exponential backoff.

    The delay before retry ``n`` (0-indexed) is ``base_delay * 2**n``, so the
    defaults give 1s then 2s across three attempts.

    Parameters
    ----------
    vendor_name : str
        Display name used in the final overload message.
    is_overloaded : Callable[[Exception], bool]
        Classifies an exception as a transient overload signal.
    max_attempts : int, default=3
        Total number of attempts, including the first.
    base_delay : float, default=1.0
        Base delay in seconds for exponential backoff.
    provider : str | None, optional
        Provider type recorded on the raised error.
    sleep : SleepFunction, optional
        Awaitable sleep; defaults to ``asyncio.sleep``.

    Examples
    --------
    >>> strategy = RetryStrategy("Anthropic", lambda e: "overloaded" in str(e))
    >>> result = await strategy.execute(lambda: client.send())
    """

    def __init__(
        self,
        vendor_name: str,
        is_overloaded: Callable[[Exception], bool],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        provider: str | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        self.vendor_name: str = vendor_name
        self.is_overloaded: Callable[[Exception], bool] = is_overloaded
        self.max_attempts: int = max(1, max_attempts)
        self.base_delay: float = base_delay
        self.provider: str | None = provider
        self._sleep: SleepFunction = sleep or asyncio.sleep

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for a retry attempt using exponential backoff.

        Parameters
        ----------
        attempt : int
            The attempt number (0-indexed).

        Returns
        -------
        float
            Delay in seconds.
        """
        return self.base_delay * (2**attempt)

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an async function with overload retries.

        Parameters
        ----------
        func : Callable[[], Awaitable[T]]
            Zero-argument factory producing the awaitable to run. A fresh
            awaitable is created for each attempt.

        Returns
        -------
        T
            Result of the first successful attempt.

        Raises
        ------
        ProviderOverloadedError
            If every attempt failed with an overload error.
        Exception
            Any non-overload error, unchanged, on the attempt it occurred.
        """
        for attempt in range(self.max_attempts):
            try:
                return await func()
            except Exception as e:
                if not self.is_overloaded(e):
                    raise

                if attempt + 1 >= self.max_attempts:
                    logger.error(
                        f"{self.vendor_name} overloaded after {self.max_attempts} attempts"
                    )
                    raise ProviderOverloadedError(
                        self.vendor_name,
                        provider=self.provider,
                        cause=e,
                    ) from e

                wait_time: float = self._calculate_delay(attempt)
                logger.warning(
                    f"{self.vendor_name} overloaded (attempt {attempt + 1}/{self.max_attempts}), "
                    f"retrying in {wait_time:.2f}s"
                )
                await self._sleep(wait_time)

        raise RuntimeError("Retry strategy exhausted without result")

"""Retry Strategy - Configurable retry logic for API calls."""

import logging
import threading
import time
from functools import wraps
from typing import Callable, TypeVar, Optional, List, Type

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryStrategy:
    """Configurable retry logic with capped exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        exponential_backoff: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None,
        max_delay: Optional[float] = None,
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize retry strategy.

        Args:
            max_retries: Maximum number of attempts
            base_delay: Base delay between retries in seconds
            exponential_backoff: Whether to use exponential backoff
            retryable_exceptions: List of exception types to retry on (None = all)
            max_delay: Upper bound for a single delay (None = unbounded)
            is_retryable: Extra predicate deciding whether a caught exception is retried
            stop_event: When set, pending retries are abandoned and the last error raised
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.exponential_backoff = exponential_backoff
        self.retryable_exceptions = retryable_exceptions or [Exception]
        self.max_delay = max_delay
        self.is_retryable = is_retryable
        self.stop_event = stop_event

    def execute(self, func: Callable[[], T], on_retry: Optional[Callable[[int, Exception], None]] = None) -> T:
        """
        Execute function with retries.

        Args:
            func: Function to execute
            on_retry: Optional callback called on each retry with (attempt, exception)

        Returns:
            Result of the function

        Raises:
            Last exception if all retries fail, or the first non-retryable one
        """
        last_exception = None

        for attempt in range(self.max_retries):
            try:
                return func()
            except tuple(self.retryable_exceptions) as e:
                if self.is_retryable is not None and not self.is_retryable(e):
                    raise
                last_exception = e

                if attempt < self.max_retries - 1:
                    delay = self._calculate_delay(attempt)
                    # Honour server-provided hints such as Retry-After
                    retry_after = getattr(e, "retry_after", None)
                    if retry_after:
                        delay = max(delay, float(retry_after))

                    if on_retry:
                        on_retry(attempt + 1, e)

                    if not self._sleep(delay):
                        break

        raise last_exception

    def _sleep(self, delay: float) -> bool:
        """Wait before the next attempt. Returns False if shutting down."""
        if self.stop_event is None:
            time.sleep(delay)
            return True
        return not self.stop_event.wait(delay)

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        if self.exponential_backoff:
            delay = self.base_delay * (2 ** attempt)
        else:
            delay = self.base_delay
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: Optional[List[Type[Exception]]] = None,
    max_delay: Optional[float] = None,
):
    """
    Decorator to add retry logic to a function.

    Usage:
        @with_retry(max_retries=3, base_delay=1.0)
        def fetch_users():
            return client.list_users(namespace)
    """
    strategy = RetryStrategy(
        max_retries=max_retries,
        base_delay=base_delay,
        exponential_backoff=exponential_backoff,
        retryable_exceptions=retryable_exceptions,
        max_delay=max_delay,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return strategy.execute(lambda: func(*args, **kwargs))
        return wrapper
    return decorator


class Backoff:
    """Bounded exponential backoff for long-lived subscriptions.

    Usage in reconnect loops::

        backoff = Backoff(initial=1.0, maximum=30.0)
        while running:
            try:
                consume()
                backoff.reset()
            except Exception:
                time.sleep(backoff.next_delay())
    """

    def __init__(self, initial: float = 1.0, maximum: float = 30.0, factor: float = 2.0):
        """
        Args:
            initial: First delay in seconds
            maximum: Delay cap in seconds
            factor: Multiplier applied after each failure
        """
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self._failures = 0

    @property
    def failures(self) -> int:
        return self._failures

    def next_delay(self) -> float:
        """Record a failure and return how long to wait before reconnecting."""
        delay = min(self.initial * (self.factor ** self._failures), self.maximum)
        self._failures += 1
        return delay

    def reset(self) -> None:
        """Record a success. The next failure starts from the initial delay."""
        self._failures = 0

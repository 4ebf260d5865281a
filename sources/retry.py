"""
Retry policy for upstream API calls.

One policy object wraps any single request instead of every call site
rolling its own loop:

    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    data = policy.call(client._get_json, "/manga/tag")

A call that raises a retryable UpstreamError is attempted again after
base_delay * 2**attempt seconds (1s, 2s with the defaults). Errors carrying
an HTTP status are judged by the `retryable` predicate; status-less ones by
their own flag. Anything else propagates immediately. Once the attempts are
used up the last error is re-raised so the caller decides how to degrade.
"""

import time
from typing import Any, Callable, List, Optional


def is_retryable_status(status: Optional[int]) -> bool:
    """5xx and 429 are transient; a missing status means a transport failure."""
    if status is None:
        return True
    return status == 429 or 500 <= status <= 599


class UpstreamError(Exception):
    """Raised when an upstream request fails."""
    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        self.status = status
        self.retryable = retryable
        super().__init__(message)

    @classmethod
    def from_status(cls, status: int, endpoint: str = "") -> "UpstreamError":
        where = f" for {endpoint}" if endpoint else ""
        return cls(f"HTTP {status}{where}", status=status, retryable=is_retryable_status(status))


class RetryPolicy:
    """
    Bounded exponential backoff around a single request.

    Args:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry, doubled each time
        retryable: Predicate on the HTTP status (None = transport error)
        sleep: Injected for tests
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retryable: Callable[[Optional[int]], bool] = is_retryable_status,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = max(0.0, float(base_delay))
        self._retryable = retryable
        self._sleep = sleep

    def delays(self) -> List[float]:
        """The sleeps this policy performs when every attempt fails."""
        return [self.base_delay * (2 ** attempt) for attempt in range(self.max_attempts - 1)]

    def should_retry(self, error: UpstreamError) -> bool:
        """HTTP failures go by the predicate; status-less ones by their own flag."""
        if error.status is not None:
            return self._retryable(error.status)
        return error.retryable

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Invoke fn, retrying retryable UpstreamErrors. Re-raises the last one."""
        for attempt in range(self.max_attempts):
            try:
                return fn(*args, **kwargs)
            except UpstreamError as e:
                if not self.should_retry(e) or attempt >= self.max_attempts - 1:
                    raise
                self._sleep(self.base_delay * (2 ** attempt))
        # Unreachable: the loop either returns or raises
        raise UpstreamError("Retry policy exhausted")

    def __repr__(self) -> str:
        return f"<RetryPolicy attempts={self.max_attempts} base_delay={self.base_delay}>"

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")

ShouldRetryFn = Callable[[BaseException], "str | None"]
SleepFn = Callable[[float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often one HTTP hop may be attempted.

    attempts includes the first try, so attempts=2 allows exactly one retry.
    Every pause lasts pause_seconds; there is no growth because the bound is tiny.
    """

    attempts: int = 2
    pause_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.pause_seconds < 0:
            raise ValueError("pause_seconds must be >= 0")


@dataclass(frozen=True)
class RetryNotice:
    operation: str
    attempt: int
    attempts: int
    pause_seconds: float
    reason: str
    context_url: str | None


OnRetryFn = Callable[[RetryNotice], None]


def retry_call(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    should_retry: ShouldRetryFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
    context_url: str | None = None,
) -> T:
    """
    Run fn(); when it raises and should_retry(exc) returns a reason, try again.

    Non-retryable failures and the failure of the final attempt propagate as-is.
    """
    sleeper = sleep_fn or time.sleep
    attempt = 1

    while True:
        try:
            return fn()
        except Exception as exc:
            reason = should_retry(exc)
            if reason is None or attempt >= policy.attempts:
                raise

            if on_retry is not None:
                on_retry(
                    RetryNotice(
                        operation=operation or "operation",
                        attempt=attempt + 1,
                        attempts=policy.attempts,
                        pause_seconds=policy.pause_seconds,
                        reason=reason,
                        context_url=context_url,
                    )
                )
            if policy.pause_seconds > 0:
                sleeper(policy.pause_seconds)
            attempt += 1

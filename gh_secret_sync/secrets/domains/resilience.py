"""Retry and rate-limit decorators over scope adapters.

Both decorators expose the same operations as ScopeAdapter and forward each
call to the wrapped instance, so they stack freely:

    RateLimitedAdapter(RetryingAdapter(ScopeAdapter(client, scope)), governor)
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .errors import RemoteError
from .models import RateLimitStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESET_SAFETY_MARGIN = 1.0


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff settings.

    Attributes:
        max_retries: Maximum number of attempts per call; 0 means a single
            attempt without retries
        initial_interval: Delay before the first retry, in seconds
        multiplier: Growth factor applied to the delay after each retry
        randomization_factor: Jitter; each delay is drawn from
            [delay * (1 - factor), delay * (1 + factor)]
        max_interval: Cap on a single delay, in seconds
        max_elapsed: Give up once this much wall-clock time has passed
    """
    max_retries: int = 3
    initial_interval: float = 0.5
    multiplier: float = 1.5
    randomization_factor: float = 0.5
    max_interval: float = 60.0
    max_elapsed: float = 900.0

    @property
    def max_attempts(self) -> int:
        return max(1, self.max_retries)

    def delay(self, retry_number: int, rng: Callable[[], float] = random.random) -> float:
        """Jittered delay before retry ``retry_number`` (0-based)."""
        base = min(self.initial_interval * (self.multiplier ** retry_number), self.max_interval)
        spread = base * self.randomization_factor
        return base - spread + (2 * spread * rng())


def is_retryable(error: Exception) -> bool:
    """Only transient remote failures are worth another attempt."""
    return isinstance(error, RemoteError) and error.transient


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    **kwargs: Any,
) -> T:
    """
    Execute a function with retry logic and exponential backoff.

    Stops at the first success, after ``policy.max_attempts`` attempts, or
    when the next delay would run past ``policy.max_elapsed``.

    Returns:
        The return value of the function

    Raises:
        The last exception unchanged once attempts are exhausted, or
        immediately for non-transient errors
    """
    name = getattr(func, "__name__", "call")
    start = clock()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except RemoteError as e:
            if not is_retryable(e) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay(attempt - 1)
            if clock() - start + delay > policy.max_elapsed:
                logger.warning(f"{name}: giving up after {attempt} attempts, retry window exhausted")
                raise
            logger.warning(
                f"{name} failed, retrying in {delay:.1f}s (attempt {attempt}/{policy.max_attempts}): {e}"
            )
            sleep(delay)


def with_retry(
    func: Callable[..., T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[..., T]:
    """Bind ``func`` to a RetryPolicy, for calls that are not adapter operations."""
    def retried(*args: Any, **kwargs: Any) -> T:
        return call_with_retry(func, *args, policy=policy, sleep=sleep, **kwargs)
    retried.__name__ = getattr(func, "__name__", "call")
    return retried


class RetryingAdapter:
    """Scope adapter decorator that retries every call under a RetryPolicy."""

    def __init__(self, inner, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep):
        self._inner = inner
        self._policy = policy
        self._sleep = sleep

    @property
    def scope(self):
        return self._inner.scope

    def _retry(self, func, *args):
        return call_with_retry(func, *args, policy=self._policy, sleep=self._sleep)

    def resolve(self, repository):
        return self._retry(self._inner.resolve, repository)

    def list_page(self, ref, page, per_page=100):
        return self._retry(self._inner.list_page, ref, page, per_page)

    def get_public_key(self, ref):
        return self._retry(self._inner.get_public_key, ref)

    def create_or_update_secret(self, ref, payload):
        return self._retry(self._inner.create_or_update_secret, ref, payload)

    def create_or_update_variable(self, ref, name, value):
        return self._retry(self._inner.create_or_update_variable, ref, name, value)

    def delete_entry(self, ref, name):
        return self._retry(self._inner.delete_entry, ref, name)


class RateLimitGovernor:
    """
    Blocks the calling thread while the REST quota is nearly exhausted.

    The quota is fetched before every guarded call, never cached. When
    remaining/limit falls to ``threshold`` or below, the governor sleeps
    until the window resets plus a one-second margin, then checks again.
    There is no timeout: if the quota never resets, the wait never ends.
    """

    def __init__(
        self,
        quota_source: Callable[[], RateLimitStatus],
        threshold: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._quota_source = quota_source
        self.threshold = threshold
        self._sleep = sleep
        self._clock = clock

    def wait_for_quota(self) -> None:
        while True:
            try:
                status = self._quota_source()
            except RemoteError as e:
                logger.warning(f"Error fetching rate limit status, continuing: {e}")
                return
            if status.limit <= 0 or status.ratio > self.threshold:
                return
            wait = max(0.0, status.reset - self._clock()) + RESET_SAFETY_MARGIN
            logger.warning(
                f"GitHub API rate limit close to being exceeded ({status.remaining}/{status.limit} remaining), "
                f"waiting {wait:.0f}s for reset"
            )
            self._sleep(wait)

    def guard(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Wait for quota, then call ``func``."""
        self.wait_for_quota()
        return func(*args, **kwargs)


class RateLimitedAdapter:
    """Scope adapter decorator that checks the quota before every call."""

    def __init__(self, inner, governor: RateLimitGovernor):
        self._inner = inner
        self._governor = governor

    @property
    def scope(self):
        return self._inner.scope

    def resolve(self, repository):
        return self._governor.guard(self._inner.resolve, repository)

    def list_page(self, ref, page, per_page=100):
        return self._governor.guard(self._inner.list_page, ref, page, per_page)

    def get_public_key(self, ref):
        return self._governor.guard(self._inner.get_public_key, ref)

    def create_or_update_secret(self, ref, payload):
        return self._governor.guard(self._inner.create_or_update_secret, ref, payload)

    def create_or_update_variable(self, ref, name, value):
        return self._governor.guard(self._inner.create_or_update_variable, ref, name, value)

    def delete_entry(self, ref, name):
        return self._governor.guard(self._inner.delete_entry, ref, name)


def build_adapter(
    base,
    policy: Optional[RetryPolicy] = None,
    governor: Optional[RateLimitGovernor] = None,
):
    """
    Stack the decorators over a base adapter: governor outside, retry inside.

    Either layer is omitted when not configured.
    """
    adapter = base
    if policy is not None:
        adapter = RetryingAdapter(adapter, policy)
    if governor is not None:
        adapter = RateLimitedAdapter(adapter, governor)
    return adapter

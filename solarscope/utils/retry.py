"""
Caller-level retry for analysis requests.

The core never retries on its own: a failed upstream call comes back as an
ApiErrorRecord whose action says whether trying again makes sense. This
module repeats a call with exponential backoff while that action is RETRY.

Usage:
    from solarscope.utils.retry import retry_with_backoff, RetryConfig

    @retry_with_backoff(max_retries=2)
    def run():
        return service.analyze(request)

    outcome = retry_with_backoff(service.analyze, config=RetryConfig(base_delay=2.0))(request)
"""

import functools
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Tuple, TypeVar

from ..core.errors import ApiErrorRecord, ErrorAction, ErrorCode, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")
RetryCallback = Callable[[ApiErrorRecord, int], None]


@dataclass(frozen=True)
class RetryConfig:
    """Backoff schedule and the codes it applies to."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    # Up to +25% random delay per attempt
    jitter: bool = True
    # RETRY-action codes that are still not worth repeating
    excluded_codes: Tuple[ErrorCode, ...] = (ErrorCode.INVALID_ADDRESS,)


DEFAULT_RETRY_CONFIG = RetryConfig()


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait before retry number attempt + 1 (attempt is 0-based)."""
    delay = min(config.base_delay * config.exponential_base ** attempt, config.max_delay)
    if config.jitter:
        delay *= 1 + random.uniform(0, 0.25)
    return delay


def _as_record(outcome: Any) -> Optional[ApiErrorRecord]:
    if isinstance(outcome, UpstreamError):
        return outcome.to_record()
    if isinstance(outcome, ApiErrorRecord):
        return outcome
    return None


def is_retryable(outcome: Any, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> bool:
    """True for an ApiErrorRecord or UpstreamError whose action is RETRY."""
    record = _as_record(outcome)
    return (
        record is not None
        and record.action is ErrorAction.RETRY
        and record.code not in config.excluded_codes
    )


def retry_with_backoff(
    func: Optional[Callable[..., T]] = None,
    *,
    config: Optional[RetryConfig] = None,
    max_retries: Optional[int] = None,
    on_retry: Optional[RetryCallback] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[..., T]:
    """
    Wrap a call so retryable failures are repeated with backoff.

    Works bare (`retry_with_backoff(fn)`) or as a decorator factory
    (`@retry_with_backoff(max_retries=2)`). A retryable failure is either a
    returned ApiErrorRecord or a raised UpstreamError. When attempts run out
    the last record is returned, or the last error re-raised.

    Args:
        func: Callable to wrap
        config: Backoff schedule (DEFAULT_RETRY_CONFIG when omitted)
        max_retries: Shortcut overriding config.max_retries
        on_retry: Called with (error record, attempt) before each wait
        sleep: Wait function; tests pass a mock
    """
    config = config or DEFAULT_RETRY_CONFIG
    if max_retries is not None:
        config = replace(config, max_retries=max_retries)

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        label = getattr(fn, "__name__", repr(fn))

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    outcome = fn(*args, **kwargs)
                    raised = None
                except UpstreamError as exc:
                    outcome, raised = None, exc

                failure = raised if raised is not None else outcome
                if not is_retryable(failure, config):
                    if raised is not None:
                        raise raised
                    return outcome

                if attempt >= config.max_retries:
                    logger.error("Giving up on %s after %d retries", label, config.max_retries)
                    if raised is not None:
                        raise raised
                    return outcome

                record = _as_record(failure)
                delay = calculate_delay(attempt, config)
                logger.warning(
                    "%s failed with %s, retry %d/%d in %.1fs",
                    label, record.code.value, attempt + 1, config.max_retries, delay,
                    extra={"error_code": record.code.value},
                )
                if on_retry:
                    on_retry(record, attempt)
                sleep(delay)
                attempt += 1

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator

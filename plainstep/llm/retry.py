import logging
import time
from typing import Callable, Optional, TypeVar

from plainstep.errors import ExternalServiceError

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429}


def is_retryable_status(status: Optional[int]) -> bool:
    if status is None:
        return True  # network failure, no response at all
    return status in RETRYABLE_STATUS or 500 <= status < 600


def call_with_retry(fn: Callable[[], T], description: str, max_attempts: int = 3,
                    base_delay: float = 1.0, log=None, sleep=time.sleep) -> Optional[T]:
    """
    Runs `fn` with linear backoff (base_delay * attempt) between tries.
    Only retryable ExternalServiceErrors are retried. Returns None once the
    attempts are used up or on a non-retryable error, so callers can treat
    it as "no answer".
    """
    log = log or logger
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except ExternalServiceError as e:
            if not e.retryable:
                log.warning(f"{description} failed (not retryable): {e}")
                return None
            if attempt == max_attempts:
                log.warning(f"{description} failed after {attempt} attempts: {e}")
                return None
            delay = base_delay * attempt
            kind = "rate limited" if e.status == 429 else "failed"
            log.warning(f"{description} {kind} (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e}")
            sleep(delay)
    return None


def call_ai(fn: Callable[[], T], description: str, log=None, **kwargs) -> Optional[T]:
    """call_with_retry for AI services, where any other client error also means no answer."""
    log = log or logger
    try:
        return call_with_retry(fn, description, log=log, **kwargs)
    except Exception as e:
        log.warning(f"{description} failed unexpectedly ({e.__class__.__name__}): {e}")
        return None

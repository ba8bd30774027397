"""
sqlpath/services/retry.py
Generic async retry with exponential backoff

Transport-agnostic: the caller supplies the operation and decides which
errors are worth retrying. Used by the content service for quota errors.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY = 2.0

QUOTA_MARKERS = ("429", "quota", "RESOURCE_EXHAUSTED")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of with_retry: either a value or the last error."""
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    def unwrap(self) -> T:
        """Return the value or re-raise the last error."""
        if self.ok:
            return self.value
        raise self.error


def is_quota_error(error: BaseException) -> bool:
    """
    True for rate-limit / quota failures of the generative service.

    Recognises an HTTP 429 status or code attribute, google-api-core's
    ResourceExhausted, and the usual markers in the message.
    """
    for attr in ("status", "code", "status_code"):
        value = getattr(error, attr, None)
        if value == 429 or (not callable(value) and str(value) == "429"):
            return True

    if type(error).__name__ == "ResourceExhausted":
        return True

    message = str(error)
    return any(marker in message for marker in QUOTA_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    is_retryable: Callable[[BaseException], bool] = is_quota_error,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult[T]:
    """
    Run `operation` up to `max_attempts` times.

    After the n-th failed attempt (0-based) with a retryable error, waits
    base_delay * 2**n seconds. Non-retryable errors end the loop at once.
    Never raises the operation's exception; inspect the returned result.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[BaseException] = None

    for attempt in range(max_attempts):
        try:
            value = await operation()
            return RetryResult(ok=True, value=value, attempts=attempt + 1)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            if not is_retryable(e):
                logger.warning(f"Non-retryable error on attempt {attempt + 1}: {type(e).__name__}: {e}")
                return RetryResult(ok=False, error=e, attempts=attempt + 1)

            if attempt + 1 >= max_attempts:
                break

            wait_time = base_delay * (2 ** attempt)
            logger.warning(
                f"Quota exceeded. Retrying in {wait_time:.1f}s... "
                f"(Attempt {attempt + 1}/{max_attempts})"
            )
            await sleep(wait_time)

    logger.error(f"Giving up after {max_attempts} attempts: {last_error}")
    return RetryResult(ok=False, error=last_error, attempts=max_attempts)

"""Retrying translation requests that fail for transient reasons."""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

import openai

from common.config import settings
from common.gpt_utils import GPTJSONParsingError

logger = logging.getLogger(__name__)

# HTTP status codes worth another attempt
TRANSIENT_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}


def calculate_exponential_backoff_delay(
    initial_delay: float,
    attempt: int,
    exponential_base: int,
    max_delay: float,
) -> float:
    """
    Delay before retry number ``attempt + 1``.

    The base delay grows as ``initial_delay * exponential_base ** attempt``,
    is capped at ``max_delay``, and then gets up to 50% random jitter.
    """
    delay = min(initial_delay * (exponential_base**attempt), max_delay)
    return delay + random.uniform(0, delay * 0.5)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a failed translation request is retried."""

    max_retries: int = 3
    initial_delay: float = 1.0
    exponential_base: int = 2
    max_delay: float = 60.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.openai_max_retries,
            initial_delay=settings.openai_retry_initial_delay,
            exponential_base=settings.openai_retry_exponential_base,
            max_delay=settings.openai_retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        return calculate_exponential_backoff_delay(
            self.initial_delay, attempt, self.exponential_base, self.max_delay
        )


def is_transient_error(error: BaseException) -> bool:
    """
    Whether a failed translation request may succeed if sent again.

    Connection problems, timeouts, rate limits, 5xx replies and unparsable
    model output are transient. Anything else (bad request, authentication,
    empty replies) is permanent. Wrapped errors are judged by their cause.

    Args:
        error: Exception raised by the request

    Returns:
        True if the request should be retried
    """
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return True

    if isinstance(error, openai.APIStatusError):
        return error.status_code in TRANSIENT_STATUS_CODES

    # The model usually returns valid JSON on the next attempt
    if isinstance(error, GPTJSONParsingError):
        return True

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    if error.__cause__ is not None:
        return is_transient_error(error.__cause__)

    return False


def retry_with_exponential_backoff(
    policy: Optional[RetryPolicy] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that retries an async call on transient errors.

    Permanent errors propagate on the first attempt; transient ones are
    retried up to ``policy.max_retries`` times with exponential backoff.

    Example:
        @retry_with_exponential_backoff(RetryPolicy(max_retries=3, initial_delay=1))
        async def translate():
            return await api_call()
    """
    policy = policy or RetryPolicy()

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_transient_error(e):
                        logger.error(
                            f"❌ {func.__name__} failed permanently: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt >= policy.max_retries:
                        logger.error(
                            f"❌ {func.__name__} still failing after "
                            f"{policy.max_retries} retries: {e}"
                        )
                        raise

                    delay = policy.delay_for(attempt)
                    attempt += 1
                    logger.warning(
                        f"⚠️  {func.__name__} hit a transient error "
                        f"({type(e).__name__}: {e}), retry {attempt}/{policy.max_retries} "
                        f"in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator

"""Retry utilities for provider calls."""

import asyncio
import random
import sys

MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 30.0
JITTER_FACTOR = 0.5

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def _is_retryable(exc: Exception) -> bool:
    """Timeouts, dropped connections and 429/5xx responses are transient."""
    import anthropic
    import openai

    if isinstance(
        exc,
        (
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
            openai.APITimeoutError,
            openai.APIConnectionError,
        ),
    ):
        return True

    if isinstance(exc, (anthropic.APIStatusError, openai.APIStatusError)):
        return exc.status_code in RETRYABLE_STATUS_CODES

    return False


def backoff_delay(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """Exponential delay for the given zero-based attempt, capped, plus jitter."""
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    return delay + random.uniform(0, JITTER_FACTOR * delay)


async def async_retry_with_backoff(
    coro_func,
    *args,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs,
):
    """Await ``coro_func(*args, **kwargs)``, retrying transient provider errors.

    Only the call that opens a request is retried. Once a streamed response
    has started yielding deltas, a failure surfaces to the caller as-is.
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_func(*args, **kwargs)
        except Exception as exc:
            if not _is_retryable(exc) or attempt == max_retries:
                raise

            total_delay = backoff_delay(attempt, base_delay)
            print(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} failed: {exc}",
                file=sys.stderr,
            )
            print(f"[RETRY] Retrying in {total_delay:.1f}s...", file=sys.stderr)
            await asyncio.sleep(total_delay)

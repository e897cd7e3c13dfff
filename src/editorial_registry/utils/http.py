import logging
from collections.abc import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    after_log,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import TransientRemoteError

# Standard logger for tenacity callbacks
std_log = logging.getLogger(__name__)

# Status codes worth another attempt: request timeout, rate limit, server errors
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

SleepFn = Callable[[float], Awaitable[None]]


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def should_retry(exception: BaseException) -> bool:
    """Retry transport failures and retryable statuses reported by the authors client."""
    if not isinstance(exception, TransientRemoteError):
        return False
    return exception.status_code is None or is_retryable_status(exception.status_code)


def backoff_wait(base_seconds: float) -> wait_exponential:
    """
    Exponential backoff where the wait after failed attempt ``n`` is ``2**n * base``.

    With a one second base this sleeps 2s after the first failure and 4s after
    the second.
    """
    # tenacity computes multiplier * 2 ** (attempt - 1)
    return wait_exponential(multiplier=2 * base_seconds, exp_base=2, min=0)


def build_retrying(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: SleepFn | None = None,
) -> AsyncRetrying:
    """
    Build the retry controller shared by every outbound call.

    Args:
        max_attempts: Total attempts including the first one
        base_delay: Backoff base unit in seconds
        sleep: Optional async sleep replacement (tests use it to record delays)

    Returns:
        A fresh AsyncRetrying; nothing is shared between calls.
    """
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=backoff_wait(base_delay),
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep_log(std_log, logging.WARNING),
        after=after_log(std_log, logging.INFO),
        reraise=True,
        **kwargs,
    )


def get_client(
    base_url: str,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Create an httpx AsyncClient with sensible defaults.

    Args:
        base_url: Root URL every request path is joined to
        timeout: Per-request timeout in seconds (default: 5)
        transport: Optional transport override (mock or ASGI transports in tests)

    Returns:
        Configured httpx.AsyncClient
    """
    headers = {
        "User-Agent": "editorial_registry/1.0",
        "Content-Type": "application/json",
    }

    limits = httpx.Limits(
        max_keepalive_connections=10,
        max_connections=20,
        keepalive_expiry=30.0,
    )

    return httpx.AsyncClient(
        base_url=base_url,
        http2=True,
        headers=headers,
        timeout=timeout,
        limits=limits,
        follow_redirects=True,
        transport=transport,
    )

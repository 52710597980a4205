"""
Retry combinator for outbound HTTP calls.

The partner and payment clients wrap each request in ``retry_async``. Only
transient failures are retried (timeouts, connection errors, 5xx); a 4xx is
the upstream telling us the request itself is wrong, so it propagates at once.
"""
import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from app.core.exceptions import ExternalServiceException, ServiceTimeoutError
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_transient_http_error(exc: BaseException) -> bool:
    """True for errors worth another attempt"""
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, ServiceTimeoutError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    if isinstance(exc, ExternalServiceException):
        status = exc.upstream_status
        return status is not None and status >= 500
    return False


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 2,
    base_delay: float = 0.3,
    is_transient: Callable[[BaseException], bool] = is_transient_http_error,
    operation: str = "request",
) -> T:
    """
    Await ``func()`` up to ``max_retries + 1`` times.

    Backoff between attempts is ``base_delay * 2 ** attempt``. The last error
    is re-raised unchanged once the budget is spent or when ``is_transient``
    rejects it.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= max_retries or not is_transient(exc):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Transient failure in {operation}, retrying",
                extra_data={
                    "operation": operation,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "backoff_seconds": delay,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            await asyncio.sleep(delay)
            attempt += 1


def retry_kwargs(settings: Any) -> dict[str, Any]:
    """Retry budget from settings, shared by the partner and payment clients"""
    return {
        "max_retries": settings.HTTP_MAX_RETRIES,
        "base_delay": settings.HTTP_RETRY_BASE_DELAY_SECONDS,
    }

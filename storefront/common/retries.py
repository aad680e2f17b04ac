import asyncio
import functools
import random
from typing import Callable, Optional
import httpx
from storefront.common.custom_exceptions import ProviderError
from storefront.common.logging_setup import get_logger

logger = get_logger("laem.common.retries")

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout,
                        httpx.PoolTimeout, httpx.RemoteProtocolError, httpx.NetworkError)
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.5
MAX_BACKOFF = 8.0


def is_retryable_http_exception(exc: BaseException) -> bool:
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else None
        # provider side failure or throttling -> retry
        return bool(status_code) and (status_code >= 500 or status_code == 429)
    return False


async def _sleep_with_jitter(delay: float, jitter: float) -> None:
    jitter_val = random.uniform(-jitter * delay, jitter * delay)
    await asyncio.sleep(max(0.0, delay + jitter_val))


def retry_http(
    provider: str,
    *,
    attempts: int = DEFAULT_RETRIES,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    jitter: float = 0.15,
    if_retryable: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Retry an outbound provider call.
    Transient network errors, 429 and 5xx are retried with exponential backoff,
    any other 4xx is surfaced at once. The final failure is raised as ProviderError.
    """
    if if_retryable is None:
        if_retryable = is_retryable_http_exception

    def deco(fn: Callable):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except asyncio.CancelledError:
                    raise
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    status_code = None
                    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
                        status_code = exc.response.status_code

                    if not if_retryable(exc) or attempt == attempts:
                        logger.warning(
                            "provider.call_failed",
                            extra={"provider": provider, "attempt": attempt, "provider_status": status_code,
                                   "error": str(exc)},
                        )
                        raise ProviderError(provider, str(exc), status_code=status_code) from exc

                    delay = min(backoff_base * (2 ** (attempt - 1)), MAX_BACKOFF)
                    logger.debug("%s call attempt %d failed; retrying in %.2fs: %s", provider, attempt, delay, exc)
                    await _sleep_with_jitter(delay, jitter)
        return wrapper
    return deco

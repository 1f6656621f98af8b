# =============================================================================
# POLYMARKET LADDER TRADER - HTTP RETRY
# =============================================================================
#
# GET with bounded exponential backoff and jitter.
#
# POLICY:
# - delay(attempt) = min(initial * 2**attempt * (0.5 + random * 0.5), max)
# - 429: wait Retry-After seconds if present, else delay(attempt)
# - 5xx: wait delay(attempt)
# - network error (connection, timeout): wait delay(attempt)
# - any other status: returned immediately, the caller decides
# - after max_retries the last response is returned; if the last attempt
#   failed at the network level, RuntimeError is raised
#
# =============================================================================

import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds
MAX_BACKOFF = 30.0  # seconds
DEFAULT_TIMEOUT = 15  # seconds
USER_AGENT = "PolymarketLadderTrader/1.0"


def backoff_delay(
    attempt: int,
    initial: float = INITIAL_BACKOFF,
    maximum: float = MAX_BACKOFF,
    rand: Callable[[], float] = random.random,
) -> float:
    """Jittered exponential delay for a zero-based attempt."""
    delay = initial * (2 ** attempt) * (0.5 + rand() * 0.5)
    return min(delay, maximum)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def retry_after_seconds(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(int(value))
    except (TypeError, ValueError):
        return None


def get_with_retry(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = MAX_RETRIES,
    initial_backoff: float = INITIAL_BACKOFF,
    max_backoff: float = MAX_BACKOFF,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    GET url, retrying rate limits, server errors and network failures.

    Raises:
        RuntimeError: If every attempt failed at the network level
    """
    http = session or requests
    request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    last_error = None
    for attempt in range(max_retries + 1):
        try:
            response = http.get(url, params=params, headers=request_headers, timeout=timeout)
        except requests.exceptions.RequestException as e:
            last_error = e
            if attempt < max_retries:
                delay = backoff_delay(attempt, initial_backoff, max_backoff)
                logger.warning(
                    f"Network error | attempt={attempt + 1}/{max_retries + 1} | "
                    f"retry_in={delay:.1f}s | error={e}"
                )
                sleep(delay)
            continue

        if not is_retryable_status(response.status_code) or attempt >= max_retries:
            return response

        delay = backoff_delay(attempt, initial_backoff, max_backoff)
        if response.status_code == 429:
            hinted = retry_after_seconds(response)
            if hinted is not None:
                delay = hinted
            logger.warning(
                f"Rate limited (429) | attempt={attempt + 1}/{max_retries + 1} | "
                f"retry_in={delay:.1f}s"
            )
        else:
            logger.warning(
                f"HTTP {response.status_code} | attempt={attempt + 1}/{max_retries + 1} | "
                f"retry_in={delay:.1f}s"
            )
        sleep(delay)

    raise RuntimeError(f"Request failed after {max_retries + 1} attempts: {last_error}")


def get_json(url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
    """
    get_with_retry + status check + JSON decode.

    Raises:
        RuntimeError: On exhausted retries or a non-2xx final status
    """
    response = get_with_retry(url, params=params, **kwargs)
    if response.status_code >= 400:
        raise RuntimeError(f"HTTP {response.status_code} for {url}")
    try:
        return response.json()
    except ValueError as e:
        raise RuntimeError(f"Invalid JSON from {url}: {e}")

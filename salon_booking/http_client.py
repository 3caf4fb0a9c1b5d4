"""HTTP session for the booking backend, with retry and connection pooling.

Pattern: requests.Session with tenacity retry strategy and connection pooling.

- Reads (GET) retry on connection errors, timeouts and 5xx responses
- Writes (POST) retry only when the connection could not be established,
  so an appointment request is never sent twice
- 4xx responses are never retried; callers classify them
"""
import logging

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.util.retry import Retry

from salon_booking import config

logger = logging.getLogger(__name__)


def is_transient_read_error(exc: BaseException) -> bool:
    """Errors worth retrying for idempotent reads."""
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(exc, requests.exceptions.HTTPError):
        response = exc.response
        return response is None or response.status_code >= 500
    return False


def is_transient_write_error(exc: BaseException) -> bool:
    """Errors where the request certainly never reached the backend."""
    return isinstance(exc, requests.exceptions.ConnectTimeout) or (
        isinstance(exc, requests.exceptions.ConnectionError)
        and not isinstance(exc, requests.exceptions.Timeout)
    )


def create_http_session(
    max_retries: int = config.BACKEND_MAX_RETRIES,
    timeout: int = config.BACKEND_TIMEOUT_SECONDS,
    wait_min: float = 1,
    wait_max: float = 8
) -> requests.Session:
    """
    Create HTTP session with retry and connection pooling.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        timeout: Request timeout in seconds (default: 15)
        wait_min: Minimum backoff between attempts in seconds
        wait_max: Maximum backoff between attempts in seconds

    Returns:
        Configured requests.Session whose get/post raise for HTTP errors
    """
    session = requests.Session()

    # urllib3 retries only throttling and gateway errors on reads
    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=1.0,
        status_forcelist=[429, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(
        max_retries=retry_strategy,
        pool_connections=10,
        pool_maxsize=10,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    def with_retry(send, should_retry):
        @retry(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(multiplier=1, min=wait_min, max=wait_max),
            retry=retry_if_exception(should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )
        def send_with_retry(*args, **kwargs):
            kwargs.setdefault("timeout", timeout)
            response = send(*args, **kwargs)
            response.raise_for_status()
            return response

        return send_with_retry

    session.get = with_retry(session.get, is_transient_read_error)
    session.post = with_retry(session.post, is_transient_write_error)

    return session

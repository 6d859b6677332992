# src/fwfetch/utils.py
import importlib.metadata
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry  # type: ignore

from fwfetch.constants import (
    APP_NAME,
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CONNECT_RETRIES,
    ERROR_BODY_MAX_CHARS,
    GITHUB_API_TIMEOUT,
    GITHUB_API_VERSION,
    RETRY_STATUS_FORCELIST,
)
from fwfetch.exceptions import RateLimitError, TransportError
from fwfetch.log_utils import logger

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `fwfetch/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def create_http_session(
    connect_retries: int = DEFAULT_CONNECT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> requests.Session:
    """
    Build a requests Session with bounded urllib3 retries mounted for http and https.

    Retries cover connection, read and retryable status errors (408, 429, 5xx) for GET and HEAD.
    `raise_on_status` is disabled so the final response is returned and callers decide how to
    surface its status.

    Parameters:
        connect_retries (int): Maximum retry count for each retry category.
        backoff_factor (float): urllib3 exponential backoff factor.

    Returns:
        requests.Session: A session with the retry adapter mounted and the fwfetch User-Agent set.
    """
    retry_strategy: Retry = Retry(
        total=connect_retries,
        connect=connect_retries,
        read=connect_retries,
        status=connect_retries,
        backoff_factor=backoff_factor,
        status_forcelist=list(RETRY_STATUS_FORCELIST),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = get_user_agent()
    return session


def extract_error_message(response: Any) -> str:
    """
    Build a short user-facing description of a failed HTTP response.

    JSON bodies contribute their `message` (and `documentation_url` when present). Text bodies
    are checked for GitHub's rate-limit wording and otherwise truncated.

    Returns:
        str: A message of the form "HTTP <status>: <detail>".
    """
    status = getattr(response, "status_code", "unknown")
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("message"):
        message = body["message"]
        doc_url = body.get("documentation_url")
        if doc_url:
            return f"HTTP {status}: {message}. See {doc_url}"
        return f"HTTP {status}: {message}"

    text = getattr(response, "text", "") or ""
    if not isinstance(text, str):
        return f"HTTP {status}"
    if "API rate limit exceeded" in text:
        return (
            f"HTTP {status}: API rate limit exceeded. "
            "Consider setting the GITHUB_TOKEN environment variable."
        )
    if text:
        return f"HTTP {status}: {text[:ERROR_BODY_MAX_CHARS]}"
    return f"HTTP {status}"


def _rate_limit_reset(response: Any) -> Optional[int]:
    headers = getattr(response, "headers", None) or {}
    if str(headers.get("X-RateLimit-Remaining", "")) != "0":
        return None
    try:
        return int(headers.get("X-RateLimit-Reset"))
    except (TypeError, ValueError):
        return 0


def make_github_api_request(
    session: requests.Session,
    url: str,
    github_token: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    _is_retry: bool = False,
) -> requests.Response:
    """
    Perform a GitHub API GET request with optional token authentication.

    A 401 while authenticated is retried once without the token. A 403/429 with an exhausted
    rate limit raises RateLimitError carrying the reset time. Every other failure, including
    timeouts and connection errors, raises TransportError.

    Parameters:
        session (requests.Session): Session used for the request.
        url (str): GitHub API URL to request.
        github_token (Optional[str]): Token to send as `Authorization: token ...`; whitespace is ignored.
        params (Optional[Dict[str, Any]]): Query parameters to include in the request.
        timeout (Optional[float]): Request timeout in seconds; defaults to GITHUB_API_TIMEOUT.

    Returns:
        requests.Response: The successful (2xx) response.

    Raises:
        RateLimitError: When GitHub reports the rate limit as exhausted.
        TransportError: For network errors and all other non-success responses.
    """
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": get_user_agent(),
    }

    token = (github_token or "").strip()
    if token:
        headers["Authorization"] = f"token {token}"
        logger.debug("Using GitHub token for API authentication")
    else:
        logger.debug("No GitHub token available - using unauthenticated API requests")

    actual_timeout = timeout or GITHUB_API_TIMEOUT
    logger.debug(f"Making GitHub API request: {url}")
    try:
        response = session.get(
            url, headers=headers, params=params, timeout=actual_timeout
        )
    except requests.RequestException as e:
        raise TransportError(
            f"HTTP request failed for {url}", url=url, details=str(e)
        ) from e

    status = response.status_code
    if 200 <= status < 300:
        return response

    if status == 401 and token and not _is_retry:
        logger.warning(
            f"GitHub token authentication failed for {url}. Retrying without authentication."
        )
        return make_github_api_request(
            session, url, None, params=params, timeout=timeout, _is_retry=True
        )

    if status in (403, 429):
        reset_time = _rate_limit_reset(response)
        if reset_time is not None:
            reset_str = (
                datetime.fromtimestamp(reset_time, timezone.utc).strftime(
                    "%Y-%m-%d %H:%M:%S UTC"
                )
                if reset_time
                else "unknown"
            )
            raise RateLimitError(
                f"GitHub API rate limit exceeded. Resets at {reset_str}. "
                "Set GITHUB_TOKEN for higher rate limits.",
                reset_time=reset_time or None,
                url=url,
                status_code=status,
            )

    raise TransportError(
        f"Request to {url} failed. {extract_error_message(response)}",
        url=url,
        status_code=status,
    )

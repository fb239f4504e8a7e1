"""
HTTP error handling utilities.

Maps control-plane HTTP failures to user-friendly error messages and
determines which errors are retryable.
"""

from typing import Any

import httpx

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def is_retryable_http_error(exception: Any) -> bool:
    """Determine if an HTTP error is retryable.

    Connection failures, timeouts, rate limiting and 5xx gateway errors
    should be retried with exponential backoff.

    Args:
        exception: The exception to check

    Returns:
        True if the error is retryable, False otherwise
    """
    if isinstance(exception, (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_STATUS_CODES

    return False


def map_http_error(error: httpx.HTTPError, operation: str) -> dict[str, str]:
    """Map an HTTP error to a user-friendly message with hints.

    Args:
        error: The httpx error
        operation: Description of the operation that failed (e.g., "registration token request")

    Returns:
        Dictionary with keys:
        - error: User-friendly error message
        - hint: Actionable hint for resolving the issue
        - http_status: The HTTP status code, or the exception name for transport errors
    """
    if not isinstance(error, httpx.HTTPStatusError):
        return {
            "error": f"Control plane unreachable during {operation}: {error}",
            "hint": (
                "1. Verify network connectivity\n"
                "2. Check api_url in the configuration\n"
                "3. Retry once the service is reachable"
            ),
            "http_status": type(error).__name__,
        }

    status = error.response.status_code

    if status == 401:
        return {
            "error": f"Authentication failed during {operation}",
            "hint": (
                "1. Check that the API token is set and not expired\n"
                "2. Regenerate the token if it was revoked"
            ),
            "http_status": str(status),
        }

    elif status == 403:
        return {
            "error": f"Permission denied during {operation}",
            "hint": (
                "1. The token needs admin rights on the repository\n"
                "2. Fine-grained tokens need 'Administration: write'\n"
                "3. Check organization policies for self-hosted runners"
            ),
            "http_status": str(status),
        }

    elif status == 404:
        return {
            "error": f"Target not found during {operation}",
            "hint": (
                "1. Verify the owner and repository names\n"
                "2. Private repositories return 404 without sufficient rights"
            ),
            "http_status": str(status),
        }

    elif status == 429:
        return {
            "error": f"Rate limited during {operation}",
            "hint": "Wait for the rate limit window to reset and retry.",
            "http_status": str(status),
        }

    elif status >= 500:
        return {
            "error": f"Control plane error during {operation}: HTTP {status}",
            "hint": "The service may be degraded. Retry later.",
            "http_status": str(status),
        }

    try:
        body = error.response.text[:200]
    except httpx.ResponseNotRead:
        body = "<body not read>"

    return {
        "error": f"Unexpected response during {operation}: HTTP {status} - {body}",
        "hint": "Check the request parameters and API version.",
        "http_status": str(status),
    }


def is_authorization_failure(error: httpx.HTTPError) -> bool:
    """Check whether an HTTP error means the caller lacks rights on the target."""
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code in (401, 403, 404)

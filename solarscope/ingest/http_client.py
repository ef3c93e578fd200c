"""
Shared HTTP plumbing for upstream providers.

Wraps a requests.Session call so that every transport or status failure
leaves as an UpstreamError carrying an ErrorCode, and every body goes
through the response normalizer.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.errors import ErrorCode, UpstreamError
from ..core.normalizer import Err, normalize

logger = logging.getLogger(__name__)

USER_AGENT = "SolarScope/1.0 (Solar viability analysis)"

STATUS_CODES = {
    401: ErrorCode.AUTH_REQUIRED,
    402: ErrorCode.INSUFFICIENT_CREDITS,
    403: ErrorCode.AUTH_INVALID,
    404: ErrorCode.FUNCTION_NOT_FOUND,
}


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    provider: str,
    timeout: float,
    timeout_code: ErrorCode = ErrorCode.NETWORK_ERROR,
    not_found_ok: bool = False,
    **kwargs: Any,
) -> Optional[Dict[str, Any]]:
    """
    Perform a request and return the normalized JSON body.

    Args:
        session: requests session to use
        method: HTTP method
        url: Target URL
        provider: Provider name for logs and errors
        timeout: Per-request timeout in seconds
        timeout_code: Code reported when the request times out
        not_found_ok: Return None on 404 (no coverage) instead of raising

    Returns:
        Decoded data dict, or None for a tolerated 404.

    Raises:
        UpstreamError: On transport failure, non-2xx status or bad body.
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        logger.warning("%s request timed out: %s", provider, e, extra={"provider": provider})
        raise UpstreamError(timeout_code, f"{provider} timeout: {e}", provider) from e
    except requests.ConnectionError as e:
        logger.warning("%s connection failed: %s", provider, e, extra={"provider": provider})
        raise UpstreamError(ErrorCode.NETWORK_ERROR, f"{provider} network error: {e}", provider) from e
    except requests.RequestException as e:
        raise UpstreamError(ErrorCode.EDGE_FUNCTION_ERROR, f"{provider} request failed: {e}", provider) from e

    if response.status_code == 404 and not_found_ok:
        return None

    if response.status_code >= 400:
        outcome = normalize(response.text)
        # A structured error body is more specific than the bare status
        if isinstance(outcome, Err) and outcome.error.code not in (
            ErrorCode.EMPTY_RESPONSE,
            ErrorCode.MALFORMED_RESPONSE,
            ErrorCode.UNKNOWN_ERROR,
        ):
            code = outcome.error.code
        else:
            code = STATUS_CODES.get(response.status_code, ErrorCode.EDGE_FUNCTION_ERROR)
        logger.warning(
            "%s returned HTTP %d", provider, response.status_code,
            extra={"provider": provider, "error_code": code.value},
        )
        raise UpstreamError(code, f"{provider} returned HTTP {response.status_code}", provider)

    outcome = normalize(response.text)
    if isinstance(outcome, Err):
        raise UpstreamError(outcome.error.code, f"{provider} body rejected: {outcome.error.message}", provider)
    return outcome.value

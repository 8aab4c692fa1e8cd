"""
Low-level HTTP request helper for the nRF Cloud REST API.
Handles JSON decoding, error responses and retry-on-timeout.
"""
import asyncio
import logging

import aiohttp

from .const import REQUEST_ATTEMPTS, REQUEST_TIMEOUT
from .errors import TransportError

_LOGGER = logging.getLogger(__name__)

SUPPORTED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


class ApiResponseError(TransportError):
    """Exception raised when the API returns an error response."""
    def __init__(self, status: int, error_json: dict):
        self.status = status
        self.error_json = error_json
        super().__init__(f"API Error (HTTP {status}): {error_json}")


async def make_request(
    method: str,
    url: str,
    headers: dict,
    payload: dict = None,
    params: dict = None,
    timeout: int = REQUEST_TIMEOUT,
    max_attempts: int = REQUEST_ATTEMPTS,
):
    """
    Make an HTTP request with automatic retry on timeout.

    Args:
        method: HTTP method (GET, POST, PUT, PATCH, DELETE)
        url: Target URL for the request
        headers: HTTP headers dictionary
        payload: JSON body (optional)
        params: URL query parameters (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of attempts

    Returns:
        Parsed JSON response, or None for an empty successful response

    Raises:
        asyncio.TimeoutError: If every attempt timed out
        ApiResponseError: If the API answered with a JSON error body
        ValueError: If the response has an unexpected content type
        aiohttp.ClientError: For connection-level failures (not retried)
    """
    method = method.upper()
    if method not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method}")

    for attempt in range(max_attempts):
        # Timeout grows with each attempt
        timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
        try:
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.request(
                    method, url, headers=headers, json=payload, params=params
                ) as response:
                    return await _process_response(response, url)
        except (asyncio.TimeoutError, TimeoutError):
            if attempt < max_attempts - 1:
                _LOGGER.debug(
                    "Timeout on %s %s (attempt %s/%s), retrying",
                    method, url, attempt + 1, max_attempts,
                )
                continue
            _LOGGER.warning(
                "Timeout on %s request to %s after %s attempts",
                method, url, max_attempts,
            )
            raise
    return None


async def _process_response(response, url: str):
    """
    Turn an aiohttp response into parsed JSON or an exception.

    Any 2xx is a success; 202/204 replies without a body yield None.
    """
    content_type = response.headers.get("Content-Type", "")

    if 200 <= response.status < 300:
        if "application/json" in content_type:
            return await response.json()
        text = await response.text()
        if not text.strip():
            return None
        _LOGGER.warning(
            "Unexpected content type in successful response: %s (status %s) from %s",
            content_type, response.status, url,
        )
        raise ValueError(f"Expected JSON but got {content_type}: {text[:200]}")

    if "application/json" in content_type:
        try:
            error_json = await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            _LOGGER.error(
                "Failed to parse error response as JSON from %s: %s (status %s)",
                url, e, response.status,
            )
            raise ValueError(f"HTTP {response.status} with unparsable JSON body from {url}") from e
        raise ApiResponseError(response.status, error_json)

    text = await response.text()
    _LOGGER.warning(
        "Received non-JSON error response from %s: status %s, content-type: %s, body preview: %s",
        url, response.status, content_type, text[:200],
    )
    raise ValueError(
        f"HTTP {response.status} with {content_type} "
        f"(expected application/json) from {url}"
    )

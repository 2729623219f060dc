"""HTTP transport for the CouchDB admin API.

Every response is decoded here, once: callers get the parsed body on success
and a typed :class:`~continuum.exceptions.CouchServerError` subclass on
failure, so control flow never re-inspects raw responses.
"""

from __future__ import annotations

import json as jsonlib
from types import TracebackType
from typing import Any

import httpx
import structlog

from continuum.exceptions import SERVER_ERRORS, CouchServerError, TransportFailure
from continuum.identity import redact_url

logger = structlog.get_logger(__name__)


def _encode_params(params: dict[str, Any] | None) -> dict[str, str] | None:
    """Drop None values and JSON-encode booleans, as CouchDB expects."""
    if params is None:
        return None
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = jsonlib.dumps(value)
        else:
            encoded[key] = str(value)
    return encoded


def decode_response(method: str, url: str, response: httpx.Response) -> Any:
    """Decode a CouchDB response into a body or a typed error.

    Args:
        method: HTTP method of the request
        url: Request URL (already redacted)
        response: The httpx response

    Returns:
        The parsed JSON body, or the text body when it is not JSON

    Raises:
        CouchServerError: On a non-2xx status, or a 2xx body carrying ``error``
    """
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text

    failed = response.status_code >= 400
    if isinstance(body, dict) and "error" in body:
        failed = True

    if not failed:
        return body

    if isinstance(body, dict):
        error = str(body.get("error") or "unknown")
        reason = str(body.get("reason") or "")
    else:
        error = "unknown"
        reason = str(body)

    error_cls = SERVER_ERRORS.get(error, CouchServerError)
    raise error_cls(
        method=method,
        url=url,
        status_code=response.status_code,
        error=error,
        reason=reason,
        body=body,
    )


class CouchClient:
    """Async client for CouchDB's HTTP API.

    Credentials embedded in URLs are sent as basic auth by httpx. One client
    can talk to several clusters, since every call takes a full URL.
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Request timeout in seconds; None disables timeouts
            transport: Optional httpx transport (used by tests)
        """
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> CouchClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Perform a request and decode the result.

        Raises:
            TransportFailure: If the server could not be reached
            CouchServerError: If the server answered with an error
        """
        safe_url = redact_url(url)
        logger.debug("couch.request", method=method, url=safe_url)
        try:
            response = await self._client.request(
                method,
                url,
                params=_encode_params(params),
                json=json,
            )
        except httpx.TransportError as e:
            raise TransportFailure(method, safe_url, str(e) or type(e).__name__) from e

        return decode_response(method, safe_url, response)

    async def get(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", url, params=params)

    async def put(
        self, url: str, *, params: dict[str, Any] | None = None, json: Any = None
    ) -> Any:
        return await self.request("PUT", url, params=params, json=json)

    async def post(self, url: str, *, json: Any = None) -> Any:
        return await self.request("POST", url, json=json)

    async def delete(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", url, params=params)

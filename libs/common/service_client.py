"""Reusable async HTTP client for calls to the storefront backend and carriers.

All outbound calls go through ``ServiceClient`` so that timeouts, default
headers and request-id propagation are handled in one place.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


class ServiceClient:
    """Base client for making HTTP requests to an external service.

    ``transport`` lets tests route requests to an ``httpx.MockTransport`` or an
    in-process ASGI app instead of the network.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else get_settings().SERVICE_TIMEOUT_SECONDS
        self.headers = dict(headers or {})
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.headers}
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        headers["X-Caller-Service"] = get_settings().SERVICE_NAME
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Send a request and return the raw response.

        Raises:
            httpx.RequestError on connection failures and timeouts.
        """
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
        ) as client:
            response = await client.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=_drop_none(params),
            )
        logger.debug("%s %s -> %d", method, url, response.status_code)
        return response

    async def get(self, path: str, *, params: Optional[dict] = None) -> Any:
        """Make GET request and return the decoded JSON body."""
        response = await self.request("GET", path, params=params)
        response.raise_for_status()
        return response.json()

    async def post(self, path: str, json: Any = None, *, timeout: Optional[float] = None) -> Any:
        """Make POST request and return the decoded JSON body."""
        response = await self.request("POST", path, json=json, timeout=timeout)
        response.raise_for_status()
        return response.json()

    async def delete(self, path: str, *, params: Optional[dict] = None) -> None:
        """Make DELETE request; the body, if any, is ignored."""
        response = await self.request("DELETE", path, params=params)
        response.raise_for_status()


def _drop_none(params: Optional[dict]) -> Optional[dict]:
    if params is None:
        return None
    return {key: value for key, value in params.items() if value is not None}


def error_message(response: httpx.Response) -> Optional[str]:
    """Extract the backend's ``message`` (or FastAPI ``detail``) from an error body."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("detail")
    return message if isinstance(message, str) and message.strip() else None

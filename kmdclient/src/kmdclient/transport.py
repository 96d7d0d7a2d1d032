"""
HTTP transport to the kmd daemon.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from kmdclient.constants import (
    API_TOKEN_HEADER,
    DEFAULT_KMD_HOST,
    DEFAULT_KMD_PORT,
    DEFAULT_REQUEST_TIMEOUT,
)
from kmdclient.encoding import redact
from kmdclient.errors import TransportError

# Environment variable to enable logging of request bodies (sensitive fields stay redacted)
SENSITIVE_LOGGING = os.environ.get("KMD_SENSITIVE_LOGGING", "").lower() in ("1", "true", "yes")


@dataclass
class TransportResponse:
    status: int
    body: Any


class KMDTransport(ABC):
    """
    Abstract transport interface.
    Implementations deliver a JSON request to the daemon and return the
    status code with the decoded body. Failures of the channel itself are
    raised as TransportError; daemon-level errors are returned as responses.
    """

    @abstractmethod
    async def get(self, path: str) -> TransportResponse:
        """GET a path"""

    @abstractmethod
    async def post(self, path: str, body: dict[str, Any]) -> TransportResponse:
        """POST a JSON body to a path"""

    @abstractmethod
    async def delete(self, path: str, body: dict[str, Any]) -> TransportResponse:
        """DELETE a path with a JSON body"""

    async def close(self) -> None:
        """Close transport connection"""
        pass


def build_base_url(host: str, port: int) -> str:
    """Combine a host (with or without scheme) and a port into a base URL."""
    host = host.rstrip("/")
    if "://" not in host:
        host = f"http://{host}"
    return f"{host}:{port}"


class HTTPXTransport(KMDTransport):
    """Transport over HTTP using httpx, authenticated with the kmd API token."""

    def __init__(
        self,
        api_token: str,
        host: str = DEFAULT_KMD_HOST,
        port: int = DEFAULT_KMD_PORT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the transport.

        Args:
            api_token: kmd API token, sent in the X-KMD-API-Token header
            host: Daemon host, optionally with scheme (default http://127.0.0.1)
            port: Daemon port (default 7833)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.base_url = build_base_url(host, port)
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={API_TOKEN_HEADER: api_token},
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> TransportResponse:
        if SENSITIVE_LOGGING:
            logger.debug(f"kmd {method} {path} body={redact(body)}")
        else:
            logger.debug(f"kmd {method} {path}")

        try:
            if body is None:
                response = await self.client.request(method, path)
            else:
                # httpx only accepts json= on request(), not on delete()
                response = await self.client.request(method, path, json=body)
        except httpx.TimeoutException as e:
            logger.error(f"kmd request timed out: {method} {path} - {e}")
            raise TransportError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"kmd request failed: {method} {path} - {e}")
            raise TransportError(f"Request to {path} failed: {e}") from e

        return TransportResponse(status=response.status_code, body=_decode_body(response))

    async def get(self, path: str) -> TransportResponse:
        return await self._request("GET", path)

    async def post(self, path: str, body: dict[str, Any]) -> TransportResponse:
        return await self._request("POST", path, body)

    async def delete(self, path: str, body: dict[str, Any]) -> TransportResponse:
        return await self._request("DELETE", path, body)

    async def close(self) -> None:
        await self.client.aclose()


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        if response.is_success:
            raise TransportError(f"Invalid JSON response from {response.request.url.path}")
        return {"error": True, "message": response.text.strip()}

"""
Upstream transport: forwards requests to the origin server.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from .exceptions import UpstreamError

logger = logging.getLogger(__name__)

# Headers that describe a single connection and must not be forwarded
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Response headers invalidated by buffering and decoding the body
_STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


@dataclass
class ProxyRequest:
    """An inbound request as seen by the router."""

    method: str
    path: str
    query: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return default


@dataclass
class UpstreamResponse:
    """A fully buffered response from the upstream origin."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return default


class UpstreamProxy:
    """
    Forwards ProxyRequests to a fixed upstream origin using requests.

    Args:
        upstream_url: Base URL of the origin, e.g. http://localhost:8080
        timeout: Per-request timeout in seconds
        session: Optional requests.Session to reuse
    """

    def __init__(
        self,
        upstream_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.upstream_url = upstream_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def url_for(self, request: ProxyRequest) -> str:
        url = self.upstream_url + (request.path or "/")
        if request.query:
            url += "?" + request.query
        return url

    def forward(self, request: ProxyRequest) -> UpstreamResponse:
        """
        Send request upstream and buffer the whole response.

        Raises:
            UpstreamError: If the origin cannot be reached
        """
        url = self.url_for(request)
        headers = {
            key: value for key, value in request.headers.items()
            if key.lower() not in HOP_BY_HOP_HEADERS and key.lower() != "host"
        }

        try:
            response = self.session.request(
                request.method,
                url,
                headers=headers,
                data=request.body or None,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamError(self.upstream_url, str(e)) from e

        logger.debug("Upstream %s %s -> %d", request.method, url, response.status_code)
        return UpstreamResponse(
            status_code=response.status_code,
            headers={
                key: value for key, value in response.headers.items()
                if key.lower() not in _STRIPPED_RESPONSE_HEADERS
            },
            body=response.content,
        )

    def close(self):
        self.session.close()

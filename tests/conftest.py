"""
Shared fixtures: a scripted upstream that records the requests it receives.
"""

import tempfile
import shutil

import pytest

from proxy_cached.config import ProxyCacheConfig
from proxy_cached.exceptions import UpstreamError
from proxy_cached.proxy import ProxyRequest, UpstreamProxy, UpstreamResponse


class FakeUpstream(UpstreamProxy):
    """UpstreamProxy that answers from a queue instead of the network."""

    def __init__(self, upstream_url: str = "http://upstream.test"):
        super().__init__(upstream_url)
        self.calls = []
        self.responses = []
        self.default = UpstreamResponse(
            status_code=200,
            headers={"Content-Type": "application/json"},
            body=b'{"x":1}',
        )
        self.fail = False

    def respond(self, body: bytes, content_type: str = "application/json", status_code: int = 200):
        self.responses.append(UpstreamResponse(
            status_code=status_code,
            headers={"Content-Type": content_type},
            body=body,
        ))

    def forward(self, request: ProxyRequest) -> UpstreamResponse:
        self.calls.append(request)
        if self.fail:
            raise UpstreamError(self.upstream_url, "connection refused")
        if self.responses:
            return self.responses.pop(0)
        return self.default


@pytest.fixture
def temp_cache_dir():
    """Create a temporary cache directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def config(temp_cache_dir):
    return ProxyCacheConfig(
        environment="dev",
        resource_type="api",
        caching_enabled=True,
        cache_dir=temp_cache_dir,
    )

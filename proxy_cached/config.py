"""
Runtime configuration for the caching proxy.

The configuration is read once at startup and passed explicitly to the
components that need it; nothing here is process-global.
"""

import os
from dataclasses import dataclass


_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(value: str) -> bool:
    """
    Parse a boolean flag value.

    Accepts 1/t/true and 0/f/false in their common capitalisations.

    Raises:
        ValueError: If the value is not a recognised boolean spelling
    """
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {value!r} (expected true or false)")


@dataclass
class ProxyCacheConfig:
    """
    Settings shared by the key builder, router and HTTP server.

    Attributes:
        environment: Environment tag, first segment of every storage key
        resource_type: Resource category tag, second segment of every key
        caching_enabled: When False, requests are always proxied and nothing is stored
        upstream_url: Origin that cache misses are forwarded to
        cache_dir: Root directory of the on-disk cache
        client_header: Request header carrying the client identifier
        fuzzy_match: Try an approximate key match when the exact lookup misses
        timeout: Upstream request timeout in seconds
        verbose: Log one line per cache decision
    """

    environment: str
    resource_type: str
    caching_enabled: bool = True
    upstream_url: str = "http://localhost:8080"
    cache_dir: str = "~/.proxy_cache"
    client_header: str = "UUID"
    fuzzy_match: bool = False
    timeout: float = 30.0
    verbose: bool = True

    def __post_init__(self):
        self.upstream_url = self.upstream_url.rstrip("/")
        self.cache_dir = os.path.expanduser(self.cache_dir)

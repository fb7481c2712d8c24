"""
proxy-cached: a caching layer in front of an HTTP reverse proxy.

Responses from the upstream origin are stored on disk under a key derived
from the environment, resource type, method, client identifier, path and
query, and served locally when the same request comes in again.
"""

__version__ = "0.1.0"

from .cache_manager import CacheManager, FuzzyCacheManager
from .config import ProxyCacheConfig
from .router import RequestRouter
from .server import CachedProxyServer

__all__ = [
    "CacheManager",
    "CachedProxyServer",
    "FuzzyCacheManager",
    "ProxyCacheConfig",
    "RequestRouter",
]

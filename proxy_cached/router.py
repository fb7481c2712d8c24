"""
Request routing: serve from cache or proxy upstream and populate the cache.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cache_manager import CacheManager
from .config import ProxyCacheConfig
from .exceptions import StorageError
from .formats import classify, media_type_for_path
from .keys import StorageKey, build_key
from .proxy import ProxyRequest, UpstreamProxy, UpstreamResponse

logger = logging.getLogger(__name__)

# Methods with create/replace semantics; they invalidate before proxying
MUTATING_METHODS = frozenset({"POST", "PUT"})

# Read keys of a resource dropped when it is mutated
READ_METHODS = ("GET", "HEAD")


class RouteState(Enum):
    ROUTE_START = "route_start"
    KEY_BUILT = "key_built"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    SERVED_FROM_CACHE = "served_from_cache"
    PROXIED = "proxied"
    RESPONSE_CLASSIFIED = "response_classified"
    ENTRY_WRITTEN = "entry_written"
    ENTRY_INVALIDATED = "entry_invalidated"
    SKIPPED = "skipped"


@dataclass
class RoutedResponse:
    """Response to hand back to the client, plus how it was produced."""

    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    key: Optional[StorageKey] = None
    cache_status: str = "MISS"
    states: List[RouteState] = field(default_factory=list)


class RequestRouter:
    """
    Routes each request through the cache.

    The flow for one request is:
      1. Build the storage key.
      2. For POST/PUT, invalidate the key and the read keys of the resource.
      3. For other methods with caching enabled, look the key up (exact, then
         fuzzy when the cache manager supports it) and serve a hit directly.
      4. Otherwise forward upstream, classify the response content type and,
         with caching enabled, store successful bodies before returning them.
         A body is not stored if its key was invalidated after the request
         started, so a read racing a mutation cannot cache pre-mutation data.

    Storage failures are logged and never change what the client receives.
    UpstreamError from the proxy propagates to the caller.
    """

    def __init__(
        self,
        config: ProxyCacheConfig,
        cache: CacheManager,
        proxy: UpstreamProxy,
    ):
        self.config = config
        self.cache = cache
        self.proxy = proxy

    def build_key(self, request: ProxyRequest) -> StorageKey:
        return build_key(
            self.config.environment,
            self.config.resource_type,
            request.method,
            request.header(self.config.client_header),
            request.path,
            request.query,
        )

    def _log(self, status: str, message: str, *args):
        if self.config.verbose:
            logger.info(f"[Cache {status}] " + message, *args)

    def handle(self, request: ProxyRequest) -> RoutedResponse:
        states = [RouteState.ROUTE_START]
        key = self.build_key(request)
        states.append(RouteState.KEY_BUILT)
        mutating = key.method in MUTATING_METHODS

        if mutating:
            self._invalidate(key)
            states.append(RouteState.ENTRY_INVALIDATED)
        # Taken before the upstream call so a response that raced an
        # invalidation of key is never written
        generation = self.cache.generation(key)
        if not mutating and self.config.caching_enabled:
            hit = self.cache.lookup(key)
            if hit is not None:
                states += [RouteState.CACHE_HIT, RouteState.SERVED_FROM_CACHE]
                status = "FUZZY-HIT" if hit.fuzzy else "HIT"
                self._log(status.lower(), "%s", hit.path)
                return RoutedResponse(
                    status_code=200,
                    body=hit.body,
                    headers={"Content-Type": media_type_for_path(hit.path)},
                    key=key,
                    cache_status=status,
                    states=states,
                )
            states.append(RouteState.CACHE_MISS)

        if self.config.caching_enabled:
            self._log("miss", "%s -> %s", key, self.proxy.url_for(request))
        else:
            self._log("bypass", "%s -> %s", key, self.proxy.url_for(request))

        response = self.proxy.forward(request)
        states.append(RouteState.PROXIED)

        tag = classify(response.header("Content-Type"))
        states.append(RouteState.RESPONSE_CLASSIFIED)

        if self._populate(key, tag, response, generation):
            states.append(RouteState.ENTRY_WRITTEN)
        else:
            states.append(RouteState.SKIPPED)

        return RoutedResponse(
            status_code=response.status_code,
            body=response.body,
            headers=dict(response.headers),
            key=key,
            cache_status="MISS" if self.config.caching_enabled else "BYPASS",
            states=states,
        )

    def _invalidate(self, key: StorageKey) -> bool:
        """Drop cached entries a mutation of key makes stale."""
        removed = 0
        for target in [key] + [key.with_method(m) for m in READ_METHODS]:
            try:
                removed += self.cache.invalidate_key(target)
            except StorageError as e:
                logger.warning("Failed to invalidate %s: %s", target, e)
        if removed:
            self._log("invalidate", "%s (%d entries)", key, removed)
        return removed > 0

    def _populate(self, key: StorageKey, tag, response: UpstreamResponse, generation) -> bool:
        if not self.config.caching_enabled:
            return False
        # Hits are always served as 200, so only successful responses are kept
        if not 200 <= response.status_code < 300:
            return False
        try:
            path = self.cache.store(key, tag, response.body, generation=generation)
        except StorageError as e:
            logger.warning("Failed to cache response for %s: %s", key, e)
            return False
        if path is None:
            logger.info("Not caching %s: invalidated while the request was in flight", key)
            return False
        logger.debug("Stored %d bytes at %s", len(response.body), path)
        return True

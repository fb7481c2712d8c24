"""
HTTP server that adds response caching in front of an upstream service.

This module provides a FastAPI-based HTTP server that proxies every request
to the upstream origin, serving repeated requests from the local cache.
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response
from fastapi.concurrency import run_in_threadpool

from .cache_manager import CacheManager, FuzzyCacheManager
from .config import ProxyCacheConfig
from .exceptions import UpstreamError
from .proxy import ProxyRequest, UpstreamProxy
from .router import RequestRouter

PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class CachedProxyServer:
    """
    FastAPI-based HTTP server that wraps an upstream origin with caching.

    Every path except the reserved /_cache endpoints is routed through a
    RequestRouter, which either serves the stored response or forwards the
    request upstream and caches what comes back.
    """

    def __init__(
        self,
        config: ProxyCacheConfig,
        cache: Optional[CacheManager] = None,
        proxy: Optional[UpstreamProxy] = None,
    ):
        """
        Initialize the cached proxy.

        Args:
            config: Proxy configuration
            cache: Cache manager (default: built from config.cache_dir and
                config.fuzzy_match)
            proxy: Upstream transport (default: requests-based UpstreamProxy)
        """
        self.config = config
        if cache is None:
            cache_cls = FuzzyCacheManager if config.fuzzy_match else CacheManager
            cache = cache_cls(config.cache_dir)
        self.cache = cache
        self.proxy = proxy or UpstreamProxy(config.upstream_url, timeout=config.timeout)
        self.router = RequestRouter(config, self.cache, self.proxy)
        self.app = FastAPI(title="Proxy Cached")

        # Register routes
        self._setup_routes()

    def _setup_routes(self):
        """Setup all FastAPI routes."""

        @self.app.get("/_cache/health")
        async def health():
            """Health check endpoint."""
            return {"status": "healthy", "upstream_url": self.config.upstream_url}

        @self.app.get("/_cache/stats")
        async def cache_stats():
            """Get cache statistics."""
            stats = self.cache.get_stats()
            stats["caching_enabled"] = self.config.caching_enabled
            stats["fuzzy_match"] = isinstance(self.cache, FuzzyCacheManager)
            return stats

        @self.app.post("/_cache/clear")
        async def cache_clear():
            """Clear all cached responses."""
            self.cache.clear()
            return {"status": "success", "message": "Cache cleared"}

        @self.app.api_route("/{full_path:path}", methods=PROXIED_METHODS)
        async def proxy(request: Request, full_path: str):
            """
            Serve any other request from the cache or the upstream origin.
            """
            proxy_request = ProxyRequest(
                method=request.method,
                path=request.url.path,
                query=request.url.query,
                headers=dict(request.headers),
                body=await request.body(),
            )
            # The router runs in a worker thread, so a client disconnect
            # does not interrupt a cache write in progress
            try:
                routed = await run_in_threadpool(self.router.handle, proxy_request)
            except UpstreamError as e:
                raise HTTPException(status_code=502, detail=str(e))

            headers = dict(routed.headers)
            headers["X-Cache"] = routed.cache_status
            return Response(
                content=routed.body,
                status_code=routed.status_code,
                headers=headers,
            )

    def run(self, host: str = "0.0.0.0", port: int = 9090):
        """
        Run the FastAPI server.

        Args:
            host: Host to bind to
            port: Port to bind to
        """
        uvicorn.run(self.app, host=host, port=port)

    def shutdown(self):
        """Release the upstream connection pool."""
        self.proxy.close()

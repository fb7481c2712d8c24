#!/usr/bin/env python3
"""
Basic usage example for proxy-cached.

This example demonstrates:
1. Building a router in front of an upstream service
2. Serving a repeated request from the cache
3. Invalidating an entry with a PUT
4. Checking cache statistics
"""

from proxy_cached import CacheManager, ProxyCacheConfig, RequestRouter
from proxy_cached.proxy import ProxyRequest, UpstreamProxy


def main():
    # Make sure an HTTP service is running at http://localhost:8080
    config = ProxyCacheConfig(
        environment="dev",
        resource_type="api",
        caching_enabled=True,
        upstream_url="http://localhost:8080",
        cache_dir="~/.proxy_cache",
    )
    cache = CacheManager(config.cache_dir)
    proxy = UpstreamProxy(config.upstream_url, timeout=config.timeout)
    router = RequestRouter(config, cache, proxy)

    print("="*60)
    print("Example 1: Basic Caching")
    print("="*60)

    request = ProxyRequest(method="GET", path="/items", query="b=2&a=1", headers={"UUID": "U1"})

    print("\n--- First request (cache miss) ---")
    response1 = router.handle(request)
    print(f"[{response1.cache_status}] {response1.key}: {response1.body[:100]!r}")

    print("\n--- Second request, parameters reordered (cache hit) ---")
    reordered = ProxyRequest(method="GET", path="/items", query="a=1&b=2", headers={"UUID": "U1"})
    response2 = router.handle(reordered)
    print(f"[{response2.cache_status}] {response2.key}: {response2.body[:100]!r}")
    print(f"Responses match: {response1.body == response2.body}")

    print("\n" + "="*60)
    print("Example 2: Invalidation")
    print("="*60)

    update = ProxyRequest(
        method="PUT", path="/items", query="a=1&b=2",
        headers={"UUID": "U1", "Content-Type": "application/json"},
        body=b'{"name": "updated"}',
    )
    router.handle(update)
    response3 = router.handle(request)
    print(f"After PUT: [{response3.cache_status}] {response3.key}")

    print("\n" + "="*60)
    print("Cache Statistics")
    print("="*60)
    for name, value in cache.get_stats().items():
        print(f"{name}: {value}")

    proxy.close()


if __name__ == "__main__":
    main()

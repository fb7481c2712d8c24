"""
Command-line interface for proxy-cached.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import ProxyCacheConfig, parse_bool
from .server import CachedProxyServer


def _bool_arg(value: str) -> bool:
    try:
        return parse_bool(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Caching reverse proxy",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Key options
    parser.add_argument(
        "--env",
        type=str,
        required=True,
        help="Environment tag used as the first cache key segment (required)"
    )
    parser.add_argument(
        "--type",
        dest="resource_type",
        type=str,
        required=True,
        help="Resource type tag used as the second cache key segment (required)"
    )
    parser.add_argument(
        "--cache",
        type=_bool_arg,
        required=True,
        help="Whether responses are cached and served from the cache (true/false)"
    )

    # Cache options
    parser.add_argument(
        "--cache-dir",
        type=str,
        default="~/.proxy_cache",
        help="Directory for cache storage"
    )
    parser.add_argument(
        "--fuzzy",
        action="store_true",
        help="Serve the most similar cached entry when there is no exact match"
    )
    parser.add_argument(
        "--client-header",
        type=str,
        default="UUID",
        help="Request header carrying the client identifier"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not log each cache decision"
    )

    # Proxy options
    parser.add_argument(
        "--upstream",
        type=str,
        default="http://localhost:8080",
        help="Upstream origin that cache misses are forwarded to"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Upstream request timeout in seconds"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host to listen on"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ProxyCacheConfig:
    return ProxyCacheConfig(
        environment=args.env,
        resource_type=args.resource_type,
        caching_enabled=args.cache,
        upstream_url=args.upstream,
        cache_dir=args.cache_dir,
        client_header=args.client_header,
        fuzzy_match=args.fuzzy,
        timeout=args.timeout,
        verbose=not args.quiet,
    )


def main(argv: Optional[List[str]] = None):
    """Main entry point for proxy-cached CLI."""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    cached_server = CachedProxyServer(config)

    print("\n" + "="*60)
    print("Proxy-Cached is ready!")
    print("="*60)
    print(f"Upstream: {config.upstream_url}")
    print(f"Listening: http://{args.host}:{args.port}")
    print(f"Key prefix: {config.environment.upper()}/{config.resource_type.upper()}")
    print(f"Caching: {'enabled' if config.caching_enabled else 'disabled'}"
          f"{' (fuzzy matching)' if config.fuzzy_match else ''}")
    print(f"Cache directory: {config.cache_dir}")
    print("\nPress Ctrl+C to shutdown")
    print("="*60 + "\n")

    try:
        cached_server.run(host=args.host, port=args.port)
    finally:
        cached_server.shutdown()
        print("✓ Shutdown complete")


if __name__ == "__main__":
    sys.exit(main())

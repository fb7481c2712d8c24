"""
Storage key construction and query normalization.

A storage key is a path-like string built from the environment, resource
type, HTTP method, client identifier, request path and canonical query:

    DEV/API/GET/U1/items?a=1&b=2

Two requests that differ only in the order of their query parameters or in
how those parameters are percent-encoded map to the same key. The format
extension (".json", ".html", ...) is not part of the key; it is appended by
the cache store once the response content type is known.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import quote_plus, unquote_plus


# A '%' that does not start a two-digit hex escape
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _decode_component(component: str) -> Optional[str]:
    """
    Percent-decode one query name or value.

    Returns None for components that cannot be decoded: malformed escapes
    such as "%zz" or a trailing "%", and byte sequences that are not UTF-8.
    """
    if _BAD_ESCAPE.search(component):
        return None
    try:
        return unquote_plus(component, errors="strict")
    except UnicodeDecodeError:
        return None


def parse_query_pairs(raw_query: str) -> List[Tuple[str, str]]:
    """
    Split a raw query string into decoded (name, value) pairs.

    Malformed input is tolerated: segments without an '=' and segments whose
    name or value cannot be percent-decoded are dropped.

    Args:
        raw_query: Query string without the leading '?'

    Returns:
        Decoded pairs in their original order
    """
    pairs = []
    for segment in raw_query.split("&"):
        if "=" not in segment:
            continue
        raw_name, raw_value = segment.split("=", 1)
        name = _decode_component(raw_name)
        value = _decode_component(raw_value)
        if name is None or value is None:
            continue
        pairs.append((name, value))
    return pairs


def canonicalize_query(raw_query: str) -> str:
    """
    Normalize a raw query string to its canonical form.

    Each pair is decoded and re-encoded, so "a%20b", "a+b" and "a b" all
    become "a+b". Pairs are sorted by name and then by value, which makes
    the result independent of parameter order. Canonicalizing an already
    canonical query returns it unchanged.

    Args:
        raw_query: Query string without the leading '?'

    Returns:
        Canonical query string, empty if no valid pairs remain
    """
    pairs = sorted(parse_query_pairs(raw_query))
    return "&".join(
        f"{quote_plus(name, safe='')}={quote_plus(value, safe='')}"
        for name, value in pairs
    )


@dataclass(frozen=True)
class StorageKey:
    """Ordered key tuple identifying one cached response."""

    environment: str
    resource_type: str
    method: str
    client_id: str
    path: str
    query: str

    def with_method(self, method: str) -> "StorageKey":
        """Return the key of the same resource under another HTTP method."""
        return StorageKey(
            self.environment, self.resource_type, method.upper(),
            self.client_id, self.path, self.query,
        )

    def __str__(self) -> str:
        key = "/".join(
            [self.environment, self.resource_type, self.method, self.client_id]
        ) + self.path
        if self.query:
            key += "?" + self.query
        return key


def normalize_path(path: str) -> str:
    """Strip trailing separators and make the path start with '/' unless empty."""
    path = path.rstrip("/")
    if path and not path.startswith("/"):
        path = "/" + path
    return path


def build_key(
    environment: str,
    resource_type: str,
    method: str,
    client_id: str,
    path: str,
    raw_query: str = "",
) -> StorageKey:
    """
    Build the storage key for a request.

    Args:
        environment: Environment tag (upper-cased)
        resource_type: Resource category tag (upper-cased)
        method: HTTP method
        client_id: Client identifier, may be empty
        path: Request path; trailing '/' is ignored
        raw_query: Raw query string without the leading '?'

    Returns:
        The StorageKey for the request
    """
    return StorageKey(
        environment=environment.upper(),
        resource_type=resource_type.upper(),
        method=method.upper(),
        client_id=client_id or "",
        path=normalize_path(path),
        query=canonicalize_query(raw_query or ""),
    )

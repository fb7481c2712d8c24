"""
Exception types raised by proxy-cached.
"""


class ProxyCacheError(Exception):
    """Base class for all proxy-cached errors."""


class StorageError(ProxyCacheError):
    """A cache artifact could not be created, written, read or removed."""


class UpstreamError(ProxyCacheError):
    """The upstream origin could not be reached or returned no response."""

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to reach upstream at {url}: {message}")
        self.url = url

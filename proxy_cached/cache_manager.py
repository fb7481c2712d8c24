"""
Cache manager for proxied responses.

Entries live in a StorageBackend at "<storage key><extension>", where the
extension is chosen from the response content type. Entries never expire;
they are replaced when the same key is written again and removed when a
mutating request invalidates them.

Writes and invalidations of the same key are serialized by a striped lock
table. Reads take no lock: backends write atomically, so a reader sees
either the old or the new artifact in full.
"""

import logging
import os
import threading
import zlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from .exceptions import StorageError
from .formats import FormatTag, LOOKUP_EXTENSIONS, extension_for
from .fuzzy import SIMILARITY_THRESHOLD, nearest_match
from .keys import StorageKey
from .storage import FileSystemBackend, StorageBackend

logger = logging.getLogger(__name__)

KeyLike = Union[StorageKey, str]

_LOCK_STRIPES = 64


@dataclass
class CacheHit:
    """A cached artifact found by lookup."""

    path: str
    body: bytes
    fuzzy: bool = False


class CacheManager:
    """
    Exact-match response cache on top of a storage backend.

    Args:
        cache_dir: Root directory for the default FileSystemBackend
        backend: Storage backend to use instead of a FileSystemBackend
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        backend: Optional[StorageBackend] = None,
    ):
        if backend is None:
            if cache_dir is None:
                cache_dir = os.path.expanduser("~/.proxy_cache")
            backend = FileSystemBackend(cache_dir)
        self.backend = backend
        self.cache_dir = cache_dir

        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        # Bumped by every invalidation; guarded by the key's stripe lock
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._stats_lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "hits": 0,
            "fuzzy_hits": 0,
            "misses": 0,
            "writes": 0,
            "invalidations": 0,
            "write_errors": 0,
            "stale_writes": 0,
        }

    def _lock_for(self, key: KeyLike) -> threading.Lock:
        digest = zlib.crc32(str(key).encode("utf-8"))
        return self._locks[digest % _LOCK_STRIPES]

    def _count(self, name: str, amount: int = 1):
        with self._stats_lock:
            self._stats[name] += amount

    @staticmethod
    def path_for(key: KeyLike, tag: FormatTag) -> str:
        """Full storage path of an entry: key plus the format extension."""
        return str(key) + extension_for(tag)

    @staticmethod
    def candidate_paths(key: KeyLike) -> List[str]:
        """Every storage path an entry for key may live at, in lookup order."""
        return [str(key) + ext for ext in LOOKUP_EXTENSIONS]

    # Path-level operations

    def get(self, path: str) -> Tuple[bytes, bool]:
        """
        Read the artifact stored at path.

        Returns:
            Tuple of (body, found). body is empty when found is False.
        """
        try:
            if not self.backend.exists(path):
                return b"", False
            return self.backend.read(path), True
        except StorageError as e:
            # Removed between the existence check and the read
            logger.debug("Cache read failed for %s: %s", path, e)
            return b"", False

    def put(self, path: str, body: bytes) -> None:
        """
        Store body at path, replacing any existing artifact.

        Raises:
            StorageError: If directories cannot be created or the write fails
        """
        with self._lock_for(os.path.splitext(path)[0]):
            self.backend.write_atomic(path, body)

    def invalidate(self, path: str) -> bool:
        """
        Remove the artifact at path. Absent artifacts are not an error.

        Returns:
            True if an artifact was removed
        """
        with self._lock_for(os.path.splitext(path)[0]):
            return self.backend.delete(path)

    # Key-level operations

    def _find_exact(self, key: KeyLike) -> Optional[CacheHit]:
        for path in self.candidate_paths(key):
            body, found = self.get(path)
            if found:
                self._count("hits")
                return CacheHit(path=path, body=body)
        return None

    def lookup(self, key: KeyLike) -> Optional[CacheHit]:
        """Find the entry stored for key under any known format extension."""
        hit = self._find_exact(key)
        if hit is None:
            self._count("misses")
        return hit

    def generation(self, key: KeyLike) -> Tuple[int, int]:
        """
        Current invalidation generation of key.

        Capture it before fetching a response and pass it to store(); the
        write is dropped if key was invalidated or the cache cleared since.
        """
        with self._lock_for(key):
            return self._epoch, self._generations.get(str(key), 0)

    def store(
        self,
        key: KeyLike,
        tag: FormatTag,
        body: bytes,
        generation: Optional[Tuple[int, int]] = None,
    ) -> Optional[str]:
        """
        Write the entry for key, dropping artifacts stored under other formats.

        Args:
            key: Storage key
            tag: Format of body
            body: Response body
            generation: Value of generation(key) taken before the response
                was fetched; if the key has been invalidated since, nothing
                is written

        Returns:
            The storage path written, or None if the write was stale

        Raises:
            StorageError: If the write fails
        """
        path = self.path_for(key, tag)
        with self._lock_for(key):
            current = (self._epoch, self._generations.get(str(key), 0))
            if generation is not None and generation != current:
                self._count("stale_writes")
                return None
            try:
                self.backend.write_atomic(path, body)
                for other in self.candidate_paths(key):
                    if other != path:
                        self.backend.delete(other)
            except StorageError:
                self._count("write_errors")
                raise
        self._count("writes")
        return path

    def invalidate_key(self, key: KeyLike) -> int:
        """
        Remove every artifact stored for key.

        Returns:
            Number of artifacts removed

        Raises:
            StorageError: If an artifact exists but cannot be removed
        """
        removed = 0
        with self._lock_for(key):
            name = str(key)
            self._generations[name] = self._generations.get(name, 0) + 1
            for path in self.candidate_paths(key):
                if self.backend.delete(path):
                    removed += 1
        if removed:
            self._count("invalidations", removed)
        return removed

    def clear(self):
        """Remove all cached entries and reset statistics."""
        for lock in self._locks:
            lock.acquire()
        try:
            self._epoch += 1
            self._generations.clear()
        finally:
            for lock in self._locks:
                lock.release()
        self.backend.clear()
        with self._stats_lock:
            for name in self._stats:
                self._stats[name] = 0

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats["hits"] + stats["fuzzy_hits"] + stats["misses"]
        stats["hit_rate"] = (stats["hits"] + stats["fuzzy_hits"]) / lookups if lookups else 0.0
        stats["cache_dir"] = self.cache_dir
        return stats


class FuzzyCacheManager(CacheManager):
    """
    CacheManager that falls back to the most similar sibling entry.

    When no artifact exists for the exact key, sibling artifacts in the same
    directory are compared by edit distance on their base names and the best
    one is served if its similarity ratio exceeds the threshold.
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        backend: Optional[StorageBackend] = None,
        threshold: float = SIMILARITY_THRESHOLD,
    ):
        super().__init__(cache_dir=cache_dir, backend=backend)
        self.threshold = threshold

    def nearest_match(self, key: KeyLike) -> Tuple[Optional[str], bool]:
        """
        Find the closest stored sibling of key.

        Returns:
            Tuple of (path, found)
        """
        try:
            path, _ = nearest_match(self.backend, self.candidate_paths(key)[0], self.threshold)
        except StorageError as e:
            logger.warning("Fuzzy lookup failed for %s: %s", key, e)
            return None, False
        return path, path is not None

    def lookup(self, key: KeyLike) -> Optional[CacheHit]:
        hit = self._find_exact(key)
        if hit is not None:
            return hit

        path, found = self.nearest_match(key)
        if found:
            body, found = self.get(path)
            if found:
                self._count("fuzzy_hits")
                return CacheHit(path=path, body=body, fuzzy=True)

        self._count("misses")
        return None

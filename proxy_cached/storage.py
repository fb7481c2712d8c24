"""
Byte storage backends addressed by hierarchical paths.

Paths are '/'-separated strings relative to the backend root, e.g.
"DEV/API/GET/U1/items?a=1.json". Empty segments are ignored, so
"DEV/API/GET//items.json" and "DEV/API/GET/items.json" address the same
artifact. Keys differing only in where an empty segment falls (an empty
client identifier, a root path) can therefore share one artifact.
"." and ".." segments are rejected.
"""

import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Tuple

from .exceptions import StorageError

TEMP_SUFFIX = ".tmp"


def split_path(path: str) -> Tuple[str, ...]:
    """
    Split a storage path into its non-empty segments.

    Raises:
        StorageError: If the path is empty or contains '.' or '..' segments
    """
    segments = tuple(s for s in path.split("/") if s)
    if not segments:
        raise StorageError(f"Empty storage path: {path!r}")
    if any(s in (".", "..") for s in segments):
        raise StorageError(f"Unsafe storage path: {path!r}")
    return segments


class StorageBackend(ABC):
    """Interface of the byte store underneath the cache manager."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """True if a complete artifact is stored at path."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read a whole artifact. Raises StorageError if it cannot be read."""

    @abstractmethod
    def write_atomic(self, path: str, data: bytes) -> None:
        """Store data at path so readers see either the old or the new artifact."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove the artifact at path. Returns False if nothing was stored."""

    @abstractmethod
    def list_siblings(self, path: str) -> List[str]:
        """Names of the artifacts stored in the same directory as path, sorted."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored artifact."""


class FileSystemBackend(StorageBackend):
    """
    Stores each artifact as a regular file under a root directory.

    Writes go to a temporary file in the target directory which is then
    renamed over the destination, so a concurrent reader never sees a
    partially written file. Deleting an artifact also removes ancestor
    directories left empty, up to (not including) the root.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        # Serializes directory creation against empty-directory pruning
        self._tree_lock = threading.Lock()

    def _resolve(self, path: str) -> Path:
        return self.root.joinpath(*split_path(path))

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {target}: {e}") from e

    def write_atomic(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            with self._tree_lock:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, temp_name = tempfile.mkstemp(
                    dir=target.parent, prefix=".", suffix=TEMP_SUFFIX
                )
        except OSError as e:
            raise StorageError(f"Failed to create directories for {target}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, target)
        except OSError as e:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"Failed to write {target}: {e}") from e

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {target}: {e}") from e
        self._prune(target.parent)
        return True

    def _prune(self, directory: Path):
        """Remove empty directories from directory up towards the root."""
        with self._tree_lock:
            while directory != self.root and self.root in directory.parents:
                try:
                    directory.rmdir()
                except OSError:
                    # Not empty, or already gone
                    break
                directory = directory.parent

    def list_siblings(self, path: str) -> List[str]:
        directory = self._resolve(path).parent
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Failed to list {directory}: {e}") from e
        return sorted(
            entry.name for entry in entries
            if entry.is_file() and not entry.name.endswith(TEMP_SUFFIX)
        )

    def clear(self) -> None:
        with self._tree_lock:
            for child in self.root.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()


class MemoryBackend(StorageBackend):
    """In-process backend keeping artifacts in a dictionary."""

    def __init__(self):
        self._data: Dict[Tuple[str, ...], bytes] = {}
        self._lock = threading.Lock()

    def exists(self, path: str) -> bool:
        with self._lock:
            return split_path(path) in self._data

    def read(self, path: str) -> bytes:
        segments = split_path(path)
        with self._lock:
            try:
                return self._data[segments]
            except KeyError:
                raise StorageError(f"No artifact stored at {path!r}") from None

    def write_atomic(self, path: str, data: bytes) -> None:
        segments = split_path(path)
        with self._lock:
            self._data[segments] = bytes(data)

    def delete(self, path: str) -> bool:
        segments = split_path(path)
        with self._lock:
            return self._data.pop(segments, None) is not None

    def list_siblings(self, path: str) -> List[str]:
        parent = split_path(path)[:-1]
        with self._lock:
            return sorted(
                segments[-1] for segments in self._data
                if segments[:-1] == parent
            )

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

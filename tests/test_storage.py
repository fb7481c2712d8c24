"""
Unit tests for storage backends.
"""

import os
import tempfile
import shutil
from pathlib import Path

import pytest

from proxy_cached.exceptions import StorageError
from proxy_cached.storage import FileSystemBackend, MemoryBackend, split_path


@pytest.fixture
def temp_cache_dir():
    """Create a temporary cache directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(params=["filesystem", "memory"])
def backend(request, temp_cache_dir):
    """Each storage backend implementation."""
    if request.param == "filesystem":
        return FileSystemBackend(temp_cache_dir)
    return MemoryBackend()


class TestSplitPath:
    """Test storage path validation."""

    def test_empty_segments_collapse(self):
        assert split_path("DEV/API/GET//items.json") == ("DEV", "API", "GET", "items.json")

    @pytest.mark.parametrize("path", ["", "/", "a/../b.json", "./a.json", "DEV/.."])
    def test_rejected(self, path):
        with pytest.raises(StorageError):
            split_path(path)


class TestBackendContract:
    """Behaviour shared by all backends."""

    def test_write_then_read(self, backend):
        backend.write_atomic("DEV/API/GET/U1/items.json", b'{"x":1}')
        assert backend.exists("DEV/API/GET/U1/items.json")
        assert backend.read("DEV/API/GET/U1/items.json") == b'{"x":1}'

    def test_overwrite(self, backend):
        backend.write_atomic("a/b.json", b"old")
        backend.write_atomic("a/b.json", b"new")
        assert backend.read("a/b.json") == b"new"

    def test_missing(self, backend):
        assert not backend.exists("a/missing.json")
        with pytest.raises(StorageError):
            backend.read("a/missing.json")

    def test_delete(self, backend):
        backend.write_atomic("a/b.json", b"x")
        assert backend.delete("a/b.json") is True
        assert not backend.exists("a/b.json")
        assert backend.delete("a/b.json") is False

    def test_list_siblings_sorted(self, backend):
        for name in ["c.json", "a.json", "b.html"]:
            backend.write_atomic(f"dir/{name}", b"x")
        backend.write_atomic("dir/sub/deep.json", b"x")
        backend.write_atomic("other/z.json", b"x")
        assert backend.list_siblings("dir/anything.json") == ["a.json", "b.html", "c.json"]

    def test_list_siblings_missing_directory(self, backend):
        assert backend.list_siblings("nowhere/x.json") == []

    def test_clear(self, backend):
        backend.write_atomic("a/b.json", b"x")
        backend.write_atomic("c.json", b"y")
        backend.clear()
        assert not backend.exists("a/b.json")
        assert not backend.exists("c.json")


class TestFileSystemBackend:
    """Filesystem-specific behaviour."""

    def test_creates_ancestors(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("DEV/API/GET/U1/items?a=1&b=2.json", b"{}")
        target = Path(temp_cache_dir, "DEV", "API", "GET", "U1", "items?a=1&b=2.json")
        assert target.read_bytes() == b"{}"

    def test_no_temp_files_left(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("a/b.json", b"x" * 10000)
        assert os.listdir(os.path.join(temp_cache_dir, "a")) == ["b.json"]

    def test_temp_files_not_listed(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("a/b.json", b"x")
        Path(temp_cache_dir, "a", ".b.json123.tmp").write_bytes(b"partial")
        assert backend.list_siblings("a/b.json") == ["b.json"]

    def test_delete_prunes_empty_directories(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("DEV/API/GET/U1/items.json", b"x")
        backend.write_atomic("DEV/API/GET/U2/items.json", b"y")
        backend.delete("DEV/API/GET/U1/items.json")

        assert not Path(temp_cache_dir, "DEV", "API", "GET", "U1").exists()
        assert Path(temp_cache_dir, "DEV", "API", "GET", "U2", "items.json").exists()
        assert Path(temp_cache_dir).is_dir()

    def test_delete_last_entry_keeps_root(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("DEV/x.json", b"x")
        backend.delete("DEV/x.json")
        assert os.listdir(temp_cache_dir) == []

    def test_directory_is_not_an_artifact(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        backend.write_atomic("a/items/5.json", b"x")
        assert not backend.exists("a/items")

    def test_write_failure_raises_storage_error(self, temp_cache_dir):
        backend = FileSystemBackend(temp_cache_dir)
        # A regular file where a directory is needed
        backend.write_atomic("a.json", b"x")
        with pytest.raises(StorageError):
            backend.write_atomic("a.json/b.json", b"y")

import itertools
import threading
import json
from types import SimpleNamespace

import pytest

from pkgshot.cache import DiskBlobCache, MemoryBlobCache, ThumbnailStore
from pkgshot.errors import CacheReadFailure, CacheWriteFailure

KEY = "t:screenshot-p:python3-foo"


def test_disk_cache_write_then_read(tmp_path):
    cache = DiskBlobCache(str(tmp_path))
    assert not cache.exists(KEY)

    cache.write(KEY, b"raw")

    assert cache.exists(KEY)
    assert cache.read(KEY) == b"raw"


def test_disk_cache_persists_across_instances(tmp_path):
    DiskBlobCache(str(tmp_path)).write(KEY, b"raw")

    reopened = DiskBlobCache(str(tmp_path))
    assert reopened.exists(KEY)
    assert reopened.read(KEY) == b"raw"
    metadata = json.loads((tmp_path / "metadata.json").read_text())
    assert [entry["key"] for entry in metadata.values()] == [KEY]


def test_disk_cache_overwrites(tmp_path):
    cache = DiskBlobCache(str(tmp_path))
    cache.write(KEY, b"old")
    cache.write(KEY, b"new")
    assert cache.read(KEY) == b"new"


def test_disk_cache_missing_key(tmp_path):
    with pytest.raises(CacheReadFailure):
        DiskBlobCache(str(tmp_path)).read(KEY)


def test_disk_cache_entry_without_file_is_not_cached(tmp_path):
    cache = DiskBlobCache(str(tmp_path))
    cache.write(KEY, b"raw")
    for blob_file in tmp_path.glob("*.bin"):
        blob_file.unlink()
    assert not cache.exists(KEY)


def test_disk_cache_corrupt_metadata_starts_empty(tmp_path):
    (tmp_path / "metadata.json").write_text("{not json")
    assert DiskBlobCache(str(tmp_path)).metadata == {}


def test_disk_cache_write_failure(tmp_path):
    cache = DiskBlobCache(str(tmp_path))
    cache.cache_dir = tmp_path / "missing"
    with pytest.raises(CacheWriteFailure):
        cache.write(KEY, b"raw")


def test_disk_cache_evicts_least_recently_used(tmp_path, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr("pkgshot.cache.time", SimpleNamespace(time=lambda: next(clock)))
    cache = DiskBlobCache(str(tmp_path), max_files=2)

    cache.write("a", b"1")
    cache.write("b", b"2")
    cache.read("a")
    cache.write("c", b"3")

    assert cache.exists("a")
    assert not cache.exists("b")
    assert cache.exists("c")
    assert len(list(tmp_path.glob("*.bin"))) == 2


def test_disk_cache_evicts_by_size(tmp_path):
    cache = DiskBlobCache(str(tmp_path), max_size_mb=1)
    cache.write("a", b"x" * 700 * 1024)
    cache.write("b", b"y" * 700 * 1024)

    assert not cache.exists("a")
    assert cache.exists("b")


def test_memory_cache():
    cache = MemoryBlobCache()
    assert not cache.exists(KEY)
    cache.write(KEY, b"raw")
    assert cache.read(KEY) == b"raw"
    with pytest.raises(CacheReadFailure):
        cache.read("other")


def test_thumbnail_store_paths(tmp_path):
    store = ThumbnailStore(tmp_path)
    assert store.relative_path("python3-foo") == "thumbnails/python3-foo.png"
    assert store.path("python3-foo") == tmp_path / "thumbnails" / "python3-foo.png"


def test_thumbnail_store_write_creates_directories(tmp_path):
    store = ThumbnailStore(tmp_path / "public" / "images")
    written = store.write("kernel-default", b"png")

    assert written == store.path("kernel-default")
    assert store.exists("kernel-default")
    assert store.read("kernel-default") == b"png"


def test_thumbnail_store_missing(tmp_path):
    with pytest.raises(CacheReadFailure):
        ThumbnailStore(tmp_path).read("nope")


def test_disk_cache_concurrent_writers(tmp_path):
    cache = DiskBlobCache(str(tmp_path))
    errors = []

    def writer(n):
        for i in range(100):
            try:
                cache.write(f"t:screenshot-p:pkg{n}-{i}", b"x")
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert all(cache.exists(f"t:screenshot-p:pkg{n}-{i}") for n in range(4) for i in range(100))
    metadata = json.loads((tmp_path / "metadata.json").read_text())
    assert len(metadata) == 400
    assert list(tmp_path.glob("*.tmp")) == []


def test_disk_cache_exists_counts_as_use(tmp_path, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr("pkgshot.cache.time", SimpleNamespace(time=lambda: next(clock)))
    cache = DiskBlobCache(str(tmp_path), max_files=2)

    cache.write("a", b"1")
    cache.write("b", b"2")
    assert cache.exists("a")
    cache.write("c", b"3")

    assert cache.exists("a")
    assert not cache.exists("b")


def test_disk_cache_access_order_survives_restart(tmp_path, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr("pkgshot.cache.time", SimpleNamespace(time=lambda: next(clock)))
    cache = DiskBlobCache(str(tmp_path), access_save_interval=0)
    cache.write("a", b"1")
    cache.write("b", b"2")
    cache.read("a")

    reopened = DiskBlobCache(str(tmp_path), max_files=2)
    reopened.write("c", b"3")

    assert reopened.exists("a")
    assert not reopened.exists("b")


def test_disk_cache_shared_between_instances(tmp_path):
    first = DiskBlobCache(str(tmp_path))
    second = DiskBlobCache(str(tmp_path))

    first.write("a", b"from first")
    assert second.exists("a")
    assert second.read("a") == b"from first"

    second.write("b", b"from second")
    first.write("c", b"again")

    metadata = json.loads((tmp_path / "metadata.json").read_text())
    assert sorted(entry["key"] for entry in metadata.values()) == ["a", "b", "c"]


@pytest.mark.parametrize("pkg_name", ["../../../escaped", "foo/bar", "..\\foo", ""])
def test_thumbnail_store_rejects_names_leaving_directory(tmp_path, pkg_name):
    store = ThumbnailStore(tmp_path / "public" / "images")
    with pytest.raises(ValueError):
        store.write(pkg_name, b"png")
    assert list(tmp_path.rglob("*.png")) == []

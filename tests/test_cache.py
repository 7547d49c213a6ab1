"""Tests for the persisted mtime cache."""

import json
import os
import stat
from pathlib import Path

import pytest

from image_to_avif.cache import (
    CACHE_FILE_NAME,
    CacheLoadError,
    CacheSaveError,
    MtimeCache,
    read_cache_file,
)


# ── Loading ──────────────────────────────────────────────────────────


def test_load_missing_file_is_empty(tmp_path: Path):
    cache = MtimeCache.load(tmp_path / "cache")
    assert len(cache) == 0
    assert cache.cache_file == tmp_path / "cache" / CACHE_FILE_NAME


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", '"text"'])
def test_load_corrupt_file_is_empty(tmp_path: Path, content: str):
    (tmp_path / CACHE_FILE_NAME).write_text(content)
    cache = MtimeCache.load(tmp_path)
    assert len(cache) == 0


def test_read_cache_file_raises_on_corrupt(tmp_path: Path):
    cache_file = tmp_path / CACHE_FILE_NAME
    cache_file.write_text("{not json")
    with pytest.raises(CacheLoadError):
        read_cache_file(cache_file)


def test_load_drops_non_numeric_entries(tmp_path: Path):
    (tmp_path / CACHE_FILE_NAME).write_text(
        json.dumps({"/a.png": 1.5, "/b.png": "yesterday", "/c.png": True})
    )
    cache = MtimeCache.load(tmp_path)
    assert cache.snapshot() == {"/a.png": 1.5}


# ── Decisions ────────────────────────────────────────────────────────


def test_is_unchanged_requires_exact_match(tmp_path: Path):
    cache = MtimeCache(cache_file=tmp_path / CACHE_FILE_NAME)
    assert not cache.is_unchanged("/a.png", 1000.25)

    cache.record("/a.png", 1000.25)
    assert cache.is_unchanged("/a.png", 1000.25)
    assert not cache.is_unchanged("/a.png", 1000.251)
    assert not cache.is_unchanged("/b.png", 1000.25)


def test_record_overwrites(tmp_path: Path):
    cache = MtimeCache(cache_file=tmp_path / CACHE_FILE_NAME)
    cache.record("/a.png", 1.0)
    cache.record("/a.png", 2.0)
    assert cache.snapshot() == {"/a.png": 2.0}


# ── Saving ───────────────────────────────────────────────────────────


def test_save_creates_directory_and_round_trips(tmp_path: Path):
    cache_dir = tmp_path / "deep" / "cache"
    cache = MtimeCache.load(cache_dir)
    cache.record("/src/a.png", 1712345678901.123)
    cache.record("/src/b.png", 1712345678902.0)
    cache.save()

    reloaded = MtimeCache.load(cache_dir)
    assert reloaded.snapshot() == cache.snapshot()
    assert reloaded.is_unchanged("/src/a.png", 1712345678901.123)
    assert list(tmp_path.joinpath("deep", "cache").iterdir()) == [
        cache_dir / CACHE_FILE_NAME
    ]


def test_save_overwrites_previous_content(tmp_path: Path):
    (tmp_path / CACHE_FILE_NAME).write_text(json.dumps({"/old.png": 1}))
    cache = MtimeCache(cache_file=tmp_path / CACHE_FILE_NAME)
    cache.record("/new.png", 2)
    cache.save()
    assert json.loads((tmp_path / CACHE_FILE_NAME).read_text()) == {"/new.png": 2}


def test_save_failure_raises_cache_save_error(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    cache = MtimeCache(cache_file=blocker / "cache" / CACHE_FILE_NAME)
    with pytest.raises(CacheSaveError):
        cache.save()


def test_prune_removes_missing_sources(tmp_path: Path):
    present = tmp_path / "a.png"
    present.write_bytes(b"x")
    cache = MtimeCache(cache_file=tmp_path / CACHE_FILE_NAME)
    cache.record(str(present), 1.0)
    cache.record(str(tmp_path / "gone.png"), 2.0)

    assert cache.prune(lambda p: Path(p).exists()) == 1
    assert cache.snapshot() == {str(present): 1.0}


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
def test_save_uses_umask_mode(tmp_path: Path):
    old = os.umask(0o022)
    try:
        cache = MtimeCache(cache_file=tmp_path / CACHE_FILE_NAME)
        cache.record("/a.png", 1.0)
        cache.save()
    finally:
        os.umask(old)
    assert stat.S_IMODE((tmp_path / CACHE_FILE_NAME).stat().st_mode) == 0o644

# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import json
import os
import tempfile
import threading
from logging import getLogger
from pathlib import Path
from typing import Callable, Dict

from attrs import define, field

logger = getLogger(__name__)

CACHE_FILE_NAME = "image-mtimes.json"


def current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


class CacheLoadError(Exception):
    pass


class CacheSaveError(Exception):
    pass


def read_cache_file(cache_file: Path) -> Dict[str, float]:
    """Parse the cache file into a mapping of path -> mtime in ms

    Raises:
        FileNotFoundError: No cache file yet.
        CacheLoadError: File unreadable or not a JSON object.
    """
    try:
        with open(cache_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise
    except (OSError, ValueError) as e:
        raise CacheLoadError(f"Cannot load cache {cache_file}: {e}") from e

    if not isinstance(data, dict):
        raise CacheLoadError(f"Cache {cache_file} does not contain a JSON object.")

    entries: Dict[str, float] = {}
    for path, mtime in data.items():
        # bool is an int subclass but never a valid mtime
        if isinstance(mtime, (int, float)) and not isinstance(mtime, bool):
            entries[path] = mtime
        else:
            logger.debug("Dropping malformed cache entry for %s", path)
    return entries


@define
class MtimeCache:
    """Normalized source path -> mtime (ms) of its last successful conversion.

    Loaded once per run, mutated from the converter threads and saved once at
    the end. All access to the mapping goes through the lock.
    """

    cache_file: Path
    entries: Dict[str, float] = field(factory=dict)
    _lock: threading.Lock = field(factory=threading.Lock, init=False, repr=False)

    @classmethod
    def load(cls, cache_dir: Path) -> "MtimeCache":
        """Never fails, an unusable cache file just means reconvert everything"""
        cache_file = Path(cache_dir) / CACHE_FILE_NAME
        try:
            entries = read_cache_file(cache_file)
        except FileNotFoundError:
            logger.debug("No cache at %s, starting empty", cache_file)
            entries = {}
        except CacheLoadError as e:
            logger.error("Failed to load cache: %s", e)
            entries = {}
        logger.info("Loaded %d cache entries", len(entries))
        return cls(cache_file=cache_file, entries=entries)

    def is_unchanged(self, path: str, mtime: float) -> bool:
        with self._lock:
            return path in self.entries and self.entries[path] == mtime

    def record(self, path: str, mtime: float) -> None:
        with self._lock:
            self.entries[path] = mtime

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return dict(self.entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self.entries)

    def prune(self, exists: Callable[[str], bool]) -> int:
        """Drop entries whose source file has gone, returns how many"""
        with self._lock:
            gone = [path for path in self.entries if not exists(path)]
            for path in gone:
                del self.entries[path]
        if gone:
            logger.info("Pruned %d stale cache entries", len(gone))
        return len(gone)

    def save(self) -> None:
        """Write the whole mapping, replacing the previous file in one step

        Raises:
            CacheSaveError: Directory or file could not be written.
        """
        entries = self.snapshot()
        cache_dir = self.cache_file.parent
        try:
            cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=cache_dir, prefix=".image-mtimes-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entries, f, indent=2)
                # mkstemp creates 0600, give the cache the usual umask mode
                os.chmod(tmp_name, 0o666 & ~current_umask())
                os.replace(tmp_name, self.cache_file)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            raise CacheSaveError(f"Cannot save cache {self.cache_file}: {e}") from e
        logger.debug("Saved %d cache entries to %s", len(entries), self.cache_file)

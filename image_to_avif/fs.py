# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
from pathlib import Path
from typing import List, Tuple

from attrs import define


def sp(path: Path) -> str:
    """Shorten path to parent and filename"""
    path_list = str(path).split(os.sep)
    return "." + os.sep + os.sep.join(path_list[-2:])


def normalize(path: Path) -> str:
    """Canonical absolute form of path, used as the cache key"""
    return os.path.normpath(os.path.abspath(path))


class FileSystemError(Exception):
    pass


class DirectoryReadError(FileSystemError):
    pass


class FileStatError(FileSystemError):
    pass


@define
class DirEntry:
    path: Path
    is_dir: bool
    is_file: bool


@define
class LocalFileSystem:
    """The few filesystem calls the indexer and worker need.

    Every OSError is re-raised as a FileSystemError subclass so callers only
    have to handle one family of exceptions.
    """

    def scandir(self, directory: Path) -> List[DirEntry]:
        try:
            with os.scandir(directory) as it:
                return [
                    DirEntry(
                        path=Path(entry.path),
                        is_dir=entry.is_dir(),
                        is_file=entry.is_file(),
                    )
                    for entry in it
                ]
        except OSError as e:
            raise DirectoryReadError(f"Cannot read directory {directory}: {e}") from e

    def dir_key(self, directory: Path) -> Tuple[int, int]:
        try:
            st = os.stat(directory)
        except OSError as e:
            raise DirectoryReadError(f"Cannot stat directory {directory}: {e}") from e
        return st.st_dev, st.st_ino

    def mtime_ms(self, path: Path) -> float:
        """Modification time in milliseconds since the epoch"""
        try:
            return os.stat(path).st_mtime_ns / 1_000_000
        except OSError as e:
            raise FileStatError(f"Cannot stat {path}: {e}") from e

    def exists(self, path: Path) -> bool:
        return os.path.exists(path)

    def makedirs(self, directory: Path) -> None:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise FileSystemError(f"Cannot create directory {directory}: {e}") from e

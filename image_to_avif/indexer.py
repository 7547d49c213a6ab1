# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import re
from logging import getLogger
from pathlib import Path
from typing import Iterable, List, Pattern, Set, Tuple

from attrs import define, field

from .fs import FileSystemError, LocalFileSystem, sp

logger = getLogger(__name__)


def extensions_pattern(extensions: Iterable[str]) -> Pattern[str]:
    """Build the case-insensitive suffix pattern e.g. \\.(png|jpg)$"""
    extensions = list(extensions)
    if not extensions:
        raise ValueError("No file extensions to match")
    alternatives = "|".join(re.escape(ext.lstrip(".")) for ext in extensions)
    return re.compile(rf"\.({alternatives})$", re.IGNORECASE)


@define
class Indexer:
    extensions: Tuple[str, ...]
    fs: LocalFileSystem = field(factory=LocalFileSystem)
    pattern: Pattern[str] = field(init=False)

    def __attrs_post_init__(self) -> None:
        self.pattern = extensions_pattern(self.extensions)

    def matches(self, name: str) -> bool:
        return self.pattern.search(name) is not None

    def index(self, root: Path) -> List[Path]:
        """Return every matching file beneath root, recursing without limit.

        Raises:
            DirectoryReadError: root itself could not be read.
        """
        root = Path(root).absolute()
        visited: Set[Tuple[int, int]] = {self.fs.dir_key(root)}
        # The root must be readable, subdirectories are best effort
        pending: List[Tuple[Path, List]] = [(root, self.fs.scandir(root))]
        found: List[Path] = []

        while pending:
            directory, entries = pending.pop()
            logger.debug("Indexing '%s'", str(directory))
            for entry in entries:
                if entry.is_dir:
                    try:
                        key = self.fs.dir_key(entry.path)
                        if key in visited:
                            logger.debug("  Already visited %s", sp(entry.path))
                            continue
                        visited.add(key)
                        pending.append((entry.path, self.fs.scandir(entry.path)))
                    except FileSystemError as e:
                        logger.error("  Skipping subtree %s: %s", sp(entry.path), e)
                elif entry.is_file and self.matches(entry.path.name):
                    found.append(entry.path)

        found.sort()
        return found

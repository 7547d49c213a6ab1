# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import enum
import os
from logging import getLogger
from pathlib import Path
from typing import Optional

from attrs import define, field

from .cache import MtimeCache
from .codec import Codec
from .fs import FileSystemError, LocalFileSystem, normalize, sp

logger = getLogger(__name__)


class Status(enum.Enum):
    CONVERTED = "converted"
    SKIPPED = "skipped"
    FAILED = "failed"


@define(frozen=True)
class Outcome:
    path: str
    status: Status
    output: Optional[Path] = None
    reason: Optional[str] = None


def output_path(
    src: str, output_dir: Path, base_dir: Path, preserve_structure: bool, suffix: str
) -> Path:
    """Where the converted src goes.

    The suffix is appended to the full file name, photo.png -> photo.png.avif.
    Without preserve_structure every file lands directly in output_dir, so two
    sources sharing a base name write to the same output and the last one wins.
    """
    if preserve_structure:
        relative = os.path.relpath(src, base_dir)
    else:
        relative = os.path.basename(src)
    return Path(os.path.normpath(os.path.join(output_dir, relative + suffix)))


@define
class Worker:
    cache: MtimeCache
    codec: Codec
    quality: int
    output_dir: Path
    base_dir: Path
    preserve_structure: bool = True
    output_suffix: str = ".avif"
    fs: LocalFileSystem = field(factory=LocalFileSystem)

    def process(self, path: Path) -> Outcome:
        """Convert one file unless the cache says it has not changed.

        Per-file problems come back as a FAILED Outcome, they are never raised.
        """
        key = normalize(path)

        try:
            mtime = self.fs.mtime_ms(Path(key))
        except FileSystemError as e:
            logger.error("Failed %s: %s", sp(key), e)
            return Outcome(path=key, status=Status.FAILED, reason=str(e))

        if self.cache.is_unchanged(key, mtime):
            logger.info("Skipping %s, already converted", sp(key))
            return Outcome(path=key, status=Status.SKIPPED)

        tgt = output_path(
            key,
            self.output_dir,
            self.base_dir,
            self.preserve_structure,
            self.output_suffix,
        )

        try:
            self.fs.makedirs(tgt.parent)
            self.codec.encode(Path(key), tgt, self.quality)
        except Exception as e:
            # Anything from the codec is a per-file failure, retried next run
            logger.error("Failed to convert %s: %s", sp(key), e)
            return Outcome(path=key, status=Status.FAILED, output=tgt, reason=str(e))

        self.cache.record(key, mtime)
        logger.info("Converted %s -> %s", sp(key), sp(tgt))
        return Outcome(path=key, status=Status.CONVERTED, output=tgt)

# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from concurrent.futures import Future, wait
from logging import getLogger
from pathlib import Path
from typing import List, Sequence

from attrs import define, field

from .cache import CacheSaveError, MtimeCache
from .fs import FileSystemError, LocalFileSystem, normalize
from .indexer import Indexer
from .limiter import Limiter
from .worker import Outcome, Status, Worker

logger = getLogger(__name__)


@define
class RunReport:
    outcomes: List[Outcome] = field(factory=list)
    errors: int = 0  # worker raised instead of returning an Outcome
    failed_roots: List[Path] = field(factory=list)
    cache_saved: bool = False

    def count(self, status: Status) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def converted(self) -> int:
        return self.count(Status.CONVERTED)

    @property
    def skipped(self) -> int:
        return self.count(Status.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(Status.FAILED)


@define
class Runner:
    roots: Sequence[Path]
    base_dir: Path
    indexer: Indexer
    worker: Worker
    limiter: Limiter
    cache: MtimeCache
    prune_cache: bool = False
    fs: LocalFileSystem = field(factory=LocalFileSystem)

    def _run_root(self, root: Path, report: RunReport) -> None:
        try:
            files = self.indexer.index(root)
        except FileSystemError as e:
            logger.error("Failed to index %s: %s", str(root), e)
            report.failed_roots.append(root)
            return
        logger.info("Found %d images in %s", len(files), str(root))

        futures: List[Future] = [
            self.limiter.schedule(lambda f=f: self.worker.process(f)) for f in files
        ]
        # Settle every future, one failure must not cancel its siblings
        wait(futures)
        for future in futures:
            exc = future.exception()
            if exc is not None:
                logger.error("Error processing a file: %s", exc, exc_info=exc)
                report.errors += 1
            else:
                report.outcomes.append(future.result())

    def run(self) -> RunReport:
        report = RunReport()
        for root in self.roots:
            self._run_root(Path(normalize(Path(self.base_dir, root))), report)

        # Only after every conversion across every root has settled
        if self.prune_cache:
            self.cache.prune(self.fs.exists)
        try:
            self.cache.save()
            report.cache_saved = True
        except CacheSaveError as e:
            logger.error("Failed to save cache: %s", e)

        logger.info(
            "%d converted, %d skipped, %d failed",
            report.converted,
            report.skipped,
            report.failed + report.errors,
        )
        return report

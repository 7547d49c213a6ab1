# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from logging import getLogger
from pathlib import Path

from attrs import define, field

from .cache import MtimeCache
from .config import PLUGIN_NAME, RunConfiguration
from .fs import LocalFileSystem
from .indexer import Indexer
from .limiter import Limiter
from .runner import RunReport, Runner
from .worker import Worker

logger = getLogger(__name__)


@define
class AvifPlugin:
    """Build hook converting source images to AVIF once the build has finished.

    Registered late (`enforce = "post"`) so it sees every emitted asset. A
    fresh cache, thread pool and runner are built for each call and discarded
    afterwards, nothing is shared between runs.
    """

    config: RunConfiguration = field(factory=RunConfiguration)
    fs: LocalFileSystem = field(factory=LocalFileSystem)
    name: str = field(default=PLUGIN_NAME, init=False)
    enforce: str = field(default="post", init=False)

    def build_end(self) -> RunReport:
        config = self.config
        logger.info(
            "%s: converting %s into %s",
            self.name,
            ", ".join(config.source_paths),
            str(config.resolved_output_dir),
        )
        cache = MtimeCache.load(config.resolved_cache_dir)
        with Limiter(config.concurrency) as limiter:
            worker = Worker(
                cache=cache,
                codec=config.codec,
                quality=config.quality,
                output_dir=config.resolved_output_dir,
                base_dir=config.base_dir,
                preserve_structure=config.preserve_structure,
                output_suffix=config.output_suffix,
                fs=self.fs,
            )
            runner = Runner(
                roots=[Path(root) for root in config.source_paths],
                base_dir=config.base_dir,
                indexer=Indexer(extensions=config.image_extensions, fs=self.fs),
                worker=worker,
                limiter=limiter,
                cache=cache,
                prune_cache=config.prune_cache,
                fs=self.fs,
            )
            return runner.run()

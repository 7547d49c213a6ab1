# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from logging import getLogger
from typing import Callable, TypeVar

from attrs import define, field

from .config import validate_pos_int

logger = getLogger(__name__)

T = TypeVar("T")


@define
class Limiter:
    """At most `ceiling` tasks run at once, the rest wait in submission order.

    The executor's work queue is FIFO and a worker thread picks up the next
    queued task whether the previous one returned or raised.
    """

    ceiling: int = field(converter=validate_pos_int)
    pool: ThreadPoolExecutor = field(init=False)
    running: int = field(init=False, default=0)
    peak: int = field(init=False, default=0)
    _lock: threading.Lock = field(factory=threading.Lock, init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self.pool = ThreadPoolExecutor(
            max_workers=self.ceiling, thread_name_prefix="convert"
        )
        logger.debug("Converter threadpool created. Size: %d", self.ceiling)

    def _enter(self) -> None:
        with self._lock:
            self.running += 1
            self.peak = max(self.peak, self.running)

    def _exit(self) -> None:
        with self._lock:
            self.running -= 1

    def _run(self, task: Callable[[], T]) -> T:
        self._enter()
        try:
            return task()
        finally:
            self._exit()

    def schedule(self, task: Callable[[], T]) -> "Future[T]":
        return self.pool.submit(self._run, task)

    def shutdown(self) -> None:
        self.pool.shutdown(wait=True, cancel_futures=False)

    def __enter__(self) -> "Limiter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

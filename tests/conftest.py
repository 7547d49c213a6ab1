"""Shared test fixtures for image-to-avif."""

import os
import threading
import time
from pathlib import Path

import pytest

from image_to_avif.codec import CodecError
from image_to_avif.config import RunConfiguration
from image_to_avif.plugin import AvifPlugin


class FakeCodec:
    """Writes a marker file instead of encoding, remembering every call."""

    def __init__(self, fail_on=(), delay=0.0):
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def encode(self, src, tgt, quality):
        with self._lock:
            self.calls.append((Path(src), Path(tgt), quality))
        if self.delay:
            time.sleep(self.delay)
        if Path(src).name in self.fail_on:
            raise CodecError(f"cannot decode {src}")
        Path(tgt).write_bytes(b"AVIF:" + Path(src).read_bytes())

    @property
    def sources(self):
        return sorted(src.name for src, _, _ in self.calls)


def touch(path: Path, content: bytes = b"pixels", mtime_ns: int = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


@pytest.fixture
def codec():
    return FakeCodec()


@pytest.fixture
def make_plugin(tmp_path):
    def _make(codec, **overrides):
        kwargs = dict(base_dir=tmp_path, output_dir=Path("out"), codec=codec)
        kwargs.update(overrides)
        return AvifPlugin(config=RunConfiguration(**kwargs))

    return _make

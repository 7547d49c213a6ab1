# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
import shutil
import subprocess
import tempfile
from logging import getLogger
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from attrs import define, field
from PIL import Image, UnidentifiedImageError

logger = getLogger(__name__)


class CodecError(Exception):
    pass


class Codec(Protocol):
    def encode(self, src: Path, tgt: Path, quality: int) -> None:
        """Write src encoded at quality to tgt, raising on any failure"""


@define
class PillowCodec:
    """Encode with Pillow's AVIF plugin (libavif)"""

    speed: Optional[int] = None

    def encode(self, src: Path, tgt: Path, quality: int) -> None:
        params: Dict[str, int] = {"quality": quality}
        if self.speed is not None:
            params["speed"] = self.speed
        try:
            with Image.open(src) as img:
                img.save(tgt, format="AVIF", **params)
        except UnidentifiedImageError as e:
            raise CodecError(f"{src} is not a recognised image.") from e
        except (OSError, KeyError, ValueError) as e:
            # KeyError is what Pillow raises for a format it has no encoder for
            raise CodecError(f"Pillow could not encode {src}: {e!r}") from e


@define
class CommandCodec:
    """Run an external converter, e.g. avifenc, through a command template.

    `cmd` is split on whitespace and each token formatted with {input},
    {output}, {quality} and any extra `cmd_args`. The converter writes into a
    temporary directory and the result is copied into place only on success.
    """

    exe: Path
    cmd: str
    cmd_args: Dict[str, Union[int, str]] = field(factory=dict)

    def build_cmd(self, src: Path, tmptgt: str, quality: int) -> List[str]:
        cmd_pre: List[str] = [str(self.exe)] + self.cmd.split()
        fields: Dict[str, Union[int, str]] = {
            "input": str(src),
            "output": tmptgt,
            "quality": quality,
        }
        fields.update(self.cmd_args)
        return [token.format_map(fields) for token in cmd_pre]

    def encode(self, src: Path, tgt: Path, quality: int) -> None:
        with tempfile.TemporaryDirectory(prefix="image-to-avif-") as tmpdir:
            tmptgt = tmpdir + os.sep + str(tgt.name)
            cmd = self.build_cmd(src, tmptgt, quality)
            logger.debug("Conversion cmd: %s", cmd)
            try:
                subprocess.run(cmd, capture_output=True, check=True)
            except subprocess.CalledProcessError as e:
                stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
                raise CodecError(
                    f"{self.exe} exited with {e.returncode}: {stderr}"
                ) from e
            except OSError as e:
                raise CodecError(f"Could not run {self.exe}: {e}") from e
            try:
                shutil.copyfile(tmptgt, tgt)
            except OSError as e:
                raise CodecError(f"Converter produced no usable output: {e}") from e

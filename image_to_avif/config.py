# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import re
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import tomli
from attrs import converters, define, field, validators

from .codec import Codec, CommandCodec, PillowCodec

logger = getLogger(__name__)

PLUGIN_NAME = "image-to-avif"
CONFIG_FILE_NAME = "image-to-avif.toml"

DEFAULT_EXTENSIONS = ("png", "jpg", "jpeg", "webp", "tiff", "heic")
DEFAULT_CONCURRENCY = 5


class ConfigException(Exception):
    pass


def validate_pos_int(var_: Any) -> int:
    """Validate var is a positive integer, bools and floats are rejected"""
    if isinstance(var_, bool) or not isinstance(var_, int):
        raise ValueError(f"{var_!r} is not an integer.")
    if var_ < 1:
        raise ValueError(f"{var_} is not a positive integer.")
    return var_


def validate_extensions(extensions: Iterable[Any]) -> Tuple[str, ...]:
    pattern = re.compile(r"^\.?[\w]+$")
    if isinstance(extensions, str):
        raise ValueError("File extensions must be a list e.g. [\"png\", \"jpg\"]")
    extensions = tuple(extensions)
    if not extensions:
        raise ValueError("At least one file extension must be configured")
    for ext in extensions:
        if not isinstance(ext, str) or not pattern.match(ext):
            raise ValueError("File extensions must be of the form a-z0-9")
    return tuple(ext.lstrip(".") for ext in extensions)


def validate_suffix(suffix: Any) -> str:
    if not isinstance(suffix, str) or not re.match(r"^\.[\w]+$", suffix):
        raise ValueError(f"{suffix!r} is not a file suffix of the form .a-z0-9")
    return suffix


def concurrency_or_default(value: Any) -> int:
    """A bad concurrency is not worth failing a build over"""
    try:
        return validate_pos_int(value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid concurrency %r, using %d instead.", value, DEFAULT_CONCURRENCY
        )
        return DEFAULT_CONCURRENCY


def validate_quality(_, attribute, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ValueError(f"{attribute.name} must be an integer 0-100, got {value!r}")


def _source_paths(value: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


@define(frozen=True)
class RunConfiguration:
    """Everything a run needs, fixed when the plugin is constructed.

    Relative output_dir and cache_dir are resolved against base_dir, which
    defaults to the process working directory.
    """

    source_paths: Tuple[str, ...] = field(default=("src",), converter=_source_paths)
    quality: int = field(default=80, validator=validate_quality)
    output_dir: Optional[Path] = field(
        default=None, converter=converters.optional(Path)
    )
    image_extensions: Tuple[str, ...] = field(
        default=DEFAULT_EXTENSIONS, converter=validate_extensions
    )
    concurrency: int = field(
        default=DEFAULT_CONCURRENCY, converter=concurrency_or_default
    )
    cache_dir: Optional[Path] = field(
        default=None, converter=converters.optional(Path)
    )
    preserve_structure: bool = field(
        default=True, validator=validators.instance_of(bool)
    )
    output_suffix: str = field(default=".avif", converter=validate_suffix)
    prune_cache: bool = field(default=False, validator=validators.instance_of(bool))
    base_dir: Path = field(factory=Path.cwd, converter=lambda p: Path(p).absolute())
    codec: Codec = field(factory=PillowCodec)

    @property
    def resolved_output_dir(self) -> Path:
        if self.output_dir is None:
            return self.base_dir
        return self.base_dir / self.output_dir.expanduser()

    @property
    def resolved_cache_dir(self) -> Path:
        if self.cache_dir is None:
            return self.base_dir / ".cache" / PLUGIN_NAME
        return self.base_dir / self.cache_dir.expanduser()

    @classmethod
    def from_mapping(
        cls, toml_dict: Dict[str, Any], base_dir: Optional[Path] = None
    ) -> "RunConfiguration":
        """Build a configuration from a parsed config file

        Raises:
            ConfigException: Config is not correct
        """
        logger.debug("Config: %s", str(toml_dict))
        kwargs: Dict[str, Any] = {}
        if base_dir is not None:
            kwargs["base_dir"] = base_dir

        for key in (
            "source_paths",
            "quality",
            "image_extensions",
            "concurrency",
            "preserve_structure",
            "output_suffix",
            "prune_cache",
            "output_dir",
            "cache_dir",
        ):
            if key in toml_dict:
                kwargs[key] = toml_dict[key]

        codec_dict = toml_dict.get("codec", {})
        if not isinstance(codec_dict, dict):
            raise ConfigException("codec must be a table e.g. [codec].")
        kwargs["codec"] = codec_from_mapping(codec_dict)

        try:
            return cls(**kwargs)
        except (TypeError, ValueError) as e:
            raise ConfigException(f"Invalid configuration: {e}") from e

    @classmethod
    def from_toml(
        cls, config_path: Path, base_dir: Optional[Path] = None
    ) -> "RunConfiguration":
        """Read the config file and build the configuration from it

        Raises:
            FileNotFoundError: Config file not found at the config_path.
            PermissionError: File at config_path is not readable.
            ConfigException: Config file is not valid TOML or is not correct
        """
        with open(config_path, "rb") as f:  # tomli requires "rb"
            try:
                toml_dict = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigException(
                    f"Config '{config_path}' does not contain valid TOML."
                ) from e
        return cls.from_mapping(toml_dict, base_dir=base_dir)


def codec_from_mapping(codec_dict: Dict[str, Any]) -> Codec:
    kind = codec_dict.get("kind", "pillow")
    if kind == "pillow":
        return PillowCodec(speed=codec_dict.get("speed"))
    if kind != "command":
        raise ConfigException(
            f"codec.kind must be 'pillow' or 'command', not {kind!r}."
        )

    try:
        exe = Path(codec_dict["exe"]).expanduser()
    except KeyError as e:
        raise ConfigException(
            "codec.exe=<path to converter> must be defined for a command codec."
        ) from e
    if not exe.is_file():
        raise ConfigException(f"{exe} is not a file or does not exist.")

    try:
        cmd = codec_dict["cmd"]
    except KeyError as e:
        raise ConfigException(
            "codec.cmd=<command> must be defined for a command codec."
        ) from e
    if not isinstance(cmd, str):
        raise ConfigException("codec.cmd must be a string e.g. \"{input} {output}\".")

    cmd_args = codec_dict.get("cmd_args", {})
    if not isinstance(cmd_args, dict):
        raise ConfigException("codec.cmd_args must be a table of template fields.")
    cmd_args = dict(cmd_args)
    return CommandCodec(exe=exe, cmd=cmd, cmd_args=cmd_args)

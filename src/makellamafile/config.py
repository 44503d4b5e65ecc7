"""
Configuration resolution for makellamafile.

Effective settings are merged from three sources, lowest precedence first:
    built-in defaults < config file < command-line flags

The config file is dotenv style:

    # makellamafile configuration
    OUTPUT_DIR="/home/me/models/llamafiles"
    DOWNLOAD_DIR="/home/me/models/huggingface"
    LLAMAFILE_ARGS="--ctx-size 4096"

Unknown keys are ignored. A missing config file simply means defaults apply.
Nothing here reads os.environ; callers pass the home directory explicitly.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from makellamafile.errors import (
    ConfigReadError,
    DestinationNotWritable,
    InvalidAlignment,
    UserInputError,
)
from makellamafile.utils.fs import atomic_write, ensure_directory

logger = logging.getLogger(__name__)

OUTPUT_DIR = "OUTPUT_DIR"
DOWNLOAD_DIR = "DOWNLOAD_DIR"
LLAMAFILE_ARGS = "LLAMAFILE_ARGS"
BIN_DIR = "BIN_DIR"
ALIGNMENT = "ALIGNMENT"

RECOGNIZED_KEYS = (OUTPUT_DIR, DOWNLOAD_DIR, LLAMAFILE_ARGS, BIN_DIR, ALIGNMENT)

CONFIG_MODE = 0o644


@dataclass(frozen=True)
class EffectiveConfig:
    output_dir: Path
    download_dir: Path | None = None
    llamafile_args: str | None = None
    bin_dir: Path | None = None
    alignment: int = 0


def default_settings(home: Path) -> dict[str, str]:
    """Built-in defaults rooted at the given home directory."""
    home = Path(home)
    return {
        OUTPUT_DIR: str(home / "models" / "llamafiles"),
        DOWNLOAD_DIR: str(home / "models" / "huggingface"),
        BIN_DIR: str(home / ".local" / "share" / "makellamafile" / "bin"),
        ALIGNMENT: "0",
    }


def default_config_path(home: Path) -> Path:
    return Path(home) / ".config" / "makellamafile" / "config"


def load_config_file(path: Path) -> str | None:
    """Return the config file text, or None if there is no config file."""
    path = Path(path)
    if not path.is_file():
        logger.info(f"No config file at {path}; using defaults")
        return None
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigReadError(f"Config file is not valid UTF-8: {path}", path) from e
    except OSError as e:
        raise ConfigReadError(f"Cannot read config file {path}: {e.strerror}", path) from e


def parse_config(text: str) -> dict[str, str]:
    """Parse dotenv-style KEY="value" lines, keeping only recognized keys."""
    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    parsed: dict[str, str] = {}
    for key, value in values.items():
        if key not in RECOGNIZED_KEYS:
            logger.debug(f"Ignoring unknown config key: {key}")
            continue
        if value is None:
            continue
        parsed[key] = value
    return parsed


def _parse_alignment(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        alignment = value
    else:
        try:
            alignment = int(str(value).strip())
        except ValueError as e:
            raise InvalidAlignment(f"ALIGNMENT must be a non-negative integer, got {value!r}") from e
    if alignment < 0:
        raise InvalidAlignment(f"ALIGNMENT must be a non-negative integer, got {value!r}")
    return alignment


def _as_path(value: Any) -> Path | None:
    if value is None or not str(value).strip():
        return None
    return Path(str(value)).expanduser()


def resolve(
    defaults: Mapping[str, Any],
    config_file_contents: str | None = None,
    cli_flags: Mapping[str, Any] | None = None,
) -> EffectiveConfig:
    """Merge defaults, config file text and CLI flags into an EffectiveConfig.

    Args:
        defaults: Built-in values keyed by config key (e.g. {"OUTPUT_DIR": "/a"}).
        config_file_contents: Raw config file text, or None if there is no file.
        cli_flags: Values given on the command line; None entries are treated as unset.

    Returns:
        EffectiveConfig with CLI > config file > defaults precedence.

    Raises:
        UserInputError: If no OUTPUT_DIR is available from any source.
        InvalidAlignment: If ALIGNMENT is not a non-negative integer.
    """
    merged: dict[str, Any] = {k: v for k, v in defaults.items() if k in RECOGNIZED_KEYS}
    if config_file_contents is not None:
        merged.update(parse_config(config_file_contents))
    for key, value in (cli_flags or {}).items():
        if key in RECOGNIZED_KEYS and value is not None:
            merged[key] = value

    output_dir = _as_path(merged.get(OUTPUT_DIR))
    if output_dir is None:
        raise UserInputError("OUTPUT_DIR is not set")

    llamafile_args = merged.get(LLAMAFILE_ARGS)
    return EffectiveConfig(
        output_dir=output_dir,
        download_dir=_as_path(merged.get(DOWNLOAD_DIR)),
        llamafile_args=str(llamafile_args) if llamafile_args else None,
        bin_dir=_as_path(merged.get(BIN_DIR)),
        alignment=_parse_alignment(merged.get(ALIGNMENT, 0)),
    )


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_config(config: EffectiveConfig) -> str:
    """Render an EffectiveConfig as config file text."""
    lines = ["# makellamafile configuration"]
    lines.append(f"{OUTPUT_DIR}={_quote(str(config.output_dir))}")
    if config.download_dir is not None:
        lines.append(f"{DOWNLOAD_DIR}={_quote(str(config.download_dir))}")
    if config.bin_dir is not None:
        lines.append(f"{BIN_DIR}={_quote(str(config.bin_dir))}")
    lines.append(f"{ALIGNMENT}={_quote(str(config.alignment))}")
    if config.llamafile_args:
        lines.append(f"{LLAMAFILE_ARGS}={_quote(config.llamafile_args)}")
    else:
        lines.append('# LLAMAFILE_ARGS="--ctx-size 4096"')
    return "\n".join(lines) + "\n"


def write_default_config(path: Path, config: EffectiveConfig) -> bool:
    """Write config file at path unless one already exists.

    Returns:
        True if a file was written, False if one was already present.
    """
    path = Path(path)
    if path.exists():
        if not path.is_file():
            raise DestinationNotWritable(f"Config path is not a file: {path}", path)
        return False
    ensure_directory(path.parent)
    text = render_config(config)
    try:
        atomic_write(path, lambda f: f.write(text.encode("utf-8")), mode=CONFIG_MODE)
    except OSError as e:
        raise DestinationNotWritable(f"Cannot write config file {path}: {e.strerror}", path) from e
    logger.info(f"Wrote default config to {path}")
    return True

"""
Filesystem helpers: idempotent directory creation and temp-file-then-rename writes.

A write staged through atomic_write is either fully visible at the destination
or not visible at all; an interrupted or failed write never leaves a partial
file at the final path.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, TypeVar

from makellamafile.errors import DestinationNotWritable

T = TypeVar("T")


def ensure_directory(path: Path) -> Path:
    """Create path (and parents) if missing. Succeeds if it already exists."""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except FileExistsError as e:
        raise DestinationNotWritable(f"Not a directory: {path}", path) from e
    except OSError as e:
        raise DestinationNotWritable(f"Cannot create directory {path}: {e.strerror}", path) from e
    return path


def atomic_write(dest: Path, write: Callable[[BinaryIO], T], mode: int = 0o644) -> T:
    """Write dest via a temp file in the same directory, then rename over dest.

    Args:
        dest: Final file path. Its parent directory must exist.
        write: Callback receiving the open temp file; its return value is passed through.
        mode: Permission bits applied to the file before the rename.

    Returns:
        Whatever write returned.

    Raises:
        DestinationNotWritable: If the temp file cannot be created.
        OSError: Anything raised while writing or renaming (temp file is removed first).
    """
    dest = Path(dest)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    except OSError as e:
        raise DestinationNotWritable(
            f"Cannot create temporary file in {dest.parent}: {e.strerror}", dest.parent
        ) from e
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            result = write(f)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return result

"""
Package a model weights file into a self-contained llamafile executable.

Layout:
    <output_dir>/<name>/
      <name>.llamafile    stub + zero padding + model bytes, mode 0755
      meta.json           sizes, hashes, alignment, description
      run.sh              (optional) wrapper baking in LLAMAFILE_ARGS

The artifact is written to a temp file in <output_dir>/<name>/ and renamed
into place, so the final path only ever holds a complete artifact.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import shlex
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path

from makellamafile import __version__
from makellamafile.errors import (
    DestinationNotWritable,
    DiskFull,
    InternalError,
    ModelNotFound,
    StubNotFound,
    StubReadError,
    UserInputError,
)
from makellamafile.packaging.align import DEFAULT_ALIGNMENT, padding_for, write_packed
from makellamafile.utils.fs import atomic_write, ensure_directory
from makellamafile.utils.run_logging import compute_file_hash, write_json

logger = logging.getLogger(__name__)

KNOWN_MODEL_EXTENSIONS = (".gguf", ".ggml", ".bin", ".safetensors", ".llamafile")
ARTIFACT_EXTENSION = ".llamafile"
EXECUTABLE_MODE = 0o755
WRAPPER_FILENAME = "run.sh"
META_FILENAME = "meta.json"

_DISK_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


@dataclass(frozen=True)
class ModelArtifact:
    path: Path
    size_bytes: int
    sha256: str | None = None

    @classmethod
    def from_path(cls, path: Path, with_hash: bool = False) -> ModelArtifact:
        """Stat a model file. Raises ModelNotFound if missing or unreadable."""
        path = Path(path)
        if not path.is_file():
            raise ModelNotFound(f"Model file not found: {path}", path)
        if not os.access(path, os.R_OK):
            raise ModelNotFound(f"Model file is not readable: {path}", path)
        sha = compute_file_hash(path) if with_hash else None
        return cls(path=path, size_bytes=path.stat().st_size, sha256=sha)


@dataclass(frozen=True)
class PackageResult:
    path: Path
    name: str
    model: ModelArtifact
    stub_size: int
    padding: int
    size_bytes: int
    meta_path: Path | None = None
    wrapper_path: Path | None = None


def derive_name(model_path: Path) -> str:
    """Derive an artifact name from a model filename.

    Examples:
        >>> derive_name(Path("models/model.gguf"))
        'model'
        >>> derive_name(Path("mistral-7b.Q4_K_M.gguf"))
        'mistral-7b.Q4_K_M'
    """
    base = Path(model_path).name
    for ext in KNOWN_MODEL_EXTENSIONS:
        if base.lower().endswith(ext) and len(base) > len(ext):
            return base[: -len(ext)]
    stem = Path(base).stem
    return stem or base


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise UserInputError("Artifact name must not be empty")
    if name in (".", "..") or "/" in name or "\0" in name or (os.sep != "/" and os.sep in name):
        raise UserInputError(f"Invalid artifact name: {name!r}")
    return name


def read_stub(stub_path: Path) -> bytes:
    """Read the executable stub fully into memory."""
    stub_path = Path(stub_path)
    if not stub_path.is_file():
        raise StubNotFound(f"Executable stub not found: {stub_path}", stub_path)
    try:
        data = stub_path.read_bytes()
    except OSError as e:
        raise StubReadError(f"Cannot read executable stub {stub_path}: {e.strerror}", stub_path) from e
    if not data:
        raise StubReadError(f"Executable stub is empty: {stub_path}", stub_path)
    return data


def _translate_write_error(e: OSError, dest: Path, model_path: Path) -> Exception:
    """Map an OSError raised while staging the artifact onto the error taxonomy."""
    if e.errno in _DISK_FULL_ERRNOS:
        return DiskFull(f"No space left while writing {dest}", dest)
    if isinstance(e, FileNotFoundError) and e.filename == str(model_path):
        return ModelNotFound(f"Model file disappeared while packaging: {model_path}", model_path)
    if isinstance(e, (PermissionError, IsADirectoryError)):
        return DestinationNotWritable(f"Cannot write {dest}: {e.strerror}", dest)
    return InternalError(f"Unexpected I/O failure writing {dest}: {e}")


def quote_llamafile_args(llamafile_args: str) -> str:
    """Re-quote LLAMAFILE_ARGS word by word so it is safe to paste into a shell script.

    Examples:
        >>> quote_llamafile_args("--ctx-size 4096 --prompt 'hi there'")
        "--ctx-size 4096 --prompt 'hi there'"
    """
    try:
        return shlex.join(shlex.split(llamafile_args))
    except ValueError as e:
        raise UserInputError(f"Cannot parse LLAMAFILE_ARGS {llamafile_args!r}: {e}") from e


def write_wrapper(artifact_path: Path, llamafile_args: str) -> Path:
    """Write an executable run.sh next to the artifact that passes default args."""
    quoted_args = quote_llamafile_args(llamafile_args)
    wrapper_path = artifact_path.parent / WRAPPER_FILENAME
    script = (
        "#!/bin/sh\n"
        "# Generated by makellamafile\n"
        f'exec "$(dirname "$0")/{shlex.quote(artifact_path.name)}" {quoted_args} "$@"\n'
    )
    atomic_write(wrapper_path, lambda f: f.write(script.encode("utf-8")), mode=EXECUTABLE_MODE)
    return wrapper_path


def write_meta(
    result: PackageResult,
    artifact_sha256: str,
    alignment: int,
    description: str | None,
    llamafile_args: str | None,
) -> Path:
    """Write meta.json describing a packaged artifact."""
    meta = {
        "name": result.name,
        "description": description or "",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "tool_version": __version__,
        "artifact": {
            "filename": result.path.name,
            "size_bytes": result.size_bytes,
            "sha256": artifact_sha256,
        },
        "model": {
            "source": str(result.model.path),
            "size_bytes": result.model.size_bytes,
            "sha256": result.model.sha256,
        },
        "stub_size_bytes": result.stub_size,
        "alignment": alignment,
        "padding_bytes": result.padding,
        "llamafile_args": llamafile_args,
    }
    meta_path = result.path.parent / META_FILENAME
    write_json(meta_path, meta)
    return meta_path


def convert(
    model_path: Path,
    output_dir: Path,
    name: str | None = None,
    stub_path: Path | None = None,
    alignment: int = DEFAULT_ALIGNMENT,
    description: str | None = None,
    llamafile_args: str | None = None,
    write_metadata: bool = True,
) -> PackageResult:
    """Turn one model file into OUTPUT_DIR/<name>/<name>.llamafile.

    Args:
        model_path: Input model weights file.
        output_dir: Base directory for packaged executables.
        name: Artifact name; derived from the model filename when None.
        stub_path: Executable stub to prepend to the model.
        alignment: Byte boundary for the model start (0 = contiguous).
        description: Free-form text stored in meta.json.
        llamafile_args: Default runtime args; when set, run.sh is generated.
        write_metadata: Write meta.json beside the artifact.

    Returns:
        PackageResult with the final artifact path.

    Raises:
        ModelNotFound, StubNotFound, StubReadError, DestinationNotWritable,
        DiskFull, InternalError, UserInputError, InvalidAlignment.
    """
    model_path = Path(model_path)
    output_dir = Path(output_dir)

    model = ModelArtifact.from_path(model_path)
    if stub_path is None:
        raise StubNotFound("No executable stub configured")
    stub = read_stub(Path(stub_path))
    # Reject a bad alignment before anything is created on disk.
    padding_for(len(stub), alignment)

    if llamafile_args:
        quote_llamafile_args(llamafile_args)

    name = _validate_name(name if name is not None else derive_name(model_path))
    dest_dir = ensure_directory(output_dir / name)
    dest = dest_dir / f"{name}{ARTIFACT_EXTENSION}"
    if dest.is_dir():
        raise DestinationNotWritable(f"Destination is a directory: {dest}", dest)

    model_hash = hashlib.sha256() if write_metadata else None
    artifact_hash = hashlib.sha256() if write_metadata else None
    logger.info(f"Packaging {model_path} ({model.size_bytes} bytes) into {dest}")
    try:
        padding = atomic_write(
            dest,
            lambda f: write_packed(
                f, stub, model_path, alignment, payload_hash=model_hash, output_hash=artifact_hash
            ),
            mode=EXECUTABLE_MODE,
        )
    except OSError as e:
        raise _translate_write_error(e, dest, model_path) from e

    result = PackageResult(
        path=dest,
        name=name,
        model=replace(model, sha256=model_hash.hexdigest()) if model_hash is not None else model,
        stub_size=len(stub),
        padding=padding,
        size_bytes=dest.stat().st_size,
    )
    logger.info(f"Wrote {dest} (stub={len(stub)}, padding={padding}, total={result.size_bytes})")

    wrapper_path = None
    meta_path = None
    try:
        if llamafile_args:
            wrapper_path = write_wrapper(dest, llamafile_args)
        if write_metadata:
            meta_path = write_meta(result, artifact_hash.hexdigest(), alignment, description, llamafile_args)
    except OSError as e:
        raise _translate_write_error(e, dest_dir, model_path) from e

    return replace(result, meta_path=meta_path, wrapper_path=wrapper_path)

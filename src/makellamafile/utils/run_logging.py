"""
Run logging utilities for packaging runs.

Provides JSON writing and file hashing for artifact metadata.
"""

import hashlib
import json
from pathlib import Path
from typing import Any


def write_json(path: Path, obj: Any) -> None:
    """Write a Python object to a JSON file with indent.

    Args:
        path: Output file path.
        obj: Serializable object.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)


def compute_file_hash(path: Path, algorithm: str = "sha256") -> str:
    """Compute a content hash of a file.

    Args:
        path: Path to the file.
        algorithm: Hash algorithm (default sha256).

    Returns:
        Hex digest of the file contents.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot hash: {path} does not exist")
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()

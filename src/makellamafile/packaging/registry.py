"""
Registry of packaged llamafiles.

The registry is a small YAML file in OUTPUT_DIR that maps artifact names to
their llamafile paths, so users and scripts can find models by name.

Example (<OUTPUT_DIR>/registry.yaml):

models:
  mistral-7b:
    description: "Mistral 7B instruct, Q4_K_M"
    llamafile_path: "mistral-7b/mistral-7b.llamafile"
    model_source: "/home/me/models/huggingface/mistral-7b.gguf"
    size_bytes: 4368439584
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from makellamafile.packaging.packager import PackageResult
from makellamafile.utils.fs import atomic_write

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "registry.yaml"


def registry_path(output_dir: Path) -> Path:
    return Path(output_dir) / REGISTRY_FILENAME


def load_registry(output_dir: Path) -> dict[str, Any]:
    """Load the registry for output_dir. A missing file yields an empty registry."""
    path = registry_path(output_dir)
    if not path.exists():
        return {"models": {}}

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Registry is not valid YAML: {path}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Registry must be a mapping, got {type(data).__name__}")
    models = data.setdefault("models", {})
    if not isinstance(models, dict):
        raise ValueError("Registry 'models' must be a mapping")
    return data


def record_artifact(output_dir: Path, result: PackageResult, description: str | None = None) -> Path:
    """Add or replace the registry entry for a packaged artifact."""
    output_dir = Path(output_dir)
    data = load_registry(output_dir)
    data["models"][result.name] = {
        "description": description or "",
        "llamafile_path": os.path.relpath(result.path, output_dir),
        "model_source": str(result.model.path),
        "size_bytes": result.size_bytes,
    }
    text = yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=True)
    path = registry_path(output_dir)
    atomic_write(path, lambda f: f.write(text.encode("utf-8")))
    logger.info(f"Recorded '{result.name}' in {path}")
    return path


def resolve_artifact(name: str, output_dir: Path) -> Path:
    """Resolve the llamafile path for a packaged model name.

    Returns an absolute Path. Does NOT require the file to exist.
    """
    output_dir = Path(output_dir)
    models = load_registry(output_dir)["models"]
    if name not in models:
        available = ", ".join(sorted(models.keys()))
        raise KeyError(f"Unknown model '{name}' in registry. Available models: {available}")

    entry = models[name] or {}
    rel = entry.get("llamafile_path")
    if not rel or not str(rel).strip():
        raise ValueError(f"Model '{name}' in registry is missing 'llamafile_path'")
    p = Path(rel)
    return p if p.is_absolute() else (output_dir / p).resolve()

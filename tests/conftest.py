"""Shared fixtures: a fake executable stub and a fake model file."""

from pathlib import Path

import pytest

# A real shell script so packaged artifacts can actually be executed in tests.
# The shell stops at "exit" and never reads the appended model bytes.
STUB_BYTES = b'#!/bin/sh\necho "stub-run: $*"\nexit 0\n'
MODEL_BYTES = b"GGUF" + bytes(range(256)) * 4


@pytest.fixture
def stub_path(tmp_path: Path) -> Path:
    path = tmp_path / "bin" / "llamafile"
    path.parent.mkdir(parents=True)
    path.write_bytes(STUB_BYTES)
    path.chmod(0o755)
    return path


@pytest.fixture
def model_path(tmp_path: Path) -> Path:
    path = tmp_path / "downloads" / "model.gguf"
    path.parent.mkdir(parents=True)
    path.write_bytes(MODEL_BYTES)
    return path


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir so the CLI never touches the real config."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("MAKELLAMAFILE_CONFIG", raising=False)
    return home

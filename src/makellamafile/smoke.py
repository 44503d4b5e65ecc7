"""
Post-conversion smoke run (-t/--test).

Executes a packaged llamafile once with a prompt and captures what it prints,
so a user can see the artifact actually starts.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from makellamafile.errors import SmokeTestFailed

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Hello! Reply with one short sentence."
DEFAULT_TIMEOUT_S = 600.0
_OUTPUT_TAIL_CHARS = 2000


@dataclass
class SmokeResult:
    command: list[str]
    returncode: int
    output: str


def build_command(artifact: Path, prompt: str, llamafile_args: str | None = None) -> list[str]:
    """Command line for a single non-interactive run of the artifact."""
    cmd = [str(Path(artifact).resolve())]
    if llamafile_args:
        cmd.extend(shlex.split(llamafile_args))
    cmd.extend(["-p", prompt])
    return cmd


def run_smoke_test(
    artifact: Path,
    prompt: str = DEFAULT_PROMPT,
    llamafile_args: str | None = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> SmokeResult:
    """Run the artifact once and return its combined output.

    Raises:
        SmokeTestFailed: If the artifact cannot be started, times out or exits non-zero.
    """
    cmd = build_command(artifact, prompt, llamafile_args)
    logger.info(f"Smoke test: {' '.join(shlex.quote(c) for c in cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise SmokeTestFailed(f"Smoke test timed out after {timeout_s:.0f}s: {artifact}", artifact) from e
    except OSError as e:
        raise SmokeTestFailed(f"Cannot execute {artifact}: {e.strerror}", artifact) from e

    if proc.returncode != 0:
        tail = (proc.stdout or "")[-_OUTPUT_TAIL_CHARS:].strip()
        raise SmokeTestFailed(
            f"Smoke test exited with code {proc.returncode}: {artifact}" + (f"\n{tail}" if tail else ""),
            artifact,
        )
    return SmokeResult(command=cmd, returncode=proc.returncode, output=proc.stdout or "")

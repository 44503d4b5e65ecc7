"""
Executable stub acquisition.

The stub is the prebuilt llamafile runtime that every packaged model is
appended to. It is either provided explicitly (--stub), found in BIN_DIR, or
downloaded from the upstream Mozilla-Ocho llamafile release into BIN_DIR.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from makellamafile.errors import StubDownloadError, StubNotFound, UserInputError
from makellamafile.utils.fs import atomic_write, ensure_directory

logger = logging.getLogger(__name__)

LLAMAFILE_VERSION = "0.9.1"
RELEASE_URL_TEMPLATE = (
    "https://github.com/Mozilla-Ocho/llamafile/releases/download/{version}/llamafile-{version}"
)
STUB_FILENAME = "llamafile"
STUB_MODE = 0o755


def stub_url(version: str = LLAMAFILE_VERSION) -> str:
    return RELEASE_URL_TEMPLATE.format(version=version)


def stub_path_for(bin_dir: Path | None, override: Path | str | None = None) -> Path:
    """Return the stub path: explicit override, else BIN_DIR/llamafile. Does not check existence."""
    if override is not None and str(override).strip():
        return Path(override).expanduser()
    if bin_dir is None:
        raise UserInputError("No executable stub configured. Pass --stub or set BIN_DIR.")
    return Path(bin_dir) / STUB_FILENAME


def locate_stub(bin_dir: Path | None, override: Path | str | None = None) -> Path:
    """Like stub_path_for, but the stub must exist."""
    path = stub_path_for(bin_dir, override)
    if not path.is_file():
        raise StubNotFound(
            f"Executable stub not found: {path}. Run 'makellamafile --setup --fetch-stub' or pass --stub.",
            path,
        )
    return path


def fetch_stub(
    dest_dir: Path,
    version: str = LLAMAFILE_VERSION,
    client: httpx.Client | None = None,
    timeout_s: float = 300.0,
) -> Path:
    """Download the llamafile stub release into dest_dir/llamafile.

    Args:
        dest_dir: Directory to place the stub in (created if missing).
        version: Upstream llamafile release tag.
        client: Optional httpx client (tests inject one with a mock transport).
        timeout_s: Request timeout when a client is created here.

    Returns:
        Path to the downloaded, executable stub.

    Raises:
        StubDownloadError: On HTTP or network failure.
    """
    dest_dir = ensure_directory(Path(dest_dir))
    dest = dest_dir / STUB_FILENAME
    url = stub_url(version)
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=timeout_s, follow_redirects=True)

    def _download(f) -> int:
        written = 0
        with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            for chunk in response.iter_bytes():
                f.write(chunk)
                written += len(chunk)
        if written == 0:
            raise StubDownloadError(f"Stub download returned no data: {url}", dest)
        return written

    logger.info(f"Downloading llamafile {version} from {url}")
    try:
        written = atomic_write(dest, _download, mode=STUB_MODE)
    except httpx.HTTPStatusError as e:
        raise StubDownloadError(
            f"Stub download failed with HTTP {e.response.status_code}: {url}", dest
        ) from e
    except httpx.RequestError as e:
        raise StubDownloadError(f"Stub download failed: {e}", dest) from e
    finally:
        if own_client:
            client.close()

    logger.info(f"Saved {written} bytes to {dest}")
    return dest

"""
Append a data payload to an executable stub at an alignment boundary.

Layout of the result:
    [ stub bytes ][ zero padding ][ payload bytes ]

The payload starts at the smallest offset >= len(stub) that is a multiple of
the alignment. Alignment 0 means the payload follows the stub directly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO

from makellamafile.errors import InvalidAlignment, StubReadError

DEFAULT_ALIGNMENT = 0
CHUNK_SIZE = 1 << 20


def _check_alignment(alignment: int) -> None:
    if isinstance(alignment, bool) or not isinstance(alignment, int):
        raise InvalidAlignment(f"Alignment must be an integer, got {alignment!r}")
    if alignment < 0:
        raise InvalidAlignment(f"Alignment must be >= 0, got {alignment}")


def padding_for(stub_len: int, alignment: int) -> int:
    """Return the number of zero bytes needed after a stub of stub_len bytes.

    Args:
        stub_len: Length of the stub in bytes.
        alignment: Byte boundary for the payload start (0 = none).

    Returns:
        Minimal padding so that stub_len + padding is a multiple of alignment.

    Examples:
        >>> padding_for(10, 0)
        0
        >>> padding_for(10, 4)
        2
        >>> padding_for(8, 4)
        0
    """
    _check_alignment(alignment)
    if alignment == 0:
        return 0
    return -stub_len % alignment


def pack(stub: bytes, payload: bytes, alignment: int = DEFAULT_ALIGNMENT) -> bytes:
    """Concatenate stub, zero padding and payload.

    Raises:
        StubReadError: If the stub is empty.
        InvalidAlignment: If alignment is negative or not an int.
    """
    if not stub:
        raise StubReadError("Executable stub is empty")
    pad = padding_for(len(stub), alignment)
    return b"".join((stub, b"\0" * pad, payload))


def write_packed(
    out: BinaryIO,
    stub: bytes,
    payload_path: Path,
    alignment: int = DEFAULT_ALIGNMENT,
    chunk_size: int = CHUNK_SIZE,
    payload_hash: Any = None,
    output_hash: Any = None,
) -> int:
    """Stream stub + padding + the contents of payload_path into out.

    Produces the same bytes as pack(stub, payload_path.read_bytes(), alignment)
    without holding the payload in memory. payload_hash and output_hash, when
    given, are hashlib objects updated with the payload and the full output.

    Returns:
        Number of padding bytes written.
    """
    if not stub:
        raise StubReadError("Executable stub is empty")
    pad = padding_for(len(stub), alignment)
    head = stub + b"\0" * pad
    out.write(head)
    if output_hash is not None:
        output_hash.update(head)
    with open(payload_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            out.write(chunk)
            if payload_hash is not None:
                payload_hash.update(chunk)
            if output_hash is not None:
                output_hash.update(chunk)
    return pad

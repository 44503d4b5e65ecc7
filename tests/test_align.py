"""Tests for the alignment writer (stub + zero padding + payload)."""

import hashlib
import io
from pathlib import Path

import pytest

from makellamafile.errors import InvalidAlignment, StubReadError
from makellamafile.packaging.align import pack, padding_for, write_packed


@pytest.mark.parametrize(
    "stub_len,alignment,expected",
    [
        (10, 0, 0),
        (10, 1, 0),
        (10, 4, 2),
        (8, 4, 0),
        (1, 4096, 4095),
        (4097, 4096, 4095),
    ],
)
def test_padding_for_is_minimal(stub_len: int, alignment: int, expected: int) -> None:
    """Padding is the smallest value that makes stub_len + pad a multiple of alignment."""
    assert padding_for(stub_len, alignment) == expected


@pytest.mark.parametrize("alignment", [0, 1, 2, 3, 8, 64, 4096])
@pytest.mark.parametrize("stub", [b"\x7fELF", b"MZ" * 17, b"x" * 4096])
def test_pack_layout(stub: bytes, alignment: int) -> None:
    """Output is stub, then zero padding, then payload; payload offset is aligned."""
    payload = b"model-weights\x00\x01\x02"
    out = pack(stub, payload, alignment)
    pad = padding_for(len(stub), alignment)

    assert len(out) == len(stub) + pad + len(payload)
    assert out[: len(stub)] == stub
    assert out[len(stub) : len(stub) + pad] == b"\0" * pad
    assert out[len(stub) + pad :] == payload
    if alignment:
        assert (len(stub) + pad) % alignment == 0


def test_pack_alignment_zero_is_contiguous() -> None:
    """Alignment 0 appends the payload directly after the stub."""
    assert pack(b"abc", b"def", 0) == b"abcdef"


def test_pack_is_deterministic() -> None:
    """Identical inputs yield identical bytes."""
    assert pack(b"stub", b"payload", 16) == pack(b"stub", b"payload", 16)


def test_pack_rejects_negative_alignment() -> None:
    with pytest.raises(InvalidAlignment):
        pack(b"stub", b"payload", -1)


def test_pack_rejects_non_int_alignment() -> None:
    with pytest.raises(InvalidAlignment):
        pack(b"stub", b"payload", 4.0)  # type: ignore[arg-type]


def test_pack_rejects_empty_stub() -> None:
    with pytest.raises(StubReadError):
        pack(b"", b"payload", 0)


def test_invalid_alignment_is_a_value_error() -> None:
    """InvalidAlignment can be caught as a plain ValueError too."""
    with pytest.raises(ValueError):
        padding_for(3, -8)


def test_write_packed_matches_pack(tmp_path: Path) -> None:
    """Streaming writer produces the same bytes as pack(), even with tiny chunks."""
    payload = bytes(range(256)) * 10
    payload_path = tmp_path / "payload.bin"
    payload_path.write_bytes(payload)
    stub = b"#!/bin/sh\nexit 0\n"

    buf = io.BytesIO()
    pad = write_packed(buf, stub, payload_path, alignment=32, chunk_size=7)

    assert pad == padding_for(len(stub), 32)
    assert buf.getvalue() == pack(stub, payload, 32)


def test_write_packed_updates_hashes(tmp_path: Path) -> None:
    """Digests computed during the copy match hashing payload and output separately."""
    payload = b"weights" * 1000
    payload_path = tmp_path / "payload.bin"
    payload_path.write_bytes(payload)
    stub = b"#!/bin/sh\nexit 0\n"
    payload_hash = hashlib.sha256()
    output_hash = hashlib.sha256()

    buf = io.BytesIO()
    write_packed(buf, stub, payload_path, 64, chunk_size=100, payload_hash=payload_hash, output_hash=output_hash)

    assert payload_hash.hexdigest() == hashlib.sha256(payload).hexdigest()
    assert output_hash.hexdigest() == hashlib.sha256(buf.getvalue()).hexdigest()

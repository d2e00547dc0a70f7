"""Unit tests for binary framing (brotli + base64)."""

from __future__ import annotations

import base64
from pathlib import Path

import brotli
import pytest

from workflow_cli.build.framing import (
    FRAMED_SUFFIX,
    decode_framed,
    ensure_output_suffix,
    frame_wasm,
    unframe_wasm,
    write_framed,
)
from workflow_cli.errors import BuildError, HashingError

from conftest import WASM


@pytest.mark.parametrize(
    "path,expected",
    [
        ("./binary.wasm.br.b64", "./binary.wasm.br.b64"),
        ("./binary.wasm.br", "./binary.wasm.br.b64"),
        ("./binary.wasm", "./binary.wasm.br.b64"),
        ("./binary", "./binary.wasm.br.b64"),
        ("./out/my.bin", "./out/my.bin.wasm.br.b64"),
    ],
)
def test_output_suffix_chain(path: str, expected: str) -> None:
    assert ensure_output_suffix(path) == expected
    assert ensure_output_suffix(expected) == expected


def test_frame_then_unframe_returns_original_module() -> None:
    framed = frame_wasm(WASM)
    base64.b64decode(framed, validate=True)
    assert unframe_wasm(framed) == WASM


def test_frame_uses_quality_six_compression() -> None:
    # Workflow IDs hash these bytes, so they must match the Go encoder's default output.
    wasm = WASM + bytes(range(256)) * 8 + b"workflow" * 64

    compressed = base64.b64decode(frame_wasm(wasm))

    assert compressed == brotli.compress(wasm, quality=6)


def test_decode_framed_rejects_invalid_base64() -> None:
    with pytest.raises(HashingError):
        decode_framed(b"not base64!!")


def test_unframe_rejects_non_brotli_payload() -> None:
    with pytest.raises(HashingError):
        unframe_wasm(base64.b64encode(b"plain bytes, not brotli"))


def test_write_framed_appends_suffix_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = write_framed(WASM, tmp_path / "build" / "binary")

    assert target.name.endswith(FRAMED_SUFFIX)
    assert unframe_wasm(target.read_bytes()) == WASM
    assert [p.name for p in target.parent.iterdir()] == [target.name]


def test_write_framed_requires_output_path() -> None:
    with pytest.raises(BuildError):
        write_framed(WASM, "")

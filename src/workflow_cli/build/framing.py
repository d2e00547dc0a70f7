"""Binary framing: brotli-compressed WASM, base64-encoded, stored as `*.wasm.br.b64`."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
from pathlib import Path

import brotli

from workflow_cli.errors import BuildError, HashingError

logger = logging.getLogger(__name__)

FRAMED_SUFFIX = ".wasm.br.b64"
# Default of Go's brotli.NewWriter; workflow IDs hash the compressed bytes.
BROTLI_QUALITY = 6
WASM_MAGIC = b"\x00asm"


def ensure_output_suffix(output_path: str) -> str:
    """Extend a path so it ends with `.wasm.br.b64`; existing suffixes are never rewritten."""

    if output_path.endswith(FRAMED_SUFFIX):
        return output_path
    if output_path.endswith(".wasm.br"):
        return output_path + ".b64"
    if output_path.endswith(".wasm"):
        return output_path + ".br.b64"
    return output_path + FRAMED_SUFFIX


def frame_wasm(wasm: bytes) -> bytes:
    """brotli at quality 6, then standard base64."""

    return base64.b64encode(brotli.compress(wasm, quality=BROTLI_QUALITY))


def decode_framed(framed: bytes) -> bytes:
    """Base64-decode a framed binary; the result is the hashing input for workflow IDs."""

    try:
        decoded = base64.b64decode(framed.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise HashingError(f"failed to decode base64 binary data: {e}") from e
    if not decoded:
        raise HashingError("decoded workflow binary is empty")
    return decoded


def unframe_wasm(framed: bytes) -> bytes:
    """Invert :func:`frame_wasm`, returning the raw WASM module."""

    try:
        return brotli.decompress(decode_framed(framed))
    except brotli.error as e:
        raise HashingError(f"framed binary is not a valid brotli stream: {e}") from e


def write_framed(wasm: bytes, output_path: str | Path) -> Path:
    """Frame ``wasm`` and atomically write it next to its final location."""

    if not str(output_path):
        raise BuildError("output path is not specified")
    target = Path(ensure_output_suffix(str(output_path)))
    target.parent.mkdir(parents=True, exist_ok=True)
    framed = frame_wasm(wasm)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".framed-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(framed)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(
        "Framed workflow binary written",
        extra={"path": str(target), "wasm_bytes": len(wasm), "framed_bytes": len(framed)},
    )
    return target

"""Content-addressed workflow identifiers.

The ID binds owner, name, binary, config and the secrets reference. Each field is written
with an 8-byte big-endian length prefix before hashing so that no two distinct input tuples
concatenate to the same byte stream. The first byte of the SHA-256 digest is replaced by the
ID version.
"""

from __future__ import annotations

import hashlib

from eth_utils import keccak

from workflow_cli.errors import HashingError

WORKFLOW_ID_VERSION = 0x00


def owner_bytes(owner: str) -> bytes:
    raw = owner[2:] if owner.startswith(("0x", "0X")) else owner
    try:
        decoded = bytes.fromhex(raw)
    except ValueError as e:
        raise HashingError(f"owner is not valid hex: {owner!r}") from e
    if len(decoded) != 20:
        raise HashingError(f"owner must be a 20-byte address, got {len(decoded)} bytes")
    return decoded


def _length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(8, "big") + data


def compute_workflow_id(
    *,
    owner: str,
    name: str,
    decoded_binary: bytes,
    config: bytes = b"",
    secrets: str = "",
) -> str:
    """Return the 64-character hex workflow ID.

    ``decoded_binary`` must be the base64-decoded framed file, never the framed text itself.
    """

    if not decoded_binary:
        raise HashingError("workflow binary is empty")

    digest = hashlib.sha256()
    for part in (
        owner_bytes(owner),
        name.encode("utf-8"),
        decoded_binary,
        config,
        secrets.encode("utf-8"),
    ):
        digest.update(_length_prefixed(part))

    out = bytearray(digest.digest())
    out[0] = WORKFLOW_ID_VERSION
    return out.hex()


def workflow_hash_key(owner: str, name: str) -> bytes:
    """keccak256(owner || name), the registry's key for an (owner, name) pair."""

    return keccak(owner_bytes(owner) + name.encode("utf-8"))

"""Opaque secret value types.

The display form of every secret is ``*****`` regardless of how it is formatted, logged or
serialized; callers must ask for the raw value explicitly.
"""

from __future__ import annotations

from pydantic import Secret

REDACTED = "*****"


class _RedactedSecret(Secret[str]):
    def _display(self) -> str:
        return REDACTED

    def __bool__(self) -> bool:
        return bool(self.get_secret_value())


class PrivateKey(_RedactedSecret):
    """Hex-encoded secp256k1 signing key (64 characters, no ``0x`` prefix)."""


class ApiKey(_RedactedSecret):
    """API key for the remote workflow service."""


class GitHubAPIToken(_RedactedSecret):
    """GitHub token used by the Gist utility."""

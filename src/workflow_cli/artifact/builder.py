from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from workflow_cli.artifact.identity import compute_workflow_id
from workflow_cli.build.framing import decode_framed
from workflow_cli.errors import BuildError, HashingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArtifactInputs:
    owner: str
    name: str
    output_path: Path
    config_path: Path | None = None
    secrets: str = ""


@dataclass(frozen=True, slots=True)
class Artifact:
    """A framed workflow binary, its optional config and the ID derived from both."""

    workflow_id: str
    binary_framed: bytes
    config: bytes | None = None

    @property
    def workflow_id_bytes(self) -> bytes:
        return bytes.fromhex(self.workflow_id)


class ArtifactBuilder:
    """Read the framed binary and config from disk and derive the workflow ID.

    This is the only place that sees both the decoded bytes (for hashing) and the framed
    bytes (for transport).
    """

    def build(self, inputs: ArtifactInputs) -> Artifact:
        if not inputs.owner:
            raise HashingError("workflow owner is required")
        if not inputs.name:
            raise HashingError("workflow name is required")

        config = self._read_config(inputs.config_path)
        framed = self._read_binary(inputs.output_path)
        workflow_id = compute_workflow_id(
            owner=inputs.owner,
            name=inputs.name,
            decoded_binary=decode_framed(framed),
            config=config or b"",
            secrets=inputs.secrets,
        )
        logger.info(
            "Workflow artifact prepared",
            extra={"workflow_id": workflow_id, "has_config": config is not None},
        )
        return Artifact(workflow_id=workflow_id, binary_framed=framed, config=config)

    def _read_binary(self, path: Path) -> bytes:
        logger.debug("Fetching workflow binary", extra={"path": str(path)})
        try:
            return path.read_bytes()
        except OSError as e:
            raise BuildError(f"failed to read framed binary {path}: {e}") from e

    def _read_config(self, path: Path | None) -> bytes | None:
        if path is None:
            return None
        logger.debug("Fetching workflow config", extra={"path": str(path)})
        try:
            return path.read_bytes()
        except OSError as e:
            raise BuildError(f"failed to read config file {path}: {e}") from e

"""Build a workflow and derive its ID without touching the network."""

from __future__ import annotations

import logging
from pathlib import Path

from workflow_cli.artifact.builder import Artifact, ArtifactBuilder, ArtifactInputs
from workflow_cli.artifact.identity import compute_workflow_id
from workflow_cli.build.compile import WorkflowCompiler
from workflow_cli.build.framing import decode_framed, write_framed
from workflow_cli.errors import HashingError
from workflow_cli.workflow.inputs import BuildInputs

logger = logging.getLogger(__name__)


def build_framed_binary(compiler: WorkflowCompiler, inputs: BuildInputs) -> Path:
    """Compile the workflow and write the framed binary; returns the final output path."""

    wasm = compiler.compile_path(Path(inputs.workflow_path))
    return write_framed(wasm, inputs.output_path)


def prepare_artifact(builder: ArtifactBuilder, inputs: BuildInputs, framed_path: Path) -> Artifact:
    """Build the Artifact and check its ID against an independent recomputation."""

    artifact = builder.build(
        ArtifactInputs(
            owner=inputs.workflow_owner,
            name=inputs.workflow_name,
            output_path=framed_path,
            config_path=inputs.config_file,
            secrets=inputs.secrets_url,
        )
    )
    recomputed = compute_workflow_id(
        owner=inputs.workflow_owner,
        name=inputs.workflow_name,
        decoded_binary=decode_framed(artifact.binary_framed),
        config=artifact.config or b"",
        secrets=inputs.secrets_url,
    )
    if recomputed != artifact.workflow_id:
        raise HashingError(
            f"workflow ID mismatch: artifact has {artifact.workflow_id}, recomputed {recomputed}"
        )
    return artifact


def generate_workflow_id(
    inputs: BuildInputs,
    *,
    compiler: WorkflowCompiler,
    builder: ArtifactBuilder | None = None,
) -> Artifact:
    framed_path = build_framed_binary(compiler, inputs)
    artifact = prepare_artifact(builder or ArtifactBuilder(), inputs, framed_path)
    logger.info(
        "Workflow ID generated",
        extra={"workflow_name": inputs.workflow_name, "workflow_id": artifact.workflow_id},
    )
    return artifact

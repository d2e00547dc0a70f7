"""Workflow identity and artifact assembly."""

from workflow_cli.artifact.builder import Artifact, ArtifactBuilder, ArtifactInputs
from workflow_cli.artifact.identity import compute_workflow_id, workflow_hash_key

__all__ = [
    "Artifact",
    "ArtifactBuilder",
    "ArtifactInputs",
    "compute_workflow_id",
    "workflow_hash_key",
]

"""Deploy orchestrator: build, identify, link, upload, register.

Every step is safe to replay. The build is deterministic, the workflow ID is a pure function of
its inputs, the blob store skips content it already holds and re-upserting the same ID is a
no-op on the registry. A failed run is recovered by running it again.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO, TypeVar

from workflow_cli.artifact.builder import Artifact, ArtifactBuilder
from workflow_cli.build.compile import WorkflowCompiler
from workflow_cli.chain.registry import RegisterWorkflowParams, WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, RegularTx, TxOutput, print_raw_tx
from workflow_cli.errors import CancellationError, DeployStepError
from workflow_cli.linking.state_machine import LinkOutcome, OwnerLinker
from workflow_cli.prompt import Confirm, confirm
from workflow_cli.storage.uploader import ArtifactUploader, UploadedArtifacts
from workflow_cli.workflow.generate_id import build_framed_binary, prepare_artifact
from workflow_cli.workflow.inputs import DeployInputs

logger = logging.getLogger(__name__)

UNSIGNED_HEADER = "--unsigned flag detected: transaction not sent on-chain."

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DeployResult:
    workflow_id: str
    framed_path: Path
    halted: bool = False
    urls: UploadedArtifacts | None = None
    tx: TxOutput | None = None


class Deployer:
    def __init__(
        self,
        *,
        compiler: WorkflowCompiler,
        linker: OwnerLinker,
        uploader: ArtifactUploader,
        registry: WorkflowRegistryClient,
        artifact_builder: ArtifactBuilder | None = None,
        confirm_fn: Confirm | None = None,
        out: TextIO | None = None,
    ) -> None:
        self._compiler = compiler
        self._linker = linker
        self._uploader = uploader
        self._registry = registry
        self._artifact_builder = artifact_builder or ArtifactBuilder()
        self._confirm = confirm_fn or confirm
        self._out = out

    def _print(self, *lines: str) -> None:
        out = self._out or sys.stdout
        for line in lines:
            print(line, file=out)

    def _step(self, name: str, fn: Callable[[], T]) -> T:
        logger.debug("Deploy step started", extra={"step": name})
        try:
            result = fn()
        except CancellationError:
            raise
        except Exception as e:
            logger.error("Deploy step failed", extra={"step": name, "error": str(e)})
            raise DeployStepError(name, e) from e
        logger.debug("Deploy step finished", extra={"step": name})
        return result

    def deploy(self, inputs: DeployInputs) -> DeployResult:
        framed_path = self._step("build", lambda: self._build(inputs))
        artifact = self._step("artifact", lambda: self._artifact(inputs, framed_path))
        self._print(f"Workflow ID: {artifact.workflow_id}")

        link = self._step("link", self._linker.ensure_linked)
        if link.halted:
            logger.info("Deploy halted for multisig linking", extra={"owner": inputs.workflow_owner})
            return DeployResult(workflow_id=artifact.workflow_id, framed_path=framed_path, halted=True)

        self._step("check-existing", lambda: self._confirm_overwrite(inputs, artifact))
        urls = self._step("upload", lambda: self._uploader.upload_artifact(artifact))
        tx = self._step("register", lambda: self._register(inputs, artifact, urls))
        self._report(inputs, artifact, tx, link)
        return DeployResult(
            workflow_id=artifact.workflow_id, framed_path=framed_path, urls=urls, tx=tx
        )

    def _build(self, inputs: DeployInputs) -> Path:
        return build_framed_binary(self._compiler, inputs)

    def _artifact(self, inputs: DeployInputs, framed_path: Path) -> Artifact:
        return prepare_artifact(self._artifact_builder, inputs, framed_path)

    def _confirm_overwrite(self, inputs: DeployInputs, artifact: Artifact) -> None:
        existing = self._registry.get_workflow(inputs.workflow_owner, inputs.workflow_name, inputs.tag)
        if existing is None:
            return
        if existing.workflow_id_hex == artifact.workflow_id:
            logger.info(
                "Workflow already registered with the same ID",
                extra={"workflow_id": artifact.workflow_id},
            )
            return
        if inputs.skip_confirmation:
            return
        question = (
            f"Workflow {inputs.workflow_name} (tag {inputs.tag}) already exists with ID "
            f"{existing.workflow_id_hex}. Do you want to overwrite it?"
        )
        if not self._confirm(question):
            raise CancellationError("deployment cancelled by user")

    def _register(
        self, inputs: DeployInputs, artifact: Artifact, urls: UploadedArtifacts
    ) -> TxOutput:
        params = RegisterWorkflowParams(
            name=inputs.workflow_name,
            tag=inputs.tag,
            workflow_id=artifact.workflow_id_bytes,
            status=inputs.initial_status,
            don_family=inputs.don_family,
            binary_url=urls.binary_url,
            config_url=urls.config_url,
            attributes=inputs.attributes,
            keep_alive=inputs.keep_alive,
        )
        logger.info(
            "Registering workflow",
            extra={
                "workflow_name": params.name,
                "workflow_id": artifact.workflow_id,
                "status": params.status,
                "don_family": params.don_family,
            },
        )
        return self._registry.upsert_workflow(params)

    def _report(
        self, inputs: DeployInputs, artifact: Artifact, tx: TxOutput, link: LinkOutcome
    ) -> None:
        if isinstance(tx, RawTx):
            print_raw_tx(tx, chain_name=self._registry.tx.chain_name, header=UNSIGNED_HEADER, out=self._out)
            return
        lines = [f"Workflow {inputs.workflow_name} deployed successfully"]
        if isinstance(tx, RegularTx):
            lines.append(f"  Transaction: {tx.tx_hash}")
        lines.extend(
            [
                f"  Workflow ID: {artifact.workflow_id}",
                f"  Owner:       {inputs.workflow_owner}",
                f"  Tag:         {inputs.tag}",
                f"  DON family:  {inputs.don_family}",
                f"  Status:      {'active' if inputs.auto_start else 'paused'}",
            ]
        )
        self._print(*lines)
        logger.info(
            "Workflow deployed",
            extra={"workflow_id": artifact.workflow_id, "link_state": link.state.value},
        )

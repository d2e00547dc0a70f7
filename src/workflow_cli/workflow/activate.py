"""Activate the most recent version of a paused workflow."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from workflow_cli.chain.registry import WorkflowMetadata, WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, RegularTx, TxOutput, print_raw_tx
from workflow_cli.errors import WorkflowNotFoundError, WorkflowStatusError
from workflow_cli.workflow.deploy import UNSIGNED_HEADER
from workflow_cli.workflow.inputs import WorkflowTarget

logger = logging.getLogger(__name__)

ACTIVATE_PAGE_SIZE = 200


def latest_version(workflows: list[WorkflowMetadata]) -> WorkflowMetadata:
    """The version with the highest created_at; ties keep the later listing."""

    latest = workflows[0]
    for workflow in workflows[1:]:
        if workflow.created_at >= latest.created_at:
            latest = workflow
    return latest


def activate_workflow(
    registry: WorkflowRegistryClient,
    target: WorkflowTarget,
    *,
    don_family: str = "",
    out: TextIO | None = None,
) -> TxOutput:
    out = out or sys.stdout
    workflows = registry.list_workflows(
        target.workflow_owner, target.workflow_name, page_size=ACTIVATE_PAGE_SIZE
    )
    if not workflows:
        raise WorkflowNotFoundError(f"no workflows found for name {target.workflow_name}")

    latest = latest_version(workflows)
    if not latest.is_paused:
        raise WorkflowStatusError("workflow is already active, cancelling transaction")

    family = don_family or latest.don_family
    logger.info(
        "Activating workflow",
        extra={"workflow_id": latest.workflow_id_hex, "don_family": family},
    )
    tx = registry.activate_workflow(latest.workflow_id, family)
    if isinstance(tx, RawTx):
        print_raw_tx(tx, chain_name=registry.tx.chain_name, header=UNSIGNED_HEADER, out=out)
    elif isinstance(tx, RegularTx):
        print(f"Workflow {target.workflow_name} activated successfully", file=out)
        print(f"  Workflow ID: {latest.workflow_id_hex}", file=out)
    return tx

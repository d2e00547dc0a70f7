"""Delete every version of a workflow."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, TxOutput, print_raw_tx
from workflow_cli.errors import CancellationError, TxError
from workflow_cli.prompt import Confirm, confirm
from workflow_cli.workflow.deploy import UNSIGNED_HEADER
from workflow_cli.workflow.inputs import WorkflowTarget

logger = logging.getLogger(__name__)

DELETE_PAGE_SIZE = 100


def delete_workflows(
    registry: WorkflowRegistryClient,
    target: WorkflowTarget,
    *,
    skip_confirmation: bool = False,
    confirm_fn: Confirm | None = None,
    out: TextIO | None = None,
) -> list[TxOutput]:
    """Delete each version in turn; per-version failures are collected and raised together."""

    out = out or sys.stdout
    confirm_fn = confirm_fn or confirm
    workflows = registry.list_workflows(
        target.workflow_owner, target.workflow_name, page_size=DELETE_PAGE_SIZE
    )
    if not workflows:
        print(f"No workflows found for name {target.workflow_name}", file=out)
        return []

    print(f"Found {len(workflows)} workflow version(s) to delete:", file=out)
    for workflow in workflows:
        print(f"  {workflow.workflow_id_hex} (tag {workflow.tag}, status {workflow.status})", file=out)

    if not skip_confirmation:
        question = (
            f"Are you sure you want to delete workflow {target.workflow_name}? "
            "This action cannot be undone."
        )
        if not confirm_fn(question):
            raise CancellationError("deletion cancelled by user")

    outputs: list[TxOutput] = []
    failures: list[str] = []
    for workflow in workflows:
        try:
            tx = registry.delete_workflow(workflow.workflow_id)
        except TxError as e:
            logger.warning(
                "Failed to delete workflow",
                extra={"workflow_id": workflow.workflow_id_hex, "error": str(e)},
            )
            failures.append(f"{workflow.workflow_id_hex}: {e}")
            continue
        outputs.append(tx)
        if isinstance(tx, RawTx):
            print_raw_tx(tx, chain_name=registry.tx.chain_name, header=UNSIGNED_HEADER, out=out)
        else:
            print(f"Deleted workflow {workflow.workflow_id_hex}", file=out)

    if failures:
        raise TxError(f"failed to delete {len(failures)} workflow(s): " + "; ".join(failures))
    return outputs

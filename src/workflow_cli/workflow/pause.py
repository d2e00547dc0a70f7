"""Pause every active version of a workflow in one transaction."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, RegularTx, TxOutput, print_raw_tx
from workflow_cli.errors import WorkflowNotFoundError
from workflow_cli.workflow.deploy import UNSIGNED_HEADER
from workflow_cli.workflow.inputs import WorkflowTarget

logger = logging.getLogger(__name__)

PAUSE_PAGE_SIZE = 100


def pause_workflows(
    registry: WorkflowRegistryClient,
    target: WorkflowTarget,
    *,
    out: TextIO | None = None,
) -> TxOutput | None:
    """Return None when nothing is active."""

    out = out or sys.stdout
    workflows = registry.list_workflows(
        target.workflow_owner, target.workflow_name, page_size=PAUSE_PAGE_SIZE
    )
    if not workflows:
        raise WorkflowNotFoundError(f"no workflows found for name {target.workflow_name}")

    active = [w for w in workflows if w.is_active]
    if not active:
        print(f"Workflow {target.workflow_name} is already paused", file=out)
        return None

    logger.info("Pausing workflows", extra={"workflow_name": target.workflow_name, "count": len(active)})
    tx = registry.batch_pause_workflows([w.workflow_id for w in active])
    if isinstance(tx, RawTx):
        print_raw_tx(tx, chain_name=registry.tx.chain_name, header=UNSIGNED_HEADER, out=out)
    elif isinstance(tx, RegularTx):
        print(f"Paused {len(active)} workflow version(s) of {target.workflow_name}", file=out)
        for workflow in active:
            print(f"  {workflow.workflow_id_hex}", file=out)
    return tx

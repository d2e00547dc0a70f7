"""Link the owner address to the registry outside of a deploy."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TextIO

from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, TxOutput, TxStrategy, print_raw_tx
from workflow_cli.config import OWNER_TYPE_EOA, OWNER_TYPE_MSIG
from workflow_cli.linking.service import LinkingService
from workflow_cli.linking.state_machine import submit_link_owner

logger = logging.getLogger(__name__)

LINK_INITIALIZED_HEADER = "Ownership linking initialized successfully!"


def link_key(
    *,
    registry: WorkflowRegistryClient,
    service: LinkingService,
    owner: str,
    owner_label: str = "",
    is_msig: bool = False,
    clock: Callable[[], datetime] | None = None,
    out: TextIO | None = None,
) -> TxOutput | None:
    """Return None when the owner is already linked."""

    out = out or sys.stdout
    clock = clock or (lambda: datetime.now(UTC))

    if registry.is_owner_linked(owner):
        print(f"web3 address already linked: {owner}", file=out)
        return None

    request = service.initiate_linking(
        owner=owner,
        label=owner_label,
        request_process=OWNER_TYPE_MSIG if is_msig else OWNER_TYPE_EOA,
    )
    target = registry.with_strategy(TxStrategy.RAW_CALLDATA) if is_msig else registry
    tx = submit_link_owner(target, request, owner=owner, now=clock())

    if isinstance(tx, RawTx):
        print_raw_tx(tx, chain_name=target.tx.chain_name, header=LINK_INITIALIZED_HEADER, out=out)
    else:
        logger.info("Owner linked", extra={"owner": owner})
        print(f"Linked {owner} to workflow registry {registry.address}", file=out)
    return tx

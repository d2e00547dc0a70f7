"""Unlink the owner address from the registry."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TextIO

from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, TxOutput, TxStrategy, print_raw_tx
from workflow_cli.config import OWNER_TYPE_EOA, OWNER_TYPE_MSIG
from workflow_cli.errors import CancellationError
from workflow_cli.linking.service import LinkingService
from workflow_cli.linking.state_machine import submit_unlink_owner
from workflow_cli.prompt import Confirm, confirm

logger = logging.getLogger(__name__)

UNLINK_INITIALIZED_HEADER = "Ownership unlinking initialized successfully!"


def unlink_key(
    *,
    registry: WorkflowRegistryClient,
    service: LinkingService,
    owner: str,
    is_msig: bool = False,
    skip_confirmation: bool = False,
    confirm_fn: Confirm | None = None,
    clock: Callable[[], datetime] | None = None,
    out: TextIO | None = None,
) -> TxOutput | None:
    """Return None when the owner is not linked."""

    out = out or sys.stdout
    clock = clock or (lambda: datetime.now(UTC))
    confirm_fn = confirm_fn or confirm

    if not registry.is_owner_linked(owner):
        print(f"web3 address is not linked: {owner}", file=out)
        return None

    if not skip_confirmation:
        question = (
            f"Unlinking {owner} removes its workflows from the registry. "
            "Do you want to continue?"
        )
        if not confirm_fn(question):
            raise CancellationError("unlink cancelled by user")

    request = service.initiate_unlinking(
        owner=owner, request_process=OWNER_TYPE_MSIG if is_msig else OWNER_TYPE_EOA
    )
    target = registry.with_strategy(TxStrategy.RAW_CALLDATA) if is_msig else registry
    tx = submit_unlink_owner(target, request, owner=owner, now=clock())

    if isinstance(tx, RawTx):
        print_raw_tx(tx, chain_name=target.tx.chain_name, header=UNLINK_INITIALIZED_HEADER, out=out)
    else:
        logger.info("Owner unlinked", extra={"owner": owner})
        print(f"Unlinked {owner} from workflow registry {registry.address}", file=out)
    return tx

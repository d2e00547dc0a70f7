"""Owner-linking state machine.

Drives an owner address to a verified link with the registry before any registry write:

    UNKNOWN -> QUERYING_CHAIN -> CHAIN_LINKED -> QUERYING_SERVICE -> LINKED
                              \\-> INITIATING_LINK -> SUBMITTING_LINK_OWNER -> WAITING_FOR_PROPAGATION -> LINKED
                                                                          \\-> MSIG_HALT

Multi-signature owners (and runs that only emit calldata) stop in MSIG_HALT after printing the
`linkOwner` calldata; the caller treats that as a successful, halted invocation.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TextIO

from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, RegularTx, TxOutput, TxStrategy, print_raw_tx
from workflow_cli.config import OWNER_TYPE_EOA, OWNER_TYPE_MSIG
from workflow_cli.errors import GraphQLError, GraphQLTransportError, LinkError, RevertError, TxError
from workflow_cli.linking.service import LinkingService, LinkRequest

logger = logging.getLogger(__name__)

MSIG_HALT_MESSAGE = (
    "MSIG auto-link initiated. Halting deploy. Submit the multisig transaction, then re-run deploy."
)


class LinkState(str, Enum):
    UNKNOWN = "unknown"
    QUERYING_CHAIN = "querying_chain"
    CHAIN_LINKED = "chain_linked"
    QUERYING_SERVICE = "querying_service"
    LINKED = "linked"
    INITIATING_LINK = "initiating_link"
    SUBMITTING_LINK_OWNER = "submitting_link_owner"
    WAITING_FOR_PROPAGATION = "waiting_for_propagation"
    MSIG_HALT = "msig_halt"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[LinkState, set[LinkState]] = {
    LinkState.UNKNOWN: {LinkState.QUERYING_CHAIN},
    LinkState.QUERYING_CHAIN: {LinkState.CHAIN_LINKED, LinkState.INITIATING_LINK, LinkState.FAILED},
    LinkState.CHAIN_LINKED: {LinkState.QUERYING_SERVICE},
    LinkState.QUERYING_SERVICE: {LinkState.LINKED, LinkState.FAILED},
    LinkState.INITIATING_LINK: {LinkState.SUBMITTING_LINK_OWNER, LinkState.FAILED},
    LinkState.SUBMITTING_LINK_OWNER: {
        LinkState.WAITING_FOR_PROPAGATION,
        LinkState.MSIG_HALT,
        LinkState.FAILED,
    },
    LinkState.WAITING_FOR_PROPAGATION: {LinkState.LINKED, LinkState.FAILED},
    LinkState.LINKED: set(),
    LinkState.MSIG_HALT: set(),
    LinkState.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: LinkState, to: LinkState) -> LinkState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


@dataclass(frozen=True, slots=True)
class LinkOutcome:
    state: LinkState
    tx: TxOutput | None = None

    @property
    def halted(self) -> bool:
        return self.state is LinkState.MSIG_HALT


def _check_registry_address(request: LinkRequest, registry: WorkflowRegistryClient) -> None:
    if request.contract_address.lower() != registry.address.lower():
        raise LinkError(
            "contract address validation failed: "
            f"service issued the request for {request.contract_address}, registry is {registry.address}"
        )


def submit_link_owner(
    registry: WorkflowRegistryClient,
    request: LinkRequest,
    *,
    owner: str,
    now: datetime,
) -> TxOutput:
    """Check a LinkRequest against the registry and submit `linkOwner`.

    Refuses an expired request or one issued for a different registry before any on-chain call.
    """

    _check_registry_address(request, registry)
    if len(request.proof_hash) != 32:
        raise LinkError(f"proof hash must be 32 bytes, got {len(request.proof_hash)}")
    request.ensure_not_expired(now)

    try:
        registry.can_link_owner(owner, request.valid_until_unix, request.proof_hash, request.signature)
    except RevertError as e:
        raise LinkError(f"link request rejected by the registry: {e}") from e
    return registry.link_owner(request.valid_until_unix, request.proof_hash, request.signature)


def submit_unlink_owner(
    registry: WorkflowRegistryClient,
    request: LinkRequest,
    *,
    owner: str,
    now: datetime,
) -> TxOutput:
    _check_registry_address(request, registry)
    request.ensure_not_expired(now)

    try:
        registry.can_unlink_owner(owner, request.valid_until_unix, request.signature)
    except RevertError as e:
        raise LinkError(f"unlink request rejected by the registry: {e}") from e
    return registry.unlink_owner(owner, request.valid_until_unix, request.signature)


class OwnerLinker:
    """Ensure the owner is linked; see the module docstring for the states."""

    def __init__(
        self,
        *,
        registry: WorkflowRegistryClient,
        service: LinkingService,
        owner: str,
        owner_label: str = "",
        is_msig: bool = False,
        service_attempts: int = 5,
        poll_interval_seconds: float = 3.0,
        propagation_initial_wait_seconds: float = 36.0,
        propagation_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
        out: TextIO | None = None,
    ) -> None:
        self._registry = registry
        self._service = service
        self._owner = owner.lower()
        self._owner_label = owner_label
        self._is_msig = is_msig
        self._service_attempts = max(1, service_attempts)
        self._poll_interval = poll_interval_seconds
        self._initial_wait = propagation_initial_wait_seconds
        self._propagation_attempts = max(1, propagation_attempts)
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))
        self._out = out
        self._state = LinkState.UNKNOWN
        self._outcome: LinkOutcome | None = None

    @property
    def state(self) -> LinkState:
        return self._state

    def _to(self, to: LinkState) -> None:
        self._state = transition(current=self._state, to=to)
        logger.debug("Link state", extra={"owner": self._owner, "state": to.value})

    def _fail(self, error: Exception) -> Exception:
        self._state = transition(current=self._state, to=LinkState.FAILED)
        logger.warning("Owner linking failed", extra={"owner": self._owner, "error": str(error)})
        return error

    @property
    def _halts(self) -> bool:
        return self._is_msig or self._registry.tx.strategy is TxStrategy.RAW_CALLDATA

    def ensure_linked(self) -> LinkOutcome:
        """Return LINKED or MSIG_HALT; raise LinkError (state FAILED) otherwise."""

        if self._outcome is not None and self._outcome.state is LinkState.LINKED:
            return self._outcome
        if self._state is not LinkState.UNKNOWN:
            raise IllegalTransitionError(f"linker already finished in state {self._state.value}")

        self._to(LinkState.QUERYING_CHAIN)
        try:
            linked_on_chain = self._registry.is_owner_linked(self._owner)
        except TxError as e:
            raise self._fail(LinkError(f"failed to check owner link status: {e}")) from e

        if linked_on_chain:
            logger.info("Owner already linked on-chain", extra={"owner": self._owner})
            self._to(LinkState.CHAIN_LINKED)
            self._to(LinkState.QUERYING_SERVICE)
            self._await_service_agreement()
            self._to(LinkState.LINKED)
            self._outcome = LinkOutcome(state=LinkState.LINKED)
            return self._outcome

        logger.info("Owner not linked, starting auto-link", extra={"owner": self._owner})
        self._to(LinkState.INITIATING_LINK)
        try:
            request = self._service.initiate_linking(
                owner=self._owner,
                label=self._owner_label,
                request_process=OWNER_TYPE_MSIG if self._is_msig else OWNER_TYPE_EOA,
            )
        except (GraphQLError, LinkError, OSError) as e:
            raise self._fail(LinkError(f"failed to initiate linking: {e}")) from e

        self._to(LinkState.SUBMITTING_LINK_OWNER)
        registry = self._registry
        if self._halts:
            registry = registry.with_strategy(TxStrategy.RAW_CALLDATA)
        try:
            tx = submit_link_owner(registry, request, owner=self._owner, now=self._clock())
        except LinkError as e:
            raise self._fail(e) from e
        except TxError as e:
            raise self._fail(LinkError(f"auto-link submission failed: {e}")) from e

        if isinstance(tx, RawTx):
            self._to(LinkState.MSIG_HALT)
            print_raw_tx(tx, chain_name=registry.tx.chain_name, header=MSIG_HALT_MESSAGE, out=self._out)
            self._outcome = LinkOutcome(state=LinkState.MSIG_HALT, tx=tx)
            return self._outcome

        if isinstance(tx, RegularTx):
            logger.info("LinkOwner mined", extra={"owner": self._owner, "tx_hash": tx.tx_hash})
        self._to(LinkState.WAITING_FOR_PROPAGATION)
        self._await_propagation()
        self._to(LinkState.LINKED)
        self._outcome = LinkOutcome(state=LinkState.LINKED, tx=tx)
        return self._outcome

    def _service_verified(self) -> bool | None:
        """True/False from the service, or None when it cannot be reached."""

        try:
            return self._service.is_owner_verified(self._owner)
        except (GraphQLTransportError, OSError) as e:
            logger.warning("Linking service unreachable", extra={"owner": self._owner, "error": str(e)})
            return None
        except GraphQLError as e:
            raise self._fail(LinkError(f"failed to query linked owners: {e}")) from e

    def _await_service_agreement(self) -> None:
        for attempt in range(1, self._service_attempts + 1):
            verified = self._service_verified()
            if verified is None:
                # Service unreachable; the on-chain signal stands alone.
                return
            if verified:
                return
            if attempt < self._service_attempts:
                self._sleep(self._poll_interval)
        raise self._fail(LinkError(f"key {self._owner} is linked to another account"))

    def _await_propagation(self) -> None:
        logger.info(
            "Waiting for link to propagate",
            extra={"owner": self._owner, "initial_wait_seconds": self._initial_wait},
        )
        if self._initial_wait > 0:
            self._sleep(self._initial_wait)
        for attempt in range(1, self._propagation_attempts + 1):
            try:
                on_chain = self._registry.is_owner_linked(self._owner)
            except TxError as e:
                logger.debug("Link status check failed", extra={"attempt": attempt, "error": str(e)})
                on_chain = False
            verified = self._service_verified() if on_chain else False
            if on_chain and verified is not False:
                logger.info("Owner link verified", extra={"owner": self._owner, "attempt": attempt})
                return
            if attempt < self._propagation_attempts:
                self._sleep(self._poll_interval)
        raise self._fail(
            LinkError(
                f"owner {self._owner} link did not propagate after {self._propagation_attempts} attempts"
            )
        )

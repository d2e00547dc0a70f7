"""Owner-linking calls against the remote workflow service.

The service issues short-lived link (and unlink) requests: a proof hash, an expiry and a signature
that the registry verifies in `linkOwner`. Every response is persisted to
`linking_<owner>_<unix>.json` (mode 0600) so the operator can inspect or replay it.
"""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from workflow_cli.errors import LinkError, LinkRequestExpiredError
from workflow_cli.graphql.client import GraphQLClient

logger = logging.getLogger(__name__)

ENVIRONMENT_PRODUCTION_TESTNET = "PRODUCTION_TESTNET"
VERIFICATION_STATUS_SUCCESSFUL = "VERIFICATION_STATUS_SUCCESSFULL"

_LINK_RESPONSE_FIELDS = """
    ownershipProofHash
    workflowOwnerAddress
    validUntil
    signature
    chainSelector
    contractAddress
    transactionData
    functionSignature
    functionArgs
"""

INITIATE_LINKING_MUTATION = (
    """
mutation InitiateLinking($request: InitiateLinkingRequest!) {
  initiateLinking(request: $request) {"""
    + _LINK_RESPONSE_FIELDS
    + """  }
}"""
)

INITIATE_UNLINKING_MUTATION = (
    """
mutation InitiateUnlinking($request: InitiateUnlinkingRequest!) {
  initiateUnlinking(request: $request) {"""
    + _LINK_RESPONSE_FIELDS
    + """  }
}"""
)

LIST_WORKFLOW_OWNERS_QUERY = """
query ListWorkflowOwners($filters: WorkflowOwnersFilterInput) {
  listWorkflowOwners(filters: $filters) {
    linkedOwners {
      workflowOwnerAddress
      workflowOwnerLabel
      environment
      verificationStatus
      verifiedAt
      chainSelector
      contractAddress
      requestProcess
    }
  }
}"""

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _decode_hex(value: str, what: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise LinkError(f"invalid {what} hex: {e}") from e


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; fractions beyond microseconds are truncated."""

    text = _FRACTION_RE.sub(r"\1", value.strip())
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise LinkError(f"invalid validUntil timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True, slots=True)
class LinkRequest:
    owner: str
    valid_until: datetime
    signature: bytes
    chain_selector: int
    contract_address: str
    proof_hash: bytes = b""
    transaction_data: str = ""
    function_signature: str = ""
    function_args: list[str] = field(default_factory=list)

    @property
    def valid_until_unix(self) -> int:
        return int(self.valid_until.timestamp())

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until

    def ensure_not_expired(self, now: datetime) -> None:
        if self.is_expired(now):
            raise LinkRequestExpiredError(
                f"the request has expired: valid until {self.valid_until.isoformat()}, "
                f"now {now.isoformat()}"
            )


def parse_link_request(raw: dict[str, Any], *, require_proof: bool = True) -> LinkRequest:
    """Validate a service link/unlink response into a LinkRequest."""

    valid_until = raw.get("validUntil")
    if not isinstance(valid_until, str) or not valid_until:
        raise LinkError("service response is missing validUntil")
    signature = raw.get("signature")
    if not isinstance(signature, str) or not signature:
        raise LinkError("service response is missing signature")

    proof = b""
    proof_raw = raw.get("ownershipProofHash")
    if isinstance(proof_raw, str) and proof_raw:
        proof = _decode_hex(proof_raw, "proof hash")
        if len(proof) != 32:
            raise LinkError(f"proof hash must be 32 bytes, got {len(proof)}")
    elif require_proof:
        raise LinkError("service response is missing ownershipProofHash")

    chain_raw = raw.get("chainSelector", 0)
    try:
        chain_selector = int(chain_raw)
    except (TypeError, ValueError) as e:
        raise LinkError(f"invalid chainSelector {chain_raw!r}") from e

    args = raw.get("functionArgs")
    return LinkRequest(
        owner=str(raw.get("workflowOwnerAddress", "")).lower(),
        valid_until=parse_rfc3339(valid_until),
        signature=_decode_hex(signature, "signature"),
        chain_selector=chain_selector,
        contract_address=str(raw.get("contractAddress", "")),
        proof_hash=proof,
        transaction_data=str(raw.get("transactionData") or ""),
        function_signature=str(raw.get("functionSignature") or ""),
        function_args=[str(a) for a in args] if isinstance(args, list) else [],
    )


@dataclass(frozen=True, slots=True)
class LinkedOwner:
    address: str
    label: str = ""
    environment: str = ""
    verification_status: str = ""
    verified_at: str = ""
    chain_selector: str = ""
    contract_address: str = ""
    request_process: str = ""

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VERIFICATION_STATUS_SUCCESSFUL

    @staticmethod
    def from_json(obj: dict[str, Any]) -> LinkedOwner:
        def _s(key: str) -> str:
            v = obj.get(key)
            return str(v) if v is not None else ""

        return LinkedOwner(
            address=_s("workflowOwnerAddress").lower(),
            label=_s("workflowOwnerLabel"),
            environment=_s("environment"),
            verification_status=_s("verificationStatus"),
            verified_at=_s("verifiedAt"),
            chain_selector=_s("chainSelector"),
            contract_address=_s("contractAddress"),
            request_process=_s("requestProcess"),
        )


class LinkingService:
    def __init__(
        self,
        *,
        graphql: GraphQLClient,
        state_dir: Path | None = None,
        environment: str = ENVIRONMENT_PRODUCTION_TESTNET,
        clock: Callable[[], datetime] | None = None,
        idempotency_key: Callable[[], str] | None = None,
    ) -> None:
        self._graphql = graphql
        self._state_dir = state_dir
        self._environment = environment
        self._clock = clock or (lambda: datetime.now(UTC))
        self._idempotency_key = idempotency_key or (lambda: str(uuid.uuid4()))

    def _request(self, mutation: str, field_name: str, request: dict[str, Any]) -> dict[str, Any]:
        data = self._graphql.execute(
            mutation,
            {"request": request},
            headers={"Idempotency-Key": self._idempotency_key()},
        )
        raw = data.get(field_name)
        if not isinstance(raw, dict):
            raise LinkError(f"service response has no {field_name} object")
        return raw

    def initiate_linking(self, *, owner: str, label: str, request_process: str) -> LinkRequest:
        logger.info("Requesting link request", extra={"owner": owner, "request_process": request_process})
        raw = self._request(
            INITIATE_LINKING_MUTATION,
            "initiateLinking",
            {
                "workflowOwnerAddress": owner,
                "workflowOwnerLabel": label,
                "environment": self._environment,
                "requestProcess": request_process,
            },
        )
        self.persist_response(owner, raw)
        return parse_link_request(raw)

    def initiate_unlinking(self, *, owner: str, request_process: str) -> LinkRequest:
        logger.info("Requesting unlink request", extra={"owner": owner, "request_process": request_process})
        raw = self._request(
            INITIATE_UNLINKING_MUTATION,
            "initiateUnlinking",
            {
                "workflowOwnerAddress": owner,
                "environment": self._environment,
                "requestProcess": request_process,
            },
        )
        self.persist_response(owner, raw)
        return parse_link_request(raw, require_proof=False)

    def list_linked_owners(self) -> list[LinkedOwner]:
        data = self._graphql.execute(
            LIST_WORKFLOW_OWNERS_QUERY, {"filters": {"linkStatus": "LINKED_ONLY"}}
        )
        raw = data.get("listWorkflowOwners")
        items = raw.get("linkedOwners") if isinstance(raw, dict) else None
        if not isinstance(items, list):
            return []
        return [LinkedOwner.from_json(item) for item in items if isinstance(item, dict)]

    def is_owner_verified(self, owner: str) -> bool:
        owner = owner.lower()
        return any(o.address == owner and o.is_verified for o in self.list_linked_owners())

    def persist_response(self, owner: str, raw: dict[str, Any]) -> Path | None:
        """Write the raw service response next to the other linking files (mode 0600)."""

        if self._state_dir is None:
            return None
        self._state_dir.mkdir(parents=True, exist_ok=True)
        path = self._state_dir / f"linking_{owner.lower()}_{int(self._clock().timestamp())}.json"
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(raw, indent=2, ensure_ascii=False) + "\n")
        os.chmod(path, 0o600)
        logger.debug("Persisted linking response", extra={"path": str(path)})
        return path

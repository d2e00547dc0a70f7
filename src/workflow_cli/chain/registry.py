"""Workflow Registry client.

Read queries go straight through `eth_call`; every write is described as a `TxRequest` and handed
to the `TxClient`, which owns the strategy (sign and send, raw calldata, hardware wallet).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from workflow_cli.chain.codec import ContractCodec, load_registry_codec
from workflow_cli.chain.tx import TxClient, TxOutput, TxRequest, TxStrategy
from workflow_cli.errors import InputValidationError, RevertError, TxError

logger = logging.getLogger(__name__)

WORKFLOW_STATUS_ACTIVE = 0
WORKFLOW_STATUS_PAUSED = 1

DEFAULT_PAGE_SIZE = 100
MAX_LISTED_WORKFLOWS = 10_000

# Receipt events expected for each mutating call; `A|B` accepts either.
EXPECTED_EVENTS = {
    "upsertWorkflow": "WorkflowRegistered|WorkflowUpdated",
    "activateWorkflow": "WorkflowActivated",
    "batchPauseWorkflows": "WorkflowStatusUpdated|WorkflowPaused",
    "deleteWorkflow": "WorkflowDeleted",
    "linkOwner": "OwnershipLinkUpdated",
    "unlinkOwner": "OwnershipLinkUpdated",
    "allowlistRequest": "RequestAllowlisted",
}


@dataclass(frozen=True, slots=True)
class WorkflowMetadata:
    workflow_id: bytes
    owner: str
    created_at: int
    status: int
    workflow_name: str
    binary_url: str
    config_url: str
    tag: str
    attributes: bytes
    don_family: str

    @property
    def workflow_id_hex(self) -> str:
        return self.workflow_id.hex()

    @property
    def is_active(self) -> bool:
        return self.status == WORKFLOW_STATUS_ACTIVE

    @property
    def is_paused(self) -> bool:
        return self.status == WORKFLOW_STATUS_PAUSED

    @classmethod
    def from_view(cls, view: dict[str, Any]) -> WorkflowMetadata:
        return cls(
            workflow_id=bytes(view.get("workflowId") or b""),
            owner=str(view.get("owner", "")).lower(),
            created_at=int(view.get("createdAt") or 0),
            status=int(view.get("status") or 0),
            workflow_name=str(view.get("workflowName", "")),
            binary_url=str(view.get("binaryUrl", "")),
            config_url=str(view.get("configUrl", "")),
            tag=str(view.get("tag", "")),
            attributes=bytes(view.get("attributes") or b""),
            don_family=str(view.get("donFamily", "")),
        )


@dataclass(frozen=True, slots=True)
class RegisterWorkflowParams:
    name: str
    tag: str
    workflow_id: bytes
    status: int
    don_family: str
    binary_url: str
    config_url: str = ""
    attributes: bytes = b""
    keep_alive: bool = False


def _require_bytes32(value: bytes, what: str) -> bytes:
    if len(value) != 32:
        raise InputValidationError(f"{what} must be 32 bytes, got {len(value)}")
    return value


class WorkflowRegistryClient:
    def __init__(self, *, tx: TxClient, address: str, codec: ContractCodec | None = None) -> None:
        if not address:
            raise InputValidationError("workflow registry address is required (set WORKFLOW_REGISTRY_ADDRESS)")
        self._tx = tx
        self._address = address
        self._codec = codec or load_registry_codec()

    @property
    def address(self) -> str:
        return self._address

    @property
    def tx(self) -> TxClient:
        return self._tx

    @property
    def codec(self) -> ContractCodec:
        return self._codec

    def with_strategy(self, strategy: TxStrategy) -> WorkflowRegistryClient:
        return WorkflowRegistryClient(tx=self._tx.with_strategy(strategy), address=self._address, codec=self._codec)

    # ---- reads -------------------------------------------------------------

    def _call(self, fn_name: str, *args: Any) -> list[Any]:
        data = self._codec.encode_call(fn_name, *args)
        try:
            raw = self._tx.rpc.call(to=self._address, data=data)
        except RevertError as e:
            if e.raw_data:
                raise self._codec.decode_custom_error(e.raw_data) from e
            raise
        except Exception as e:
            raise TxError(f"{fn_name}: {e}") from e
        return self._codec.decode_outputs(fn_name, raw)

    def _check(self, fn_name: str, *args: Any) -> None:
        """Run a view that signals failure by reverting (canLinkOwner, canUnlinkOwner)."""

        data = self._codec.encode_call(fn_name, *args)
        try:
            self._tx.rpc.call(to=self._address, data=data)
        except RevertError as e:
            if e.raw_data:
                raise self._codec.decode_custom_error(e.raw_data) from e
            raise
        except Exception as e:
            raise TxError(f"{fn_name}: {e}") from e

    def is_owner_linked(self, owner: str) -> bool:
        return bool(self._call("isOwnerLinked", owner)[0])

    def get_linked_owners(self, start: int, limit: int) -> list[str]:
        return [str(a).lower() for a in self._call("getLinkedOwners", start, limit)[0]]

    def total_linked_owners(self) -> int:
        return int(self._call("totalLinkedOwners")[0])

    def type_and_version(self) -> str:
        return str(self._call("typeAndVersion")[0])

    def is_request_allowlisted(self, owner: str, request_digest: bytes) -> bool:
        return bool(self._call("isRequestAllowlisted", owner, _require_bytes32(request_digest, "request digest"))[0])

    def get_workflow(self, owner: str, name: str, tag: str) -> WorkflowMetadata | None:
        """Return the registration for (owner, name, tag), or None when it does not exist."""

        try:
            view = self._call("getWorkflow", owner, name, tag)[0]
        except RevertError as e:
            if e.error_name == "WorkflowDoesNotExist":
                return None
            raise
        metadata = WorkflowMetadata.from_view(view)
        if not any(metadata.workflow_id):
            return None
        return metadata

    def get_workflow_list_by_owner_and_name(
        self, owner: str, name: str, start: int, limit: int
    ) -> list[WorkflowMetadata]:
        views = self._call("getWorkflowListByOwnerAndName", owner, name, start, limit)[0]
        return [WorkflowMetadata.from_view(v) for v in views]

    def list_workflows(
        self,
        owner: str,
        name: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_items: int = MAX_LISTED_WORKFLOWS,
    ) -> list[WorkflowMetadata]:
        """Page through every version of (owner, name) until a short page or the cap."""

        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        out: list[WorkflowMetadata] = []
        start = 0
        while len(out) < max_items:
            page = self.get_workflow_list_by_owner_and_name(owner, name, start, page_size)
            out.extend(page)
            if len(page) < page_size:
                break
            start += page_size
        logger.debug("Listed workflows", extra={"workflow_name": name, "count": len(out)})
        return out[:max_items]

    def can_link_owner(self, owner: str, valid_until: int, proof: bytes, signature: bytes) -> None:
        self._check("canLinkOwner", owner, valid_until, _require_bytes32(proof, "proof"), signature)

    def can_unlink_owner(self, owner: str, valid_until: int, signature: bytes) -> None:
        self._check("canUnlinkOwner", owner, valid_until, signature)

    # ---- writes ------------------------------------------------------------

    def _write(self, fn_name: str, inputs: dict[str, Any]) -> TxOutput:
        request = TxRequest(
            codec=self._codec,
            function=fn_name,
            to=self._address,
            data=self._codec.encode_call(fn_name, *inputs.values()),
            inputs=inputs,
            expected_events=EXPECTED_EVENTS.get(fn_name, ""),
        )
        return self._tx.execute(request)

    def link_owner(self, valid_until: int, proof: bytes, signature: bytes) -> TxOutput:
        return self._write(
            "linkOwner",
            {
                "validityTimestamp": valid_until,
                "proof": _require_bytes32(proof, "proof"),
                "signature": signature,
            },
        )

    def unlink_owner(self, owner: str, valid_until: int, signature: bytes) -> TxOutput:
        return self._write(
            "unlinkOwner",
            {"owner": owner, "validityTimestamp": valid_until, "signature": signature},
        )

    def upsert_workflow(self, params: RegisterWorkflowParams) -> TxOutput:
        return self._write(
            "upsertWorkflow",
            {
                "workflowName": params.name,
                "tag": params.tag,
                "workflowId": _require_bytes32(params.workflow_id, "workflow ID"),
                "status": params.status,
                "donFamily": params.don_family,
                "binaryUrl": params.binary_url,
                "configUrl": params.config_url,
                "attributes": params.attributes,
                "keepAlive": params.keep_alive,
            },
        )

    def activate_workflow(self, workflow_id: bytes, don_family: str) -> TxOutput:
        return self._write(
            "activateWorkflow",
            {"workflowId": _require_bytes32(workflow_id, "workflow ID"), "donFamily": don_family},
        )

    def batch_pause_workflows(self, workflow_ids: Sequence[bytes]) -> TxOutput:
        if not workflow_ids:
            raise InputValidationError("no workflow IDs to pause")
        ids = [_require_bytes32(w, "workflow ID") for w in workflow_ids]
        return self._write("batchPauseWorkflows", {"workflowIds": ids})

    def delete_workflow(self, workflow_id: bytes) -> TxOutput:
        return self._write("deleteWorkflow", {"workflowId": _require_bytes32(workflow_id, "workflow ID")})

    def allowlist_request(self, request_digest: bytes, expiry_timestamp: int) -> TxOutput:
        return self._write(
            "allowlistRequest",
            {
                "requestDigest": _require_bytes32(request_digest, "request digest"),
                "expiryTimestamp": expiry_timestamp,
            },
        )

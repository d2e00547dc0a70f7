"""ABI of the Workflow Registry v2 contract (the subset this CLI calls, emits and decodes)."""

from __future__ import annotations

from typing import Any

WORKFLOW_REGISTRY_NAME = "WorkflowRegistry"
WORKFLOW_REGISTRY_TYPE_AND_VERSION = "WorkflowRegistry 2.0.0"


def _p(name: str, type_: str, *, indexed: bool | None = None, components: list[Any] | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if indexed is not None:
        out["indexed"] = indexed
    if components is not None:
        out["components"] = components
    return out


def _fn(name: str, inputs: list[Any], outputs: list[Any] | None = None, *, view: bool = False) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs or [],
        "stateMutability": "view" if view else "nonpayable",
    }


def _event(name: str, inputs: list[Any]) -> dict[str, Any]:
    return {"type": "event", "name": name, "inputs": inputs, "anonymous": False}


def _error(name: str, inputs: list[Any] | None = None) -> dict[str, Any]:
    return {"type": "error", "name": name, "inputs": inputs or []}


WORKFLOW_METADATA_VIEW = [
    _p("workflowId", "bytes32"),
    _p("owner", "address"),
    _p("createdAt", "uint64"),
    _p("status", "uint8"),
    _p("workflowName", "string"),
    _p("binaryUrl", "string"),
    _p("configUrl", "string"),
    _p("tag", "string"),
    _p("attributes", "bytes"),
    _p("donFamily", "string"),
]

WORKFLOW_REGISTRY_ABI: list[dict[str, Any]] = [
    # Owner linking
    _fn("linkOwner", [_p("validityTimestamp", "uint256"), _p("proof", "bytes32"), _p("signature", "bytes")]),
    _fn("unlinkOwner", [_p("owner", "address"), _p("validityTimestamp", "uint256"), _p("signature", "bytes")]),
    _fn(
        "canLinkOwner",
        [
            _p("owner", "address"),
            _p("validityTimestamp", "uint256"),
            _p("proof", "bytes32"),
            _p("signature", "bytes"),
        ],
        view=True,
    ),
    _fn(
        "canUnlinkOwner",
        [_p("owner", "address"), _p("validityTimestamp", "uint256"), _p("signature", "bytes")],
        view=True,
    ),
    _fn("isOwnerLinked", [_p("owner", "address")], [_p("", "bool")], view=True),
    _fn(
        "getLinkedOwners",
        [_p("start", "uint256"), _p("limit", "uint256")],
        [_p("owners", "address[]")],
        view=True,
    ),
    _fn("totalLinkedOwners", [], [_p("", "uint256")], view=True),
    # Workflow lifecycle
    _fn(
        "upsertWorkflow",
        [
            _p("workflowName", "string"),
            _p("tag", "string"),
            _p("workflowId", "bytes32"),
            _p("status", "uint8"),
            _p("donFamily", "string"),
            _p("binaryUrl", "string"),
            _p("configUrl", "string"),
            _p("attributes", "bytes"),
            _p("keepAlive", "bool"),
        ],
    ),
    _fn("activateWorkflow", [_p("workflowId", "bytes32"), _p("donFamily", "string")]),
    _fn("batchPauseWorkflows", [_p("workflowIds", "bytes32[]")]),
    _fn("deleteWorkflow", [_p("workflowId", "bytes32")]),
    _fn(
        "getWorkflow",
        [_p("owner", "address"), _p("workflowName", "string"), _p("tag", "string")],
        [_p("workflow", "tuple", components=WORKFLOW_METADATA_VIEW)],
        view=True,
    ),
    _fn(
        "getWorkflowListByOwnerAndName",
        [
            _p("owner", "address"),
            _p("workflowName", "string"),
            _p("start", "uint256"),
            _p("limit", "uint256"),
        ],
        [_p("list", "tuple[]", components=WORKFLOW_METADATA_VIEW)],
        view=True,
    ),
    # Request allowlist
    _fn(
        "isRequestAllowlisted",
        [_p("owner", "address"), _p("requestDigest", "bytes32")],
        [_p("", "bool")],
        view=True,
    ),
    _fn("allowlistRequest", [_p("requestDigest", "bytes32"), _p("expiryTimestamp", "uint32")]),
    _fn("typeAndVersion", [], [_p("", "string")], view=True),
    # Events
    _event(
        "WorkflowRegistered",
        [
            _p("workflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("donFamily", "string", indexed=False),
            _p("status", "uint8", indexed=False),
            _p("workflowName", "string", indexed=False),
        ],
    ),
    _event(
        "WorkflowUpdated",
        [
            _p("oldWorkflowId", "bytes32", indexed=True),
            _p("newWorkflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("donFamily", "string", indexed=False),
            _p("workflowName", "string", indexed=False),
        ],
    ),
    _event(
        "WorkflowActivated",
        [
            _p("workflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("donFamily", "string", indexed=False),
            _p("workflowName", "string", indexed=False),
        ],
    ),
    _event(
        "WorkflowPaused",
        [
            _p("workflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("donFamily", "string", indexed=False),
            _p("workflowName", "string", indexed=False),
        ],
    ),
    _event(
        "WorkflowStatusUpdated",
        [
            _p("workflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("status", "uint8", indexed=False),
        ],
    ),
    _event(
        "WorkflowDeleted",
        [
            _p("workflowId", "bytes32", indexed=True),
            _p("owner", "address", indexed=True),
            _p("donFamily", "string", indexed=False),
            _p("workflowName", "string", indexed=False),
        ],
    ),
    _event(
        "OwnershipLinkUpdated",
        [
            _p("owner", "address", indexed=True),
            _p("proof", "bytes32", indexed=True),
            _p("added", "bool", indexed=True),
        ],
    ),
    _event(
        "RequestAllowlisted",
        [
            _p("owner", "address", indexed=True),
            _p("requestDigest", "bytes32", indexed=True),
            _p("expiryTimestamp", "uint32", indexed=False),
        ],
    ),
    # Custom errors
    _error("WorkflowDoesNotExist"),
    _error("ZeroWorkflowIDNotAllowed"),
    _error("EmptyUpdateBatch"),
    _error("BinaryURLRequired"),
    _error("CallerIsNotWorkflowOwner", [_p("caller", "address")]),
    _error("OwnershipLinkDoesNotExist", [_p("owner", "address")]),
    _error("OwnershipLinkAlreadyExists", [_p("owner", "address")]),
    _error("OwnershipProofAlreadyUsed", [_p("caller", "address"), _p("proof", "bytes32")]),
    _error(
        "LinkOwnerRequestExpired",
        [_p("caller", "address"), _p("currentTime", "uint256"), _p("expiryTimestamp", "uint256")],
    ),
    _error(
        "UnlinkOwnerRequestExpired",
        [_p("caller", "address"), _p("currentTime", "uint256"), _p("expiryTimestamp", "uint256")],
    ),
    _error(
        "InvalidOwnershipLink",
        [
            _p("owner", "address"),
            _p("validityTimestamp", "uint256"),
            _p("proof", "bytes32"),
            _p("signature", "bytes"),
        ],
    ),
    _error("WorkflowIDAlreadyExists", [_p("workflowId", "bytes32")]),
    _error("WorkflowNameTooLong", [_p("provided", "uint256"), _p("maxAllowed", "uint8")]),
    _error("WorkflowTagTooLong", [_p("provided", "uint256"), _p("maxAllowed", "uint8")]),
    _error("URLTooLong", [_p("provided", "uint256"), _p("maxAllowed", "uint8")]),
    _error("AttributesTooBig", [_p("provided", "uint256"), _p("maxAllowed", "uint256")]),
    _error("DonLimitReached", [_p("owner", "address"), _p("donFamily", "string")]),
    _error("CannotChangeStatusOfActiveWorkflow", [_p("workflowId", "bytes32")]),
    _error("WorkflowAlreadyInDesiredStatus"),
]

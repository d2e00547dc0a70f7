"""Test configuration and fixtures."""

from __future__ import annotations

import io
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
from eth_abi import encode as abi_encode
from eth_utils import event_abi_to_log_topic, to_checksum_address

from workflow_cli.chain.codec import ContractCodec, load_registry_codec
from workflow_cli.chain.eth import EthRpc, FeeSuggestion
from workflow_cli.linking.service import LinkRequest
from workflow_cli.secrets import PrivateKey

# Well-known development key (anvil account #0); never used on a real network.
ANVIL_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ANVIL_ADDRESS = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
REGISTRY_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
WASM = b"\x00asm\x01\x00\x00\x00" + b"\x01" * 64

WORKFLOW_VIEW_TYPE = "(bytes32,address,uint64,uint8,string,string,string,string,bytes,string)"


@pytest.fixture
def registry_codec() -> ContractCodec:
    return load_registry_codec()


@pytest.fixture
def private_key() -> PrivateKey:
    return PrivateKey(ANVIL_KEY)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def out() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def mock_rpc() -> Mock:
    """An RPC double that accepts every call and mines every transaction."""

    rpc = Mock(spec=EthRpc)
    rpc.call.return_value = b""
    rpc.estimate_gas.return_value = 100_000
    rpc.fee_suggestion.return_value = FeeSuggestion(
        max_fee_per_gas=2_000_000_000, max_priority_fee_per_gas=1_000_000_000
    )
    rpc.chain_id.return_value = 11155111
    rpc.nonce.return_value = 0
    rpc.send_raw_transaction.return_value = "0x" + "ab" * 32
    rpc.wait_for_receipt.return_value = {"status": 1, "logs": [], "contractAddress": None}
    return rpc


def make_link_request(
    *,
    now: datetime,
    valid_for: timedelta = timedelta(minutes=10),
    proof: bytes = b"\x11" * 32,
    contract_address: str = REGISTRY_ADDRESS,
) -> LinkRequest:
    return LinkRequest(
        owner=ANVIL_ADDRESS,
        valid_until=now + valid_for,
        signature=b"\x22" * 65,
        chain_selector=16015286601757825753,
        contract_address=contract_address,
        proof_hash=proof,
    )


def event_log(codec: ContractCodec, name: str, topics: list[bytes] | None = None, data: bytes = b"") -> dict[str, Any]:
    entry = codec.event(name)
    assert entry is not None
    return {
        "address": REGISTRY_ADDRESS,
        "topics": [bytes(event_abi_to_log_topic(dict(entry)))] + list(topics or []),
        "data": data,
    }


def workflow_view(
    *,
    workflow_id: bytes = b"\x00" + b"\x01" * 31,
    status: int = 0,
    created_at: int = 1,
    name: str = "test_workflow",
    tag: str = "test_workflow",
    don_family: str = "test-family",
) -> tuple[Any, ...]:
    return (
        workflow_id,
        to_checksum_address(ANVIL_ADDRESS),
        created_at,
        status,
        name,
        "https://storage.example/binary",
        "",
        tag,
        b"",
        don_family,
    )


def encode_workflow_list(views: list[tuple[Any, ...]]) -> bytes:
    return abi_encode([WORKFLOW_VIEW_TYPE + "[]"], [views])


def write_workflow_source(root: Path) -> Path:
    """A Go workflow directory; the compiler itself is always a test double."""

    root.mkdir(parents=True, exist_ok=True)
    (root / "main.go").write_text("package main\n", encoding="utf-8")
    return root / "main.go"

"""Unit tests for the account link-key, unlink-key and list-key commands."""

from __future__ import annotations

import io
from datetime import datetime
from unittest.mock import Mock

import pytest

from workflow_cli.account.link_key import LINK_INITIALIZED_HEADER, link_key
from workflow_cli.account.list_key import list_keys
from workflow_cli.account.unlink_key import unlink_key
from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import RawTx, RegularTx, TxClient, TxStrategy
from workflow_cli.config import ETHEREUM_TESTNET_SEPOLIA_SELECTOR
from workflow_cli.errors import CancellationError
from workflow_cli.linking.service import LinkedOwner, LinkingService

from conftest import ANVIL_ADDRESS, REGISTRY_ADDRESS, make_link_request


def _registry(*, linked: bool) -> Mock:
    registry = Mock(spec=WorkflowRegistryClient)
    registry.address = REGISTRY_ADDRESS
    registry.tx = Mock(spec=TxClient)
    registry.tx.chain_name = "ethereum-testnet-sepolia"
    registry.is_owner_linked.return_value = linked
    registry.link_owner.return_value = RegularTx(tx_hash="0x01")
    registry.unlink_owner.return_value = RegularTx(tx_hash="0x02")
    return registry


def test_link_key_when_already_linked_does_nothing(out: io.StringIO) -> None:
    service = Mock(spec=LinkingService)

    result = link_key(registry=_registry(linked=True), service=service, owner=ANVIL_ADDRESS, out=out)

    assert result is None
    assert "already linked" in out.getvalue()
    service.initiate_linking.assert_not_called()


def test_link_key_eoa_submits_link_owner(fixed_now: datetime, out: io.StringIO) -> None:
    registry = _registry(linked=False)
    service = Mock(spec=LinkingService)
    service.initiate_linking.return_value = make_link_request(now=fixed_now)

    result = link_key(
        registry=registry, service=service, owner=ANVIL_ADDRESS, owner_label="ops", clock=lambda: fixed_now, out=out
    )

    assert result == RegularTx(tx_hash="0x01")
    service.initiate_linking.assert_called_once_with(owner=ANVIL_ADDRESS, label="ops", request_process="EOA")
    assert f"Linked {ANVIL_ADDRESS}" in out.getvalue()


def test_link_key_msig_prints_calldata(fixed_now: datetime, out: io.StringIO) -> None:
    registry = _registry(linked=False)
    raw_registry = _registry(linked=False)
    raw_registry.link_owner.return_value = RawTx(to=REGISTRY_ADDRESS, calldata=b"\x0a\x0b")
    registry.with_strategy.return_value = raw_registry
    service = Mock(spec=LinkingService)
    service.initiate_linking.return_value = make_link_request(now=fixed_now)

    result = link_key(
        registry=registry, service=service, owner=ANVIL_ADDRESS, is_msig=True, clock=lambda: fixed_now, out=out
    )

    assert isinstance(result, RawTx)
    registry.with_strategy.assert_called_once_with(TxStrategy.RAW_CALLDATA)
    assert LINK_INITIALIZED_HEADER in out.getvalue()
    assert "0x0a0b" in out.getvalue()


def test_unlink_key_when_not_linked_does_nothing(out: io.StringIO) -> None:
    service = Mock(spec=LinkingService)
    assert unlink_key(registry=_registry(linked=False), service=service, owner=ANVIL_ADDRESS, out=out) is None
    service.initiate_unlinking.assert_not_called()


def test_unlink_key_declined_is_cancelled(out: io.StringIO) -> None:
    service = Mock(spec=LinkingService)
    with pytest.raises(CancellationError):
        unlink_key(
            registry=_registry(linked=True),
            service=service,
            owner=ANVIL_ADDRESS,
            confirm_fn=lambda _question: False,
            out=out,
        )
    service.initiate_unlinking.assert_not_called()


def test_unlink_key_submits_unlink_owner(fixed_now: datetime, out: io.StringIO) -> None:
    registry = _registry(linked=True)
    service = Mock(spec=LinkingService)
    service.initiate_unlinking.return_value = make_link_request(now=fixed_now, proof=b"")

    result = unlink_key(
        registry=registry,
        service=service,
        owner=ANVIL_ADDRESS,
        skip_confirmation=True,
        clock=lambda: fixed_now,
        out=out,
    )

    assert result == RegularTx(tx_hash="0x02")
    registry.can_unlink_owner.assert_called_once()
    assert "Unlinked" in out.getvalue()


def test_list_keys_renders_chain_names(out: io.StringIO) -> None:
    service = Mock(spec=LinkingService)
    service.list_linked_owners.return_value = [
        LinkedOwner(
            address=ANVIL_ADDRESS,
            label="ops",
            environment="PRODUCTION_TESTNET",
            verification_status="VERIFICATION_STATUS_SUCCESSFULL",
            chain_selector=str(ETHEREUM_TESTNET_SEPOLIA_SELECTOR),
            contract_address=REGISTRY_ADDRESS,
            request_process="EOA",
        )
    ]

    owners = list_keys(service, out=out)

    assert len(owners) == 1
    text = out.getvalue()
    assert "Label:        ops" in text
    assert "Chain:        ethereum-testnet-sepolia" in text
    assert "Verified at" not in text


def test_list_keys_without_owners(out: io.StringIO) -> None:
    service = Mock(spec=LinkingService)
    service.list_linked_owners.return_value = []
    assert list_keys(service, out=out) == []
    assert "No linked owners found" in out.getvalue()

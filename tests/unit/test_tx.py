"""Unit tests for transaction strategy dispatch."""

from __future__ import annotations

import io
from types import SimpleNamespace
from typing import Any
from unittest.mock import Mock

import pytest
from eth_utils import keccak

from workflow_cli.chain import tx as tx_module
from workflow_cli.chain.codec import ContractCodec
from workflow_cli.chain.tx import (
    DEFAULT_GAS_LIMIT,
    RawTx,
    RegularTx,
    TxClient,
    TxRequest,
    TxStrategy,
    print_raw_tx,
)
from workflow_cli.errors import (
    CancellationError,
    EventNotEmittedError,
    HardwareWalletUnsupportedError,
    ReceiptFailedError,
    RevertError,
    TxError,
)
from workflow_cli.secrets import PrivateKey

from conftest import REGISTRY_ADDRESS, event_log


def _request(codec: ContractCodec, expected: str = "WorkflowDeleted") -> TxRequest:
    return TxRequest(
        codec=codec,
        function="deleteWorkflow",
        to=REGISTRY_ADDRESS,
        data=codec.encode_call("deleteWorkflow", b"\x01" * 32),
        inputs={"workflowId": b"\x01" * 32},
        expected_events=expected,
    )


def _client(rpc: Mock, key: PrivateKey | None, out: io.StringIO, **kwargs: object) -> TxClient:
    values: dict[str, object] = {
        "rpc": rpc,
        "strategy": TxStrategy.SIGN_SEND,
        "private_key": key,
        "chain_name": "ethereum-testnet-sepolia",
        "explorer_url": "https://sepolia.etherscan.io/",
        "skip_confirmation": True,
        "out": out,
    }
    values.update(kwargs)
    return TxClient(**values)  # type: ignore[arg-type]


def test_raw_strategy_returns_calldata_without_touching_the_chain(
    registry_codec: ContractCodec, mock_rpc: Mock, out: io.StringIO
) -> None:
    client = _client(mock_rpc, None, out, strategy=TxStrategy.RAW_CALLDATA)
    request = _request(registry_codec)

    result = client.execute(request)

    assert isinstance(result, RawTx)
    assert result.to == REGISTRY_ADDRESS
    assert result.calldata == request.data
    mock_rpc.send_raw_transaction.assert_not_called()
    mock_rpc.call.assert_not_called()


def test_hw_wallet_strategy_is_reported_as_unsupported(
    registry_codec: ContractCodec, mock_rpc: Mock, out: io.StringIO
) -> None:
    client = _client(mock_rpc, None, out, strategy=TxStrategy.HW_WALLET)
    with pytest.raises(HardwareWalletUnsupportedError):
        client.execute(_request(registry_codec))
    mock_rpc.send_raw_transaction.assert_not_called()


def test_sign_send_broadcasts_once_and_checks_events(
    registry_codec: ContractCodec, mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO
) -> None:
    mock_rpc.wait_for_receipt.return_value = {
        "status": 1,
        "logs": [event_log(registry_codec, "WorkflowDeleted")],
        "contractAddress": None,
    }
    client = _client(mock_rpc, private_key, out)

    result = client.execute(_request(registry_codec))

    assert isinstance(result, RegularTx)
    assert result.tx_hash == "0x" + "ab" * 32
    assert result.events == ["WorkflowDeleted"]
    mock_rpc.send_raw_transaction.assert_called_once()
    printed = out.getvalue()
    assert "Transaction details:" in printed
    assert "Function:   deleteWorkflow" in printed
    assert f"View on explorer: https://sepolia.etherscan.io/tx/0x{'ab' * 32}" in printed


def test_sign_send_raises_when_no_expected_event_is_present(
    registry_codec: ContractCodec, mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO
) -> None:
    client = _client(mock_rpc, private_key, out)

    with pytest.raises(EventNotEmittedError) as exc:
        client.execute(_request(registry_codec, expected="WorkflowRegistered|WorkflowUpdated"))
    assert exc.value.tx_hash == "0x" + "ab" * 32
    mock_rpc.send_raw_transaction.assert_called_once()


def test_failed_receipt_status_is_a_tx_error(
    registry_codec: ContractCodec, mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO
) -> None:
    mock_rpc.wait_for_receipt.return_value = {"status": 0, "logs": []}
    with pytest.raises(ReceiptFailedError):
        _client(mock_rpc, private_key, out).execute(_request(registry_codec))


def test_simulation_revert_is_decoded_and_nothing_is_sent(
    registry_codec: ContractCodec, mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO
) -> None:
    selector = keccak(text="WorkflowDoesNotExist()")[:4]
    mock_rpc.call.side_effect = RevertError("execution reverted", raw_data="0x" + selector.hex())

    with pytest.raises(RevertError) as exc:
        _client(mock_rpc, private_key, out).execute(_request(registry_codec))
    assert exc.value.error_name == "WorkflowDoesNotExist"
    mock_rpc.send_raw_transaction.assert_not_called()


class CapturingSigner:
    def __init__(self) -> None:
        self.txs: list[dict[str, Any]] = []

    def __call__(self, tx: dict[str, Any], key: str) -> SimpleNamespace:
        self.txs.append(tx)
        return SimpleNamespace(raw_transaction=b"\x02signed")


@pytest.mark.parametrize("estimate,expected_gas", [(100_000, 120_000), (None, DEFAULT_GAS_LIMIT)])
def test_gas_limit_is_padded_or_falls_back_to_default(
    registry_codec: ContractCodec,
    mock_rpc: Mock,
    private_key: PrivateKey,
    out: io.StringIO,
    monkeypatch: pytest.MonkeyPatch,
    estimate: int | None,
    expected_gas: int,
) -> None:
    signer = CapturingSigner()
    monkeypatch.setattr(tx_module.Account, "sign_transaction", signer)
    if estimate is None:
        mock_rpc.estimate_gas.side_effect = ConnectionError("rpc down")
    else:
        mock_rpc.estimate_gas.return_value = estimate
    mock_rpc.wait_for_receipt.return_value = {"status": 1, "logs": [event_log(registry_codec, "WorkflowDeleted")]}

    _client(mock_rpc, private_key, out).execute(_request(registry_codec))

    (tx,) = signer.txs
    assert tx["gas"] == expected_gas
    assert tx["type"] == 2
    assert tx["maxFeePerGas"] == 2_000_000_000
    assert tx["chainId"] == 11155111
    mock_rpc.send_raw_transaction.assert_called_once_with(b"\x02signed")


def test_declining_confirmation_cancels_before_sending(
    registry_codec: ContractCodec, mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO
) -> None:
    client = _client(mock_rpc, private_key, out, skip_confirmation=False, confirm_fn=lambda q: False)
    with pytest.raises(CancellationError):
        client.execute(_request(registry_codec))
    mock_rpc.send_raw_transaction.assert_not_called()


@pytest.mark.parametrize("key", [None, PrivateKey("")])
def test_sign_send_requires_a_key(
    registry_codec: ContractCodec, mock_rpc: Mock, out: io.StringIO, key: PrivateKey | None
) -> None:
    with pytest.raises(TxError, match="ETH_PRIVATE_KEY"):
        _client(mock_rpc, key, out).execute(_request(registry_codec))

    mock_rpc.call.assert_not_called()
    mock_rpc.send_raw_transaction.assert_not_called()


def test_with_strategy_returns_an_independent_client(mock_rpc: Mock, private_key: PrivateKey, out: io.StringIO) -> None:
    client = _client(mock_rpc, private_key, out)
    raw = client.with_strategy(TxStrategy.RAW_CALLDATA)
    assert raw.strategy is TxStrategy.RAW_CALLDATA
    assert client.strategy is TxStrategy.SIGN_SEND
    assert raw.rpc is client.rpc


def test_print_raw_tx_shows_contract_and_calldata(out: io.StringIO) -> None:
    print_raw_tx(
        RawTx(to=REGISTRY_ADDRESS, calldata=b"\x01\x02"),
        chain_name="ethereum-testnet-sepolia",
        header="--unsigned flag detected: transaction not sent on-chain.",
        out=out,
    )
    printed = out.getvalue()
    assert "Next steps:" in printed
    assert f"Contract Address: {REGISTRY_ADDRESS}" in printed
    assert "0x0102" in printed

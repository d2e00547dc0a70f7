"""Transaction dispatch.

A mutating contract call is described once as a `TxRequest`; `TxClient.execute` picks the
strategy and returns a `TxOutput`:

- `RegularTx`  signed locally, broadcast once, receipt and events checked
- `RawTx`      calldata for an external signer, nothing is sent
- `HwWalletTx` reserved for hardware wallet signing
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TextIO

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import Web3

from workflow_cli.chain.codec import ContractCodec
from workflow_cli.chain.eth import EthRpc
from workflow_cli.errors import (
    CancellationError,
    EventNotEmittedError,
    HardwareWalletUnsupportedError,
    ReceiptFailedError,
    RevertError,
    TxError,
)
from workflow_cli.prompt import Confirm, confirm
from workflow_cli.secrets import PrivateKey

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 5_000_000
GAS_LIMIT_BUFFER_PERCENT = 20


class TxStrategy(str, Enum):
    SIGN_SEND = "sign_send"
    RAW_CALLDATA = "raw_calldata"
    HW_WALLET = "hw_wallet"


@dataclass(frozen=True, slots=True)
class TxRequest:
    codec: ContractCodec
    function: str
    to: str | None
    data: bytes
    inputs: dict[str, Any] = field(default_factory=dict)
    expected_events: str = ""

    @property
    def is_deployment(self) -> bool:
        return self.to is None


@dataclass(frozen=True, slots=True)
class RegularTx:
    tx_hash: str
    events: list[str] = field(default_factory=list)
    contract_address: str | None = None
    receipt: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RawTx:
    to: str
    calldata: bytes
    function: str = ""

    @property
    def calldata_hex(self) -> str:
        return "0x" + self.calldata.hex()


@dataclass(frozen=True, slots=True)
class HwWalletTx:
    tx_hash: str


TxOutput = RegularTx | RawTx | HwWalletTx


def print_raw_tx(output: RawTx, *, chain_name: str, header: str, out: TextIO | None = None) -> None:
    """Print calldata and next steps for a transaction that must be signed elsewhere."""

    out = out or sys.stdout
    print(header, file=out)
    print("", file=out)
    print("Next steps:", file=out)
    print("  1. Submit the following transaction on the target chain:", file=out)
    print(f"     Chain:            {chain_name}", file=out)
    print(f"     Contract Address: {output.to}", file=out)
    print("", file=out)
    print("  2. Use the following transaction data:", file=out)
    print("", file=out)
    print(f"     {output.calldata_hex}", file=out)
    print("", file=out)


class TxClient:
    def __init__(
        self,
        *,
        rpc: EthRpc,
        strategy: TxStrategy,
        private_key: PrivateKey | None,
        chain_name: str,
        explorer_url: str = "",
        receipt_timeout_seconds: float = 120.0,
        skip_confirmation: bool = False,
        confirm_fn: Confirm | None = None,
        out: TextIO | None = None,
        ledger_derivation_path: str = "",
    ) -> None:
        self._rpc = rpc
        self._strategy = strategy
        self._private_key = private_key
        self._chain_name = chain_name
        self._explorer_url = explorer_url.rstrip("/")
        self._receipt_timeout = receipt_timeout_seconds
        self._skip_confirmation = skip_confirmation
        self._confirm = confirm_fn or confirm
        self._out = out
        self._ledger_derivation_path = ledger_derivation_path

    @property
    def strategy(self) -> TxStrategy:
        return self._strategy

    @property
    def chain_name(self) -> str:
        return self._chain_name

    @property
    def rpc(self) -> EthRpc:
        return self._rpc

    def with_strategy(self, strategy: TxStrategy) -> TxClient:
        clone = object.__new__(TxClient)
        clone.__dict__.update(self.__dict__)
        clone._strategy = strategy
        return clone

    def _signing_key(self) -> str:
        if self._private_key is None or not self._private_key.get_secret_value():
            raise TxError("ETH_PRIVATE_KEY is required to sign transactions")
        return self._private_key.get_secret_value()

    def explorer_link(self, tx_hash: str) -> str:
        if not self._explorer_url:
            return tx_hash
        return f"{self._explorer_url}/tx/{tx_hash}"

    def _print(self, *lines: str) -> None:
        out = self._out or sys.stdout
        for line in lines:
            print(line, file=out)

    def execute(self, request: TxRequest) -> TxOutput:
        """Run one contract call under the configured strategy."""

        logger.info(
            "Executing contract call",
            extra={"function": request.function, "strategy": self._strategy.value, "to": request.to},
        )
        if self._strategy is TxStrategy.RAW_CALLDATA:
            return RawTx(to=request.to or "", calldata=request.data, function=request.function)
        if self._strategy is TxStrategy.HW_WALLET:
            raise HardwareWalletUnsupportedError(
                "hardware wallet signing is not supported by this tool; "
                "re-run with --unsigned and sign the calldata with your wallet"
            )
        return self._sign_send(request)

    def simulate(self, request: TxRequest, *, sender: str) -> bytes:
        """eth_call the request; reverts come back decoded through the request's codec."""

        if request.to is None:
            return b""
        try:
            return self._rpc.call(to=request.to, data=request.data, sender=sender)
        except RevertError as e:
            raise self._decode_revert(request, e) from e

    def _decode_revert(self, request: TxRequest, error: RevertError) -> RevertError:
        if not error.raw_data:
            return error
        decoded = request.codec.decode_custom_error(error.raw_data)
        logger.debug(
            "Decoded revert",
            extra={"function": request.function, "error": decoded.error_name, "data": error.raw_data},
        )
        return decoded

    def _sign_send(self, request: TxRequest) -> RegularTx:
        key = self._signing_key()
        sender = Account.from_key(key).address
        self.simulate(request, sender=sender)

        try:
            gas = self._rpc.estimate_gas(sender=sender, to=request.to, data=request.data)
            gas = gas * (100 + GAS_LIMIT_BUFFER_PERCENT) // 100
        except RevertError as e:
            raise self._decode_revert(request, e) from e
        except Exception as e:
            logger.warning("Gas estimation failed, using default gas limit", extra={"error": str(e)})
            gas = DEFAULT_GAS_LIMIT

        try:
            fees = self._rpc.fee_suggestion()
        except Exception as e:
            raise TxError(f"failed to get fee suggestion: {e}") from e

        self._print_details(request, gas=gas, gas_price=fees.effective_gas_price)
        if not self._skip_confirmation and not self._confirm("Do you want to execute this transaction?"):
            raise CancellationError("transaction cancelled by user")

        try:
            tx: dict[str, Any] = {
                "chainId": self._rpc.chain_id(),
                "nonce": self._rpc.nonce(sender),
                "gas": gas,
                "value": 0,
                "data": request.data,
            }
        except Exception as e:
            raise TxError(f"rpc: {e}") from e
        if request.to is not None:
            tx["to"] = to_checksum_address(request.to)
        if fees.legacy:
            tx["gasPrice"] = fees.max_fee_per_gas
        else:
            tx["type"] = 2
            tx["maxFeePerGas"] = fees.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas

        signed = Account.sign_transaction(tx, key)
        try:
            tx_hash = self._rpc.send_raw_transaction(bytes(signed.raw_transaction))
        except Exception as e:
            raise TxError(f"failed to send transaction: {e}") from e
        logger.info("Transaction submitted", extra={"tx_hash": tx_hash, "function": request.function})
        self._print(f"Transaction submitted: {tx_hash}", "Waiting for transaction to be mined...")

        receipt = self._rpc.wait_for_receipt(tx_hash, timeout_seconds=self._receipt_timeout)
        if receipt.get("status") != 1:
            raise ReceiptFailedError(f"transaction {tx_hash} failed on-chain (status 0)")

        events = [e.name for e in request.codec.enumerate_events(receipt.get("logs") or [])]
        self._check_events(request, events, tx_hash)

        self._print("Transaction confirmed", f"View on explorer: {self.explorer_link(tx_hash)}")
        return RegularTx(
            tx_hash=tx_hash,
            events=events,
            contract_address=receipt.get("contractAddress"),
            receipt=receipt,
        )

    def _check_events(self, request: TxRequest, events: list[str], tx_hash: str) -> None:
        if not request.expected_events:
            return
        wanted = [name.strip() for name in request.expected_events.split("|") if name.strip()]
        if any(name in events for name in wanted):
            return
        logger.warning(
            "Expected event not found in receipt",
            extra={"tx_hash": tx_hash, "expected": wanted, "found": events},
        )
        raise EventNotEmittedError(
            f"none of the specified events were emitted: {request.expected_events} (tx {tx_hash})",
            tx_hash=tx_hash,
        )

    def _print_details(self, request: TxRequest, *, gas: int, gas_price: int) -> None:
        lines = [
            "Transaction details:",
            f"  Chain Name: {self._chain_name}",
            f"  To:         {request.to or '(contract creation)'}",
            f"  Function:   {request.function}",
            "  Inputs:",
        ]
        for key, value in request.inputs.items():
            rendered = "0x" + value.hex() if isinstance(value, bytes) else value
            lines.append(f"    {key}: {rendered}")
        lines.append(f"  Data:       0x{request.data.hex()}")
        total = gas * gas_price
        lines.extend(
            [
                "Estimated Cost:",
                f"  Gas Price:  {Web3.from_wei(gas_price, 'gwei')} gwei",
                f"  Total Cost: {Web3.from_wei(total, 'ether')} ETH",
            ]
        )
        self._print(*lines)


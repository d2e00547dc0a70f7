"""Thin JSON-RPC wrapper over web3.

Returns plain Python values (ints, bytes, dicts) so callers and tests never touch web3 types.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from workflow_cli.errors import RevertError, TxError

logger = logging.getLogger(__name__)

# Fee suggestions are padded by this percentage above the node's numbers.
FEE_BUFFER_PERCENT = 20


@dataclass(frozen=True, slots=True)
class FeeSuggestion:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    legacy: bool = False

    @property
    def effective_gas_price(self) -> int:
        return self.max_fee_per_gas


def _buffered(value: int) -> int:
    return value * (100 + FEE_BUFFER_PERCENT) // 100


def _receipt_to_dict(receipt: Any) -> dict[str, Any]:
    logs = []
    for log in receipt.get("logs") or []:
        logs.append(
            {
                "address": str(log.get("address", "")),
                "topics": [bytes(t) for t in log.get("topics") or []],
                "data": bytes(log.get("data") or b""),
            }
        )
    tx_hash = receipt.get("transactionHash")
    return {
        "status": int(receipt.get("status", 0)),
        "transactionHash": "0x" + bytes(tx_hash).hex() if tx_hash is not None else "",
        "blockNumber": receipt.get("blockNumber"),
        "gasUsed": receipt.get("gasUsed"),
        "contractAddress": receipt.get("contractAddress"),
        "logs": logs,
    }


class EthRpc:
    def __init__(self, *, url: str, timeout_seconds: float = 60.0, web3: Web3 | None = None) -> None:
        if not url and web3 is None:
            raise ValueError("RPC URL is required (set RPC_URL)")
        self._url = url
        self._w3 = web3 or Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout_seconds}))

    @property
    def url(self) -> str:
        return self._url

    def chain_id(self) -> int:
        return int(self._w3.eth.chain_id)

    def call(self, *, to: str, data: bytes, sender: str | None = None) -> bytes:
        """eth_call against the latest block; a revert raises RevertError carrying the raw data."""

        tx: dict[str, Any] = {"to": to_checksum_address(to), "data": "0x" + data.hex()}
        if sender:
            tx["from"] = to_checksum_address(sender)
        try:
            return bytes(self._w3.eth.call(tx))
        except ContractLogicError as e:
            raise RevertError("execution reverted", raw_data=_revert_data(e)) from e

    def estimate_gas(self, *, sender: str, to: str | None, data: bytes, value: int = 0) -> int:
        tx: dict[str, Any] = {"from": to_checksum_address(sender), "data": "0x" + data.hex()}
        if to:
            tx["to"] = to_checksum_address(to)
        if value:
            tx["value"] = value
        try:
            return int(self._w3.eth.estimate_gas(tx))
        except ContractLogicError as e:
            raise RevertError("execution reverted", raw_data=_revert_data(e)) from e

    def gas_price(self) -> int:
        return int(self._w3.eth.gas_price)

    def fee_suggestion(self) -> FeeSuggestion:
        """EIP-1559 fees with headroom; chains without a base fee fall back to gas price."""

        block = self._w3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            price = _buffered(self.gas_price())
            return FeeSuggestion(max_fee_per_gas=price, max_priority_fee_per_gas=price, legacy=True)
        tip = _buffered(int(self._w3.eth.max_priority_fee))
        return FeeSuggestion(max_fee_per_gas=_buffered(int(base_fee)) + tip, max_priority_fee_per_gas=tip)

    def nonce(self, address: str) -> int:
        return int(self._w3.eth.get_transaction_count(to_checksum_address(address), "pending"))

    def send_raw_transaction(self, raw: bytes) -> str:
        tx_hash = self._w3.eth.send_raw_transaction(raw)
        return "0x" + bytes(tx_hash).hex()

    def wait_for_receipt(self, tx_hash: str, *, timeout_seconds: float = 120.0) -> dict[str, Any]:
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout_seconds)
        except TimeExhausted as e:
            raise TxError(f"timed out waiting for receipt of {tx_hash}") from e
        return _receipt_to_dict(receipt)

    def code_at(self, address: str) -> bytes:
        return bytes(self._w3.eth.get_code(to_checksum_address(address)))


def _revert_data(error: ContractLogicError) -> str:
    data = getattr(error, "data", None)
    if isinstance(data, bytes):
        return "0x" + data.hex()
    if isinstance(data, str) and data.startswith("0x"):
        return data
    return ""

"""Calldata codec built from a JSON ABI.

`ContractCodec` is the only thing the registry client and the contract deployer know about a
contract's binary interface: encode a call, decode its outputs, find events in receipt logs and
turn revert data into a named error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import (
    event_abi_to_log_topic,
    function_abi_to_4byte_selector,
    keccak,
    to_checksum_address,
)
from eth_utils.abi import collapse_if_tuple

from workflow_cli.chain.registry_abi import WORKFLOW_REGISTRY_ABI, WORKFLOW_REGISTRY_NAME
from workflow_cli.errors import RevertError

logger = logging.getLogger(__name__)

ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")
PANIC_SELECTOR = bytes.fromhex("4e487b71")


def _types(params: Sequence[Mapping[str, Any]]) -> list[str]:
    return [collapse_if_tuple(dict(p)) for p in params]


def _signature(name: str, params: Sequence[Mapping[str, Any]]) -> str:
    return f"{name}({','.join(_types(params))})"


def _to_python(value: Any, param: Mapping[str, Any]) -> Any:
    """Turn decoded tuples into dicts keyed by component name."""

    type_ = param["type"]
    if type_.endswith("[]"):
        inner = dict(param, type=type_[:-2])
        return [_to_python(v, inner) for v in value]
    if type_ == "tuple":
        components = param.get("components") or []
        return {c["name"]: _to_python(v, c) for c, v in zip(components, value)}
    return value


def _prepare(value: Any, type_: str) -> Any:
    """Normalise Python values into what eth-abi expects for a given ABI type."""

    if type_.endswith("[]"):
        return [_prepare(v, type_[:-2]) for v in value]
    if type_ == "address" and isinstance(value, str):
        return to_checksum_address(value)
    if (type_ == "bytes" or type_.startswith("bytes")) and isinstance(value, str):
        text = value[2:] if value.startswith("0x") else value
        return bytes.fromhex(text)
    return value


def hex_to_bytes32(value: str | bytes) -> bytes:
    """Decode a 0x-hex (or raw) value that must be exactly 32 bytes long."""

    raw = value
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"invalid hex value: {e}") from e
    if len(raw) != 32:
        raise ValueError(f"value must be 32 bytes, got {len(raw)}")
    return bytes(raw)


@dataclass(frozen=True, slots=True)
class DecodedEvent:
    name: str
    address: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContractCodec:
    name: str
    abi: tuple[Mapping[str, Any], ...]

    @classmethod
    def from_abi(cls, name: str, abi: Iterable[Mapping[str, Any]]) -> ContractCodec:
        return cls(name=name, abi=tuple(abi))

    def _entries(self, kind: str) -> list[Mapping[str, Any]]:
        return [e for e in self.abi if e.get("type") == kind]

    def function(self, fn_name: str) -> Mapping[str, Any]:
        for entry in self._entries("function"):
            if entry.get("name") == fn_name:
                return entry
        raise KeyError(f"{self.name} has no function {fn_name!r}")

    def event(self, event_name: str) -> Mapping[str, Any] | None:
        for entry in self._entries("event"):
            if entry.get("name") == event_name:
                return entry
        return None

    def constructor(self) -> Mapping[str, Any] | None:
        entries = self._entries("constructor")
        return entries[0] if entries else None

    def encode_call(self, fn_name: str, *args: Any) -> bytes:
        fn = self.function(fn_name)
        inputs = fn.get("inputs") or []
        if len(args) != len(inputs):
            raise ValueError(f"{fn_name} expects {len(inputs)} arguments, got {len(args)}")
        types = _types(inputs)
        prepared = [_prepare(a, p["type"]) for a, p in zip(args, inputs)]
        return bytes(function_abi_to_4byte_selector(dict(fn))) + abi_encode(types, prepared)

    def decode_outputs(self, fn_name: str, data: bytes) -> list[Any]:
        fn = self.function(fn_name)
        outputs = fn.get("outputs") or []
        if not outputs:
            return []
        values = abi_decode(_types(outputs), bytes(data))
        return [_to_python(v, p) for v, p in zip(values, outputs)]

    def encode_deploy(self, bytecode: bytes, *args: Any) -> bytes:
        ctor = self.constructor()
        inputs = (ctor or {}).get("inputs") or []
        if len(args) != len(inputs):
            raise ValueError(f"{self.name} constructor expects {len(inputs)} arguments, got {len(args)}")
        if not inputs:
            return bytes(bytecode)
        prepared = [_prepare(a, p["type"]) for a, p in zip(args, inputs)]
        return bytes(bytecode) + abi_encode(_types(inputs), prepared)

    def enumerate_events(self, logs: Iterable[Mapping[str, Any]]) -> list[DecodedEvent]:
        """Match receipt logs against the ABI's events by topic0; unknown logs are skipped."""

        by_topic = {bytes(event_abi_to_log_topic(dict(e))): e for e in self._entries("event")}
        found: list[DecodedEvent] = []
        for log in logs:
            topics = [bytes(t) for t in (log.get("topics") or [])]
            if not topics or topics[0] not in by_topic:
                continue
            entry = by_topic[topics[0]]
            found.append(
                DecodedEvent(
                    name=entry["name"],
                    address=str(log.get("address", "")).lower(),
                    args=self._decode_event_args(entry, topics[1:], bytes(log.get("data") or b"")),
                )
            )
        return found

    def _decode_event_args(
        self, entry: Mapping[str, Any], topics: list[bytes], data: bytes
    ) -> dict[str, Any]:
        inputs = entry.get("inputs") or []
        indexed = [p for p in inputs if p.get("indexed")]
        plain = [p for p in inputs if not p.get("indexed")]
        args: dict[str, Any] = {}
        try:
            for param, topic in zip(indexed, topics):
                # Dynamic indexed values are stored as their hash.
                if param["type"] in {"string", "bytes"} or param["type"].endswith("[]"):
                    args[param["name"]] = topic
                else:
                    args[param["name"]] = abi_decode([param["type"]], topic)[0]
            if plain:
                values = abi_decode(_types(plain), data)
                for param, value in zip(plain, values):
                    args[param["name"]] = _to_python(value, param)
        except DecodingError:
            logger.debug("Could not decode event arguments", extra={"event": entry["name"]})
        return args

    def decode_custom_error(self, data: bytes | str) -> RevertError:
        """Decode revert data into a named error; unknown selectors keep the raw data."""

        if isinstance(data, str):
            text = data[2:] if data.startswith("0x") else data
            data = bytes.fromhex(text)
        raw_hex = "0x" + data.hex()
        if len(data) < 4:
            return RevertError("execution reverted", raw_data=raw_hex)

        selector, payload = data[:4], data[4:]
        try:
            if selector == ERROR_STRING_SELECTOR:
                (reason,) = abi_decode(["string"], payload)
                return RevertError("Error", {"reason": reason}, raw_hex)
            if selector == PANIC_SELECTOR:
                (code,) = abi_decode(["uint256"], payload)
                return RevertError("Panic", {"code": hex(code)}, raw_hex)
            for entry in self._entries("error"):
                inputs = entry.get("inputs") or []
                if keccak(text=_signature(entry["name"], inputs))[:4] != selector:
                    continue
                values = abi_decode(_types(inputs), payload) if inputs else ()
                arguments = {
                    (p.get("name") or f"arg{i}"): _render(_to_python(v, p))
                    for i, (p, v) in enumerate(zip(inputs, values))
                }
                return RevertError(entry["name"], arguments, raw_hex)
        except DecodingError:
            logger.debug("Could not decode revert payload", extra={"data": raw_hex})
        return RevertError("UnknownError", {"selector": "0x" + selector.hex()}, raw_hex)

    def error_selectors(self) -> dict[str, str]:
        return {
            entry["name"]: "0x" + keccak(text=_signature(entry["name"], entry.get("inputs") or []))[:4].hex()
            for entry in self._entries("error")
        }


def _render(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return value


def load_registry_codec() -> ContractCodec:
    return ContractCodec.from_abi(WORKFLOW_REGISTRY_NAME, WORKFLOW_REGISTRY_ABI)

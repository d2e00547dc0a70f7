"""Deploy a project's own contracts from `contracts/contracts.yaml`.

Layout under the project root:

    contracts/contracts.yaml          chain + contracts[{name, package, deploy, constructor[{type, value}]}]
    contracts/evm/src/*.sol           optional Solidity sources, compiled with `forge build`
    contracts/evm/src/abi/<Name>.abi  ABI JSON
    contracts/evm/src/abi/<Name>.bin  creation bytecode (hex)
    contracts/deployed_contracts.yaml written after a successful deployment (mode 0600)
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TextIO

import yaml
from eth_utils import is_address, to_checksum_address

from workflow_cli.chain.codec import ContractCodec
from workflow_cli.chain.tx import RegularTx, TxClient, TxRequest
from workflow_cli.config import CHAIN_SELECTORS, chain_selector_for_name
from workflow_cli.errors import (
    BuildError,
    CancellationError,
    InputValidationError,
    ToolchainNotFoundError,
    TxError,
)
from workflow_cli.prompt import Confirm, confirm

logger = logging.getLogger(__name__)

CONTRACTS_DIR = "contracts"
CONFIG_FILE = "contracts.yaml"
OUTPUT_FILE = "deployed_contracts.yaml"

FORGE_MISSING_MESSAGE = (
    "forge is required to compile Solidity contracts but was not found in PATH; "
    "install Foundry with `curl -L https://foundry.paradigm.xyz | bash && foundryup`"
)

_BASE_TYPES = {"address", "bool", "string", "bytes", "int", "uint"}
_BASE_TYPES.update(f"int{n}" for n in range(8, 257, 8))
_BASE_TYPES.update(f"uint{n}" for n in range(8, 257, 8))
_BASE_TYPES.update(f"bytes{n}" for n in range(1, 33))


def is_valid_solidity_type(type_: str) -> bool:
    base = type_[:-2] if type_.endswith("[]") else type_
    return base in _BASE_TYPES


def types_match(config_type: str, abi_type: str) -> bool:
    """Compare a configured type with the ABI type; `uint`/`int` alias the 256-bit forms."""

    config_type = config_type.strip().lower()
    abi_type = abi_type.strip().lower()
    aliases = {"uint": "uint256", "int": "int256"}
    return aliases.get(config_type, config_type) == aliases.get(abi_type, abi_type)


@dataclass(frozen=True, slots=True)
class ConstructorArg:
    type: str
    value: Any


@dataclass(frozen=True, slots=True)
class ContractConfig:
    name: str
    package: str
    deploy: bool = False
    constructor: list[ConstructorArg] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ContractsConfig:
    chain: str
    contracts: list[ContractConfig]

    def contracts_to_deploy(self) -> list[ContractConfig]:
        return [c for c in self.contracts if c.deploy]


@dataclass(frozen=True, slots=True)
class DeploymentResult:
    name: str
    address: str
    tx_hash: str


def parse_contracts_config(path: Path) -> ContractsConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InputValidationError(f"failed to read config file: {e}") from e
    except yaml.YAMLError as e:
        raise InputValidationError(f"failed to parse YAML: {e}") from e
    if not isinstance(raw, dict):
        raise InputValidationError(f"invalid {path.name}: expected a mapping at the top level")

    contracts: list[ContractConfig] = []
    for item in raw.get("contracts") or []:
        if not isinstance(item, dict):
            raise InputValidationError(f"invalid {path.name}: each contract must be a mapping")
        args = [
            ConstructorArg(type=str(a.get("type", "")), value=a.get("value"))
            for a in item.get("constructor") or []
            if isinstance(a, dict)
        ]
        contracts.append(
            ContractConfig(
                name=str(item.get("name") or ""),
                package=str(item.get("package") or ""),
                deploy=bool(item.get("deploy", False)),
                constructor=args,
            )
        )
    config = ContractsConfig(chain=str(raw.get("chain") or ""), contracts=contracts)
    validate_contracts_config(config)
    return config


def validate_contracts_config(config: ContractsConfig) -> None:
    if not config.chain.strip():
        raise InputValidationError("invalid contracts.yaml: chain is required")
    if config.chain not in CHAIN_SELECTORS:
        raise InputValidationError(f"invalid contracts.yaml: invalid chain name: {config.chain}")
    if not config.contracts:
        raise InputValidationError("invalid contracts.yaml: at least one contract must be defined")

    seen: set[str] = set()
    for i, contract in enumerate(config.contracts):
        if not contract.name.strip():
            raise InputValidationError(f"invalid contracts.yaml: contract[{i}]: name is required")
        if contract.name in seen:
            raise InputValidationError(f"invalid contracts.yaml: duplicate contract name: {contract.name}")
        seen.add(contract.name)
        if not contract.package.strip():
            raise InputValidationError(
                f"invalid contracts.yaml: contract[{i}] ({contract.name}): package is required"
            )
        for j, arg in enumerate(contract.constructor):
            if not arg.type.strip():
                raise InputValidationError(
                    f"invalid contracts.yaml: contract[{i}] ({contract.name}): constructor[{j}]: type is required"
                )
            if not is_valid_solidity_type(arg.type):
                raise InputValidationError(
                    f"invalid contracts.yaml: contract[{i}] ({contract.name}): "
                    f"constructor[{j}]: invalid type {arg.type!r}"
                )


def _int_bounds(abi_type: str) -> tuple[int, int]:
    signed = abi_type.startswith("int")
    bits = int(abi_type[3 if signed else 4 :] or 256)
    if signed:
        return -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    return 0, 2**bits - 1


def parse_arg_value(value: Any, abi_type: str) -> Any:
    """Coerce a configured constructor value into the Python value eth-abi expects."""

    if abi_type.endswith("[]"):
        items = value if isinstance(value, list) else [v.strip() for v in str(value).split(",") if v.strip()]
        return [parse_arg_value(v, abi_type[:-2]) for v in items]

    text = str(value).strip() if value is not None else ""
    if abi_type == "address":
        if not is_address(text):
            raise ValueError(f"invalid address: {text}")
        return to_checksum_address(text)
    if abi_type.startswith(("uint", "int")):
        try:
            number = value if isinstance(value, int) and not isinstance(value, bool) else int(text, 0)
        except ValueError as e:
            raise ValueError(f"invalid integer: {text}") from e
        low, high = _int_bounds(abi_type)
        if not low <= number <= high:
            raise ValueError(f"value {text} overflows {abi_type}")
        return number
    if abi_type == "bool":
        if isinstance(value, bool):
            return value
        lowered = text.lower()
        if lowered in {"true", "1"}:
            return True
        if lowered in {"false", "0"}:
            return False
        raise ValueError(f"invalid boolean: {text}")
    if abi_type == "string":
        return text
    if abi_type.startswith("bytes"):
        hex_text = text[2:] if text.startswith("0x") else text
        try:
            raw = bytes.fromhex(hex_text)
        except ValueError as e:
            raise ValueError(f"invalid hex bytes: {text}") from e
        if abi_type != "bytes" and len(raw) != int(abi_type[5:]):
            raise ValueError(f"{abi_type} expects {abi_type[5:]} bytes, got {len(raw)}")
        return raw
    raise ValueError(f"unsupported type {abi_type}")


def constructor_args(contract: ContractConfig, codec: ContractCodec) -> list[Any]:
    ctor = codec.constructor()
    inputs = list((ctor or {}).get("inputs") or [])
    if not inputs:
        if contract.constructor:
            raise InputValidationError(
                f"contract has no constructor arguments but {len(contract.constructor)} were provided"
            )
        return []
    if len(inputs) != len(contract.constructor):
        raise InputValidationError(
            f"expected {len(inputs)} constructor arguments, got {len(contract.constructor)}"
        )

    args: list[Any] = []
    for i, (arg, param) in enumerate(zip(contract.constructor, inputs)):
        if not types_match(arg.type, param["type"]):
            logger.warning(
                "Type mismatch warning - proceeding with ABI type",
                extra={"config_type": arg.type, "abi_type": param["type"], "arg_index": i},
            )
        try:
            args.append(parse_arg_value(arg.value, param["type"]))
        except ValueError as e:
            raise InputValidationError(
                f"failed to parse argument {i} ({param.get('name', '')}): {e}"
            ) from e
    return args


def load_contract_artifacts(abi_dir: Path, name: str) -> tuple[ContractCodec, bytes]:
    abi_path = abi_dir / f"{name}.abi"
    bin_path = abi_dir / f"{name}.bin"
    try:
        abi = json.loads(abi_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InputValidationError(f"no ABI file for {name} at {abi_path}") from e
    except json.JSONDecodeError as e:
        raise InputValidationError(f"failed to parse ABI for {name}: {e}") from e
    try:
        bin_text = bin_path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise InputValidationError(
            f"no BIN file for {name} at {bin_path}; compile your Solidity contracts to generate .bin files"
        ) from e
    bytecode = bytes.fromhex(bin_text[2:] if bin_text.startswith("0x") else bin_text)
    if not bytecode:
        raise InputValidationError(f"contract {name} has no bytecode")
    return ContractCodec.from_abi(name, abi), bytecode


def write_deployed_contracts(
    path: Path, chain_name: str, results: list[DeploymentResult], *, now: datetime | None = None
) -> Path:
    now = now or datetime.now(UTC)
    payload = {
        "chain_id": chain_selector_for_name(chain_name),
        "chain_name": chain_name,
        "timestamp": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "contracts": {r.name: {"address": r.address, "tx_hash": r.tx_hash} for r in results},
    }
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False)
    os.chmod(path, 0o600)
    return path


class ContractProject:
    """A project root holding a `contracts/` folder."""

    def __init__(
        self,
        root: Path,
        *,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.root = root
        self.contracts_dir = root / CONTRACTS_DIR
        self.config_path = self.contracts_dir / CONFIG_FILE
        self.output_path = self.contracts_dir / OUTPUT_FILE
        self.evm_dir = self.contracts_dir / "evm"
        self.abi_dir = self.evm_dir / "src" / "abi"
        self._run = runner
        self._which = which

    def load_config(self) -> ContractsConfig:
        if not self.contracts_dir.is_dir():
            raise InputValidationError(
                f"contracts folder not found at {self.contracts_dir}. "
                "Create a contracts/ folder in your project root"
            )
        if not self.config_path.is_file():
            raise InputValidationError(
                f"contracts.yaml not found at {self.config_path}. "
                "Create a contracts.yaml file in your contracts/ folder"
            )
        return parse_contracts_config(self.config_path)

    def compile(self, config: ContractsConfig) -> None:
        """Run `forge build` when Solidity sources exist and extract `.bin` files."""

        if not any((self.evm_dir / "src").glob("*.sol")):
            logger.debug("No Solidity files found, skipping compilation")
            return
        if self._which("forge") is None:
            raise ToolchainNotFoundError(FORGE_MISSING_MESSAGE)

        result = self._run(
            ["forge", "build"],
            cwd=self.evm_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
        output = result.stdout or b""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        if result.returncode != 0:
            raise BuildError(f"forge build failed: exit status {result.returncode}\n{output.strip()}")
        self._extract_bytecode(config)

    def _extract_bytecode(self, config: ContractsConfig) -> None:
        out_dir = self.evm_dir / "out"
        if not out_dir.is_dir():
            raise BuildError(f"forge output directory not found at {out_dir}")
        self.abi_dir.mkdir(parents=True, exist_ok=True)
        for contract in config.contracts_to_deploy():
            artifact_path = out_dir / f"{contract.name}.sol" / f"{contract.name}.json"
            if not artifact_path.is_file():
                logger.debug("No compiled artifact found", extra={"contract": contract.name})
                continue
            try:
                artifact = json.loads(artifact_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to read artifact", extra={"contract": contract.name, "error": str(e)})
                continue
            bytecode = str((artifact.get("bytecode") or {}).get("object") or "").strip()
            if bytecode in {"", "0x"}:
                logger.debug("No bytecode in artifact", extra={"contract": contract.name})
                continue
            bin_path = self.abi_dir / f"{contract.name}.bin"
            fd = os.open(bin_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(bytecode)
            if "abi" in artifact and not (self.abi_dir / f"{contract.name}.abi").exists():
                (self.abi_dir / f"{contract.name}.abi").write_text(json.dumps(artifact["abi"]), encoding="utf-8")
            logger.debug("Extracted bytecode", extra={"contract": contract.name, "path": str(bin_path)})


def deploy_contract(tx: TxClient, contract: ContractConfig, codec: ContractCodec, bytecode: bytes) -> DeploymentResult:
    args = constructor_args(contract, codec)
    request = TxRequest(
        codec=codec,
        function=f"deploy {contract.name}",
        to=None,
        data=codec.encode_deploy(bytecode, *args),
        inputs={f"arg{i}": a for i, a in enumerate(args)},
    )
    output = tx.execute(request)
    if not isinstance(output, RegularTx) or not output.contract_address:
        raise TxError(f"deployment of {contract.name} did not produce a contract address")
    return DeploymentResult(name=contract.name, address=str(output.contract_address), tx_hash=output.tx_hash)


def deploy_contracts(
    project: ContractProject,
    *,
    tx_factory: Callable[[str], TxClient],
    dry_run: bool = False,
    skip_confirmation: bool = False,
    confirm_fn: Confirm | None = None,
    out: TextIO | None = None,
) -> list[DeploymentResult]:
    out = out or sys.stdout
    confirm_fn = confirm_fn or confirm

    config = project.load_config()
    project.compile(config)

    print("Contract Deployment", file=out)
    print("===================", file=out)
    print(f"Project Root:    {project.root}", file=out)
    print(f"Target Chain:    {config.chain}", file=out)
    print(f"Config File:     {project.config_path}", file=out)
    print("Contracts:", file=out)
    for contract in config.contracts:
        print(f"  - {contract.name} ({contract.package}): {'deploy' if contract.deploy else 'skip'}", file=out)

    to_deploy = config.contracts_to_deploy()
    artifacts = {c.name: load_contract_artifacts(project.abi_dir, c.name) for c in to_deploy}
    for contract in to_deploy:
        constructor_args(contract, artifacts[contract.name][0])

    if dry_run:
        print("[DRY RUN] Configuration validated successfully. No contracts were deployed.", file=out)
        return []
    if not to_deploy:
        print("No contracts marked for deployment.", file=out)
        return []
    if not skip_confirmation and not confirm_fn(f"Deploy {len(to_deploy)} contract(s) to {config.chain}?"):
        raise CancellationError("deployment cancelled by user")

    tx = tx_factory(config.chain)
    results: list[DeploymentResult] = []
    for contract in to_deploy:
        print(f"Deploying {contract.name}...", file=out)
        codec, bytecode = artifacts[contract.name]
        try:
            result = deploy_contract(tx, contract, codec, bytecode)
        except TxError as e:
            raise TxError(f"failed to deploy {contract.name}: {e}") from e
        results.append(result)
        print(f"  Address: {result.address}", file=out)
        print(f"  Tx Hash: {result.tx_hash}", file=out)

    write_deployed_contracts(project.output_path, config.chain, results)
    print("[OK] Contracts deployed successfully", file=out)
    print(f"Deployed addresses saved to: {project.output_path}", file=out)
    return results

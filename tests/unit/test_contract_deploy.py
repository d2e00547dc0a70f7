"""Unit tests for contract deployment from contracts.yaml."""

from __future__ import annotations

import io
import json
import stat
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
import yaml
from eth_abi import encode as abi_encode

from workflow_cli.chain.codec import ContractCodec
from workflow_cli.chain.tx import RawTx, RegularTx, TxClient, TxRequest
from workflow_cli.config import ETHEREUM_TESTNET_SEPOLIA_SELECTOR
from workflow_cli.contract.deploy import (
    ConstructorArg,
    ContractConfig,
    ContractProject,
    ContractsConfig,
    DeploymentResult,
    constructor_args,
    deploy_contract,
    deploy_contracts,
    parse_arg_value,
    parse_contracts_config,
    types_match,
    validate_contracts_config,
    write_deployed_contracts,
)
from workflow_cli.errors import (
    BuildError,
    CancellationError,
    InputValidationError,
    ToolchainNotFoundError,
    TxError,
)

from conftest import ANVIL_ADDRESS

BYTECODE = bytes.fromhex("6080604052")
CONTRACT_ADDRESS = "0x" + "cd" * 20

STORAGE_ABI: list[dict[str, Any]] = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "limit", "type": "uint256"},
        ],
    }
]


def _write_project(root: Path, contracts_yaml: str, *, abi: list[dict[str, Any]] | None = None) -> ContractProject:
    contracts = root / "contracts"
    abi_dir = contracts / "evm" / "src" / "abi"
    abi_dir.mkdir(parents=True)
    (contracts / "contracts.yaml").write_text(contracts_yaml, encoding="utf-8")
    (abi_dir / "Storage.abi").write_text(json.dumps(STORAGE_ABI if abi is None else abi), encoding="utf-8")
    (abi_dir / "Storage.bin").write_text("0x" + BYTECODE.hex(), encoding="utf-8")
    return ContractProject(root, which=lambda _name: None)


PROJECT_YAML = f"""
chain: ethereum-testnet-sepolia
contracts:
  - name: Storage
    package: storage
    deploy: true
    constructor:
      - type: address
        value: "{ANVIL_ADDRESS}"
      - type: uint
        value: 42
  - name: Unused
    package: unused
"""


def _tx(contract_address: str | None = CONTRACT_ADDRESS) -> Mock:
    tx = Mock(spec=TxClient)
    tx.execute.return_value = RegularTx(tx_hash="0x" + "ab" * 32, contract_address=contract_address)
    return tx


def test_types_match_treats_uint_and_int_as_256_bit() -> None:
    assert types_match("uint", "uint256")
    assert types_match("INT", "int256")
    assert types_match("address", "address")
    assert not types_match("uint8", "uint256")


@pytest.mark.parametrize(
    ("value", "abi_type", "expected"),
    [
        ("0x10", "uint256", 16),
        (7, "uint8", 7),
        ("-1", "int8", -1),
        ("true", "bool", True),
        ("0", "bool", False),
        ("hello", "string", "hello"),
        ("0xdead", "bytes", b"\xde\xad"),
        ("1, 2,3", "uint256[]", [1, 2, 3]),
        ([True, "false"], "bool[]", [True, False]),
        (ANVIL_ADDRESS, "address", "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"),
    ],
)
def test_parse_arg_value(value: Any, abi_type: str, expected: Any) -> None:
    assert parse_arg_value(value, abi_type) == expected


@pytest.mark.parametrize(
    ("value", "abi_type", "message"),
    [
        ("256", "uint8", "overflows"),
        ("-1", "uint256", "overflows"),
        ("abc", "uint256", "invalid integer"),
        ("maybe", "bool", "invalid boolean"),
        ("0x1234", "bytes32", "expects 32 bytes"),
        ("0x12", "address", "invalid address"),
    ],
)
def test_parse_arg_value_rejects_bad_values(value: Any, abi_type: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_arg_value(value, abi_type)


@pytest.mark.parametrize(
    ("config", "message"),
    [
        (ContractsConfig(chain="", contracts=[]), "chain is required"),
        (ContractsConfig(chain="mars", contracts=[]), "invalid chain name"),
        (ContractsConfig(chain="ethereum-testnet-sepolia", contracts=[]), "at least one contract"),
        (
            ContractsConfig(chain="ethereum-testnet-sepolia", contracts=[ContractConfig(name="", package="p")]),
            r"contract\[0\]: name is required",
        ),
        (
            ContractsConfig(
                chain="ethereum-testnet-sepolia",
                contracts=[ContractConfig(name="A", package="p"), ContractConfig(name="A", package="p")],
            ),
            "duplicate contract name",
        ),
        (
            ContractsConfig(chain="ethereum-testnet-sepolia", contracts=[ContractConfig(name="A", package="")]),
            "package is required",
        ),
        (
            ContractsConfig(
                chain="ethereum-testnet-sepolia",
                contracts=[ContractConfig(name="A", package="p", constructor=[ConstructorArg("uint7", 1)])],
            ),
            "invalid type",
        ),
    ],
)
def test_validate_contracts_config(config: ContractsConfig, message: str) -> None:
    with pytest.raises(InputValidationError, match=message):
        validate_contracts_config(config)


def test_parse_contracts_config_reads_yaml(tmp_path: Path) -> None:
    path = tmp_path / "contracts.yaml"
    path.write_text(PROJECT_YAML, encoding="utf-8")

    config = parse_contracts_config(path)

    assert config.chain == "ethereum-testnet-sepolia"
    assert [c.name for c in config.contracts_to_deploy()] == ["Storage"]
    assert config.contracts[0].constructor[1] == ConstructorArg(type="uint", value=42)


def test_parse_contracts_config_rejects_broken_yaml(tmp_path: Path) -> None:
    path = tmp_path / "contracts.yaml"
    path.write_text("chain: [unclosed\n", encoding="utf-8")
    with pytest.raises(InputValidationError, match="failed to parse YAML"):
        parse_contracts_config(path)


def test_constructor_args_count_must_match() -> None:
    codec = ContractCodec.from_abi("Storage", STORAGE_ABI)
    with pytest.raises(InputValidationError, match="expected 2 constructor arguments, got 1"):
        constructor_args(
            ContractConfig(name="Storage", package="s", constructor=[ConstructorArg("address", ANVIL_ADDRESS)]),
            codec,
        )

    bare = ContractCodec.from_abi("Bare", [])
    with pytest.raises(InputValidationError, match="no constructor arguments but 1 were provided"):
        constructor_args(ContractConfig(name="Bare", package="b", constructor=[ConstructorArg("uint", 1)]), bare)


def test_deploy_contract_sends_creation_transaction() -> None:
    codec = ContractCodec.from_abi("Storage", STORAGE_ABI)
    contract = ContractConfig(
        name="Storage",
        package="storage",
        deploy=True,
        constructor=[ConstructorArg("address", ANVIL_ADDRESS), ConstructorArg("uint", "42")],
    )
    tx = _tx()

    result = deploy_contract(tx, contract, codec, BYTECODE)

    assert result == DeploymentResult(name="Storage", address=CONTRACT_ADDRESS, tx_hash="0x" + "ab" * 32)
    request: TxRequest = tx.execute.call_args.args[0]
    assert request.is_deployment
    assert request.data == BYTECODE + abi_encode(["address", "uint256"], [ANVIL_ADDRESS, 42])


def test_deploy_contract_requires_a_contract_address() -> None:
    codec = ContractCodec.from_abi("Bare", [])
    tx = _tx(contract_address=None)
    with pytest.raises(TxError, match="did not produce a contract address"):
        deploy_contract(tx, ContractConfig(name="Bare", package="b"), codec, BYTECODE)

    tx.execute.return_value = RawTx(to="", calldata=BYTECODE)
    with pytest.raises(TxError):
        deploy_contract(tx, ContractConfig(name="Bare", package="b"), codec, BYTECODE)


def test_write_deployed_contracts(tmp_path: Path, fixed_now: datetime) -> None:
    path = tmp_path / "deployed_contracts.yaml"
    results = [DeploymentResult(name="Storage", address=CONTRACT_ADDRESS, tx_hash="0x01")]

    write_deployed_contracts(path, "ethereum-testnet-sepolia", results, now=fixed_now)

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data == {
        "chain_id": ETHEREUM_TESTNET_SEPOLIA_SELECTOR,
        "chain_name": "ethereum-testnet-sepolia",
        "timestamp": "2025-01-01T12:00:00Z",
        "contracts": {"Storage": {"address": CONTRACT_ADDRESS, "tx_hash": "0x01"}},
    }
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_dry_run_validates_without_deploying(tmp_path: Path, out: io.StringIO) -> None:
    project = _write_project(tmp_path, PROJECT_YAML)
    tx_factory = Mock()

    results = deploy_contracts(project, tx_factory=tx_factory, dry_run=True, out=out)

    assert results == []
    tx_factory.assert_not_called()
    text = out.getvalue()
    assert "Target Chain:    ethereum-testnet-sepolia" in text
    assert "  - Storage (storage): deploy" in text
    assert "  - Unused (unused): skip" in text
    assert "[DRY RUN]" in text
    assert not project.output_path.exists()


def test_deploy_contracts_writes_addresses(tmp_path: Path, out: io.StringIO) -> None:
    project = _write_project(tmp_path, PROJECT_YAML)
    tx = _tx()
    tx_factory = Mock(return_value=tx)

    results = deploy_contracts(project, tx_factory=tx_factory, confirm_fn=lambda _q: True, out=out)

    tx_factory.assert_called_once_with("ethereum-testnet-sepolia")
    assert [r.address for r in results] == [CONTRACT_ADDRESS]
    saved = yaml.safe_load(project.output_path.read_text(encoding="utf-8"))
    assert saved["contracts"]["Storage"]["address"] == CONTRACT_ADDRESS
    text = out.getvalue()
    assert "Deploying Storage..." in text
    assert "[OK] Contracts deployed successfully" in text


def test_deploy_contracts_declined(tmp_path: Path, out: io.StringIO) -> None:
    project = _write_project(tmp_path, PROJECT_YAML)
    tx_factory = Mock()

    with pytest.raises(CancellationError):
        deploy_contracts(project, tx_factory=tx_factory, confirm_fn=lambda _q: False, out=out)
    tx_factory.assert_not_called()


def test_nothing_marked_for_deployment(tmp_path: Path, out: io.StringIO) -> None:
    project = _write_project(tmp_path, PROJECT_YAML.replace("deploy: true", "deploy: false"))

    assert deploy_contracts(project, tx_factory=Mock(), skip_confirmation=True, out=out) == []
    assert "No contracts marked for deployment." in out.getvalue()


def test_missing_contracts_folder(tmp_path: Path) -> None:
    with pytest.raises(InputValidationError, match="contracts folder not found"):
        ContractProject(tmp_path).load_config()


def test_compile_requires_forge_only_with_solidity_sources(tmp_path: Path) -> None:
    project = _write_project(tmp_path, PROJECT_YAML)
    config = project.load_config()
    project.compile(config)

    (project.evm_dir / "src" / "Storage.sol").write_text("contract Storage {}\n", encoding="utf-8")
    with pytest.raises(ToolchainNotFoundError, match="forge"):
        project.compile(config)


def test_compile_extracts_bytecode_from_forge_output(tmp_path: Path) -> None:
    _write_project(tmp_path, PROJECT_YAML)
    calls: list[list[str]] = []

    def runner(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        calls.append(cmd)
        artifact_dir = kwargs["cwd"] / "out" / "Storage.sol"
        artifact_dir.mkdir(parents=True)
        (artifact_dir / "Storage.json").write_text(
            json.dumps({"abi": STORAGE_ABI, "bytecode": {"object": "0x60806040"}}), encoding="utf-8"
        )
        return subprocess.CompletedProcess(cmd, 0, stdout=b"Compiler run successful")

    project = ContractProject(tmp_path, runner=runner, which=lambda _name: "/usr/bin/forge")
    (project.evm_dir / "src" / "Storage.sol").write_text("contract Storage {}\n", encoding="utf-8")

    project.compile(project.load_config())

    assert calls == [["forge", "build"]]
    assert (project.abi_dir / "Storage.bin").read_text(encoding="utf-8") == "0x60806040"


def test_compile_failure_is_a_build_error(tmp_path: Path) -> None:
    _write_project(tmp_path, PROJECT_YAML)

    def runner(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(cmd, 1, stdout=b"Error: syntax")

    project = ContractProject(tmp_path, runner=runner, which=lambda _name: "/usr/bin/forge")
    (project.evm_dir / "src" / "Storage.sol").write_text("contract Storage {\n", encoding="utf-8")

    with pytest.raises(BuildError, match="forge build failed"):
        project.compile(project.load_config())

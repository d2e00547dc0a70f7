"""Unit tests for command input validation."""

from __future__ import annotations

import json

import pytest

from workflow_cli.chain.registry import WORKFLOW_STATUS_ACTIVE, WORKFLOW_STATUS_PAUSED
from workflow_cli.errors import InputValidationError
from workflow_cli.workflow.inputs import BuildInputs, DeployInputs, WorkflowTarget, validate_inputs

from conftest import ANVIL_ADDRESS


def _deploy(**overrides: object) -> DeployInputs:
    values: dict[str, object] = {
        "workflow_name": "test_workflow",
        "workflow_owner": ANVIL_ADDRESS,
        "workflow_path": "./basic_workflow/main.go",
        "don_family": "test-family",
    }
    values.update(overrides)
    return validate_inputs(DeployInputs, **values)


def test_name_of_64_characters_is_accepted_and_65_rejected() -> None:
    assert _deploy(workflow_name="a" * 64).workflow_name == "a" * 64
    with pytest.raises(InputValidationError, match="workflow_name"):
        _deploy(workflow_name="a" * 65)


def test_name_must_not_be_empty_or_contain_spaces() -> None:
    with pytest.raises(InputValidationError):
        _deploy(workflow_name="")
    with pytest.raises(InputValidationError):
        _deploy(workflow_name="my workflow")


def test_tag_is_capped_at_32_characters_and_defaults_to_name() -> None:
    assert _deploy().tag == "test_workflow"
    assert _deploy(workflow_tag="v" * 32).tag == "v" * 32
    with pytest.raises(InputValidationError, match="workflow_tag"):
        _deploy(workflow_tag="v" * 33)


def test_paths_must_be_ascii_and_at_most_97_characters() -> None:
    assert _deploy(config_path="c" * 97).config_path == "c" * 97
    with pytest.raises(InputValidationError, match="config_path"):
        _deploy(config_path="c" * 98)
    with pytest.raises(InputValidationError, match="ASCII"):
        _deploy(config_path="./konfig-ä.yaml")
    with pytest.raises(InputValidationError, match="output_path"):
        _deploy(output_path="o" * 98)


def test_empty_config_path_means_no_config() -> None:
    inputs = _deploy(config_path="")
    assert inputs.config_path is None
    assert inputs.config_file is None


def test_owner_is_lowercased_and_validated() -> None:
    assert _deploy(workflow_owner=ANVIL_ADDRESS.upper().replace("0X", "0x")).workflow_owner == ANVIL_ADDRESS
    with pytest.raises(InputValidationError, match="workflow_owner"):
        validate_inputs(WorkflowTarget, workflow_name="wf", workflow_owner="0x1234")


def test_auto_start_selects_initial_status() -> None:
    assert _deploy().initial_status == WORKFLOW_STATUS_ACTIVE
    assert _deploy(auto_start=False).initial_status == WORKFLOW_STATUS_PAUSED


def test_vault_secrets_require_confidential() -> None:
    with pytest.raises(InputValidationError, match="confidential"):
        _deploy(vault_secrets=["API_KEY"])


def test_confidential_attributes_are_compact_json() -> None:
    assert _deploy().attributes == b""
    inputs = _deploy(confidential=True, vault_secrets=["API_KEY", "DB_URL"])
    assert json.loads(inputs.attributes) == {
        "confidential": True,
        "vault_don_secrets": ["API_KEY", "DB_URL"],
    }
    assert b" " not in inputs.attributes


def test_build_inputs_default_output_path() -> None:
    inputs = validate_inputs(
        BuildInputs,
        workflow_name="wf",
        workflow_owner=ANVIL_ADDRESS,
        workflow_path="main.go",
    )
    assert inputs.output_path == "./binary.wasm.br.b64"

"""Typed and validated inputs for the workflow commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from workflow_cli.chain.registry import WORKFLOW_STATUS_ACTIVE, WORKFLOW_STATUS_PAUSED
from workflow_cli.chain.tx import TxStrategy
from workflow_cli.errors import InputValidationError

WORKFLOW_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
MAX_WORKFLOW_NAME_LENGTH = 64
MAX_WORKFLOW_TAG_LENGTH = 32
MAX_PATH_LENGTH = 97
DEFAULT_OUTPUT_PATH = "./binary.wasm.br.b64"


def _check_path(value: str, field_name: str) -> str:
    if not value.isascii():
        raise ValueError(f"{field_name} must contain only ASCII characters")
    if len(value) > MAX_PATH_LENGTH:
        raise ValueError(f"{field_name} must be at most {MAX_PATH_LENGTH} characters, got {len(value)}")
    return value


class WorkflowTarget(BaseModel):
    """Identifies a registered workflow: (owner, name)."""

    model_config = ConfigDict(frozen=True)

    workflow_name: str = Field(
        min_length=1, max_length=MAX_WORKFLOW_NAME_LENGTH, pattern=WORKFLOW_NAME_PATTERN
    )
    workflow_owner: str = Field(pattern=r"^0x[0-9a-f]{40}$")

    @field_validator("workflow_owner", mode="before")
    @classmethod
    def _lower_owner(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class BuildInputs(WorkflowTarget):
    """What is needed to build a workflow and derive its ID."""

    workflow_path: str = Field(min_length=1)
    config_path: str | None = None
    output_path: str = DEFAULT_OUTPUT_PATH
    secrets_url: str = ""

    @field_validator("config_path")
    @classmethod
    def _check_config_path(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        return _check_path(value, "config_path")

    @field_validator("output_path")
    @classmethod
    def _check_output_path(cls, value: str) -> str:
        return _check_path(value or DEFAULT_OUTPUT_PATH, "output_path")

    @property
    def config_file(self) -> Path | None:
        return Path(self.config_path) if self.config_path else None


class DeployInputs(BuildInputs):
    workflow_tag: str = Field(default="", max_length=MAX_WORKFLOW_TAG_LENGTH)
    don_family: str = Field(min_length=1)
    auto_start: bool = True
    keep_alive: bool = False
    tx_strategy: TxStrategy = TxStrategy.SIGN_SEND
    owner_label: str = ""
    confidential: bool = False
    vault_secrets: list[str] = Field(default_factory=list)
    skip_confirmation: bool = False

    @model_validator(mode="after")
    def _check_vault_secrets(self) -> DeployInputs:
        if self.vault_secrets and not self.confidential:
            raise ValueError("vault secrets require --confidential")
        return self

    @property
    def tag(self) -> str:
        """The registry tag; defaults to the workflow name."""

        return self.workflow_tag or self.workflow_name

    @property
    def initial_status(self) -> int:
        return WORKFLOW_STATUS_ACTIVE if self.auto_start else WORKFLOW_STATUS_PAUSED

    @property
    def attributes(self) -> bytes:
        if not self.confidential:
            return b""
        payload = {"confidential": True, "vault_don_secrets": list(self.vault_secrets)}
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "inputs"
        parts.append(f"{loc}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


M = TypeVar("M", bound=WorkflowTarget)


def validate_inputs(model: type[M], **values: object) -> M:
    """Build an inputs model, turning pydantic errors into InputValidationError."""

    try:
        return model(**values)
    except ValidationError as e:
        raise InputValidationError(f"invalid inputs: {_format_validation_error(e)}") from e

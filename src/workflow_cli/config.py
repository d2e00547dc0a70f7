"""Configuration for the workflow CLI.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from eth_account import Account
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_cli.secrets import ApiKey, GitHubAPIToken, PrivateKey

OWNER_TYPE_EOA = "EOA"
OWNER_TYPE_MSIG = "MSIG"

ETHEREUM_TESTNET_SEPOLIA_SELECTOR = 16015286601757825753

# Chain selectors for the chains the registry and `contract deploy` are known to run on.
CHAIN_SELECTORS: dict[str, int] = {
    "ethereum-mainnet": 5009297550715157269,
    "ethereum-testnet-sepolia": ETHEREUM_TESTNET_SEPOLIA_SELECTOR,
    "ethereum-testnet-sepolia-base-1": 10344971235874465080,
    "ethereum-testnet-sepolia-arbitrum-1": 3478487238524512106,
    "ethereum-testnet-sepolia-optimism-1": 5224473277236331295,
    "polygon-testnet-amoy": 16281711391670634445,
    "avalanche-testnet-fuji": 14767482510784806043,
    "anvil-devnet": 7759470850252068959,
}

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Order of the secp256k1 group; valid secrets lie in [1, n-1].
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def chain_name_for_selector(selector: int) -> str:
    for name, value in CHAIN_SELECTORS.items():
        if value == selector:
            return name
    return str(selector)


def chain_selector_for_name(name: str) -> int:
    try:
        return CHAIN_SELECTORS[name]
    except KeyError:
        if name.isdigit():
            return int(name)
        raise ValueError(f"unknown chain name: {name!r}") from None


def validate_private_key(raw: str) -> str:
    """Return the key unchanged when it is 64 hex characters and a valid secp256k1 secret."""

    if not _HEX_KEY_RE.match(raw):
        raise ValueError("ETH_PRIVATE_KEY must be 64 hex characters without a 0x prefix")
    if not 0 < int(raw, 16) < SECP256K1_N:
        raise ValueError("ETH_PRIVATE_KEY is not a valid ECDSA private key")
    return raw


class CliSettings(BaseSettings):
    """Settings for the workflow CLI.

    Environment variables:
    - ETH_PRIVATE_KEY                  (needed to sign transactions)
    - WORKFLOW_OWNER_ADDRESS           (optional, derived from the key)
    - WORKFLOW_OWNER_TYPE              (EOA | MSIG)
    - WORKFLOW_REGISTRY_ADDRESS
    - WORKFLOW_REGISTRY_CHAIN_SELECTOR
    - RPC_URL / RPC_URLS
    - GRAPHQL_URL / CRE_API_KEY
    - LOG_LEVEL                        (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `CliSettings(_env_file=path_to_env)`.
    """

    eth_private_key: PrivateKey | None = Field(
        default=None,
        validation_alias="ETH_PRIVATE_KEY",
        description="Hex private key used to sign registry transactions",
    )
    workflow_owner_address: str = Field(
        default="",
        validation_alias="WORKFLOW_OWNER_ADDRESS",
        description="Workflow owner address; defaults to the address of ETH_PRIVATE_KEY",
    )
    workflow_owner_type: str = Field(
        default=OWNER_TYPE_EOA,
        validation_alias="WORKFLOW_OWNER_TYPE",
        description="Owner custody: EOA (single signer) or MSIG (multi-signature)",
    )
    workflow_owner_label: str = Field(
        default="",
        validation_alias="WORKFLOW_OWNER_LABEL",
    )

    workflow_registry_address: str = Field(
        default="",
        validation_alias="WORKFLOW_REGISTRY_ADDRESS",
        description="Address of the Workflow Registry contract",
    )
    workflow_registry_chain_selector: int = Field(
        default=ETHEREUM_TESTNET_SEPOLIA_SELECTOR,
        validation_alias="WORKFLOW_REGISTRY_CHAIN_SELECTOR",
    )
    rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com",
        validation_alias="RPC_URL",
        description="JSON-RPC endpoint of the registry chain",
    )
    rpc_urls: dict[str, str] = Field(
        default_factory=dict,
        validation_alias="RPC_URLS",
        description="JSON object mapping chain name or chain selector to an RPC URL",
    )
    explorer_url: str = Field(
        default="https://sepolia.etherscan.io",
        validation_alias="EXPLORER_URL",
    )

    graphql_url: str = Field(
        default="",
        validation_alias="GRAPHQL_URL",
        description="GraphQL endpoint of the remote workflow service",
    )
    api_key: ApiKey | None = Field(default=None, validation_alias="CRE_API_KEY")

    don_family: str = Field(default="zone-a", validation_alias="DON_FAMILY")

    service_timeout_seconds: float = Field(default=120.0, validation_alias="SERVICE_TIMEOUT_SECONDS")
    http_timeout_seconds: float = Field(default=60.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    receipt_timeout_seconds: float = Field(default=120.0, validation_alias="RECEIPT_TIMEOUT_SECONDS")

    linking_state_path: Path = Field(
        default=Path("."),
        validation_alias="LINKING_STATE_PATH",
        description="Directory where linking responses are persisted",
    )

    github_api_token: GitHubAPIToken | None = Field(default=None, validation_alias="GITHUB_API_TOKEN")

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("eth_private_key", mode="before")
    @classmethod
    def _check_private_key(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            return validate_private_key(value.strip())
        return value

    @field_validator("rpc_urls", mode="before")
    @classmethod
    def _parse_rpc_urls(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return {}
            value = json.loads(value)
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @model_validator(mode="after")
    def _normalise_owner(self) -> CliSettings:
        owner_type = self.workflow_owner_type.strip().upper()
        if owner_type not in {OWNER_TYPE_EOA, OWNER_TYPE_MSIG}:
            raise ValueError("WORKFLOW_OWNER_TYPE must be EOA or MSIG")
        self.workflow_owner_type = owner_type

        owner = self.workflow_owner_address.strip()
        if not owner and self.eth_private_key is not None:
            owner = Account.from_key(self.eth_private_key.get_secret_value()).address
        if owner and not _ADDRESS_RE.match(owner):
            raise ValueError("WORKFLOW_OWNER_ADDRESS must be a 0x-prefixed 20-byte hex address")
        self.workflow_owner_address = owner.lower()

        registry = self.workflow_registry_address.strip()
        if registry and not _ADDRESS_RE.match(registry):
            raise ValueError("WORKFLOW_REGISTRY_ADDRESS must be a 0x-prefixed 20-byte hex address")
        self.workflow_registry_address = registry
        return self

    @property
    def is_msig(self) -> bool:
        return self.workflow_owner_type == OWNER_TYPE_MSIG

    @property
    def registry_chain_name(self) -> str:
        return chain_name_for_selector(self.workflow_registry_chain_selector)

    def rpc_url_for_chain(self, chain: str) -> str:
        """Resolve an RPC URL by chain name or selector, falling back to the registry RPC."""

        if chain in self.rpc_urls:
            return self.rpc_urls[chain]
        try:
            selector = str(chain_selector_for_name(chain))
        except ValueError:
            selector = ""
        if selector and selector in self.rpc_urls:
            return self.rpc_urls[selector]
        if selector == str(self.workflow_registry_chain_selector):
            return self.rpc_url
        raise ValueError(f"no RPC URL configured for chain {chain!r} (set RPC_URLS)")

    def raw_secrets(self) -> list[str]:
        """Raw secret values that log output must never contain."""

        out: list[str] = []
        for secret in (self.eth_private_key, self.api_key, self.github_api_token):
            if secret is not None and secret.get_secret_value():
                out.append(secret.get_secret_value())
        return out

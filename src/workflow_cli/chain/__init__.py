"""On-chain access: JSON-RPC, ABI codec, transaction strategies and the registry client."""

from workflow_cli.chain.codec import ContractCodec, load_registry_codec
from workflow_cli.chain.eth import EthRpc
from workflow_cli.chain.registry import (
    RegisterWorkflowParams,
    WorkflowMetadata,
    WorkflowRegistryClient,
)
from workflow_cli.chain.tx import HwWalletTx, RawTx, RegularTx, TxClient, TxOutput, TxRequest, TxStrategy

__all__ = [
    "ContractCodec",
    "EthRpc",
    "HwWalletTx",
    "RawTx",
    "RegisterWorkflowParams",
    "RegularTx",
    "TxClient",
    "TxOutput",
    "TxRequest",
    "TxStrategy",
    "WorkflowMetadata",
    "WorkflowRegistryClient",
    "load_registry_codec",
]

from workflow_cli.contract.deploy import (
    ContractConfig,
    ContractProject,
    ContractsConfig,
    DeploymentResult,
    deploy_contracts,
    parse_contracts_config,
)

__all__ = [
    "ContractConfig",
    "ContractProject",
    "ContractsConfig",
    "DeploymentResult",
    "deploy_contracts",
    "parse_contracts_config",
]

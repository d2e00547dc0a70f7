"""Workflow lifecycle commands: deploy, activate, pause, delete and ID generation."""

from workflow_cli.workflow.activate import activate_workflow
from workflow_cli.workflow.delete import delete_workflows
from workflow_cli.workflow.deploy import Deployer, DeployResult
from workflow_cli.workflow.generate_id import generate_workflow_id
from workflow_cli.workflow.inputs import BuildInputs, DeployInputs, WorkflowTarget, validate_inputs
from workflow_cli.workflow.pause import pause_workflows

__all__ = [
    "BuildInputs",
    "DeployInputs",
    "DeployResult",
    "Deployer",
    "WorkflowTarget",
    "activate_workflow",
    "delete_workflows",
    "generate_workflow_id",
    "pause_workflows",
    "validate_inputs",
]

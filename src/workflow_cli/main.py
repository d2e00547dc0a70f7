"""CLI entrypoint for the workflow registry tool."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from workflow_cli import __version__
from workflow_cli.account import link_key, list_keys, unlink_key
from workflow_cli.build.compile import WorkflowCompiler
from workflow_cli.chain.eth import EthRpc
from workflow_cli.chain.registry import WorkflowRegistryClient
from workflow_cli.chain.tx import TxClient, TxStrategy
from workflow_cli.config import CliSettings
from workflow_cli.contract import ContractProject, deploy_contracts
from workflow_cli.errors import CancellationError, InputValidationError, WorkflowCliError
from workflow_cli.gist import GistUploader, has_gist_permissions
from workflow_cli.graphql.client import GraphQLClient
from workflow_cli.linking import LinkingService, OwnerLinker
from workflow_cli.logging import configure_logging
from workflow_cli.storage.uploader import ArtifactUploader
from workflow_cli.workflow import (
    BuildInputs,
    Deployer,
    DeployInputs,
    WorkflowTarget,
    activate_workflow,
    delete_workflows,
    generate_workflow_id,
    pause_workflows,
    validate_inputs,
)
from workflow_cli.workflow.inputs import DEFAULT_OUTPUT_PATH

logger = logging.getLogger(__name__)


def _tx_flags() -> argparse.ArgumentParser:
    flags = argparse.ArgumentParser(add_help=False)
    flags.add_argument(
        "--unsigned",
        action="store_true",
        help="Print the raw transaction calldata instead of signing and sending it",
    )
    flags.add_argument("--ledger", action="store_true", help="Sign with a Ledger hardware wallet")
    flags.add_argument(
        "--ledger-derivation-path",
        default="m/44'/60'/0'/0/0",
        help="Derivation path used with --ledger",
    )
    flags.add_argument(
        "--skip-confirmation",
        action="store_true",
        help="Do not ask before sending transactions or overwriting state",
    )
    return flags


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wfcli",
        description="Build, upload and register workflows on the Workflow Registry",
    )
    parser.add_argument("--version", action="version", version=f"workflow-registry-cli {__version__}")

    groups = parser.add_subparsers(dest="group", required=True)
    tx_flags = _tx_flags()

    workflow = groups.add_parser("workflow", help="Manage workflows")
    workflow_cmds = workflow.add_subparsers(dest="command", required=True)

    deploy = workflow_cmds.add_parser(
        "deploy", parents=[tx_flags], help="Build, upload and register a workflow"
    )
    deploy.add_argument("name", help="Workflow name")
    deploy.add_argument(
        "-p",
        "--workflow-path",
        default=".",
        help="Workflow main file (main.go, main.ts, Makefile) or its directory",
    )
    deploy.add_argument("-c", "--config", default=None, help="Workflow config file to include")
    deploy.add_argument(
        "-o", "--output", default=DEFAULT_OUTPUT_PATH, help="Path for the framed binary"
    )
    deploy.add_argument("-s", "--secrets-url", default="", help="Precomputed secrets URL")
    deploy.add_argument(
        "-r",
        "--auto-start",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Register the workflow as active (default) or paused",
    )
    deploy.add_argument(
        "-k",
        "--keep-alive",
        action="store_true",
        help="Keep earlier versions with the same owner and name active",
    )
    deploy.add_argument("--tag", default="", help="Registry tag (defaults to the workflow name)")
    deploy.add_argument("--don-family", default="", help="DON family (defaults to DON_FAMILY)")
    deploy.add_argument("--owner-label", default="", help="Label sent when linking the owner")
    deploy.add_argument(
        "--confidential", action="store_true", help="Run the workflow in confidential mode"
    )
    deploy.add_argument(
        "--vault-secret",
        dest="vault_secrets",
        action="append",
        default=[],
        help="Vault DON secret name (repeatable, requires --confidential)",
    )

    generate_id = workflow_cmds.add_parser(
        "generate-id", help="Build the workflow and print its ID without network access"
    )
    generate_id.add_argument("name", help="Workflow name")
    generate_id.add_argument("-p", "--workflow-path", default=".")
    generate_id.add_argument("-c", "--config", default=None)
    generate_id.add_argument("-o", "--output", default=DEFAULT_OUTPUT_PATH)
    generate_id.add_argument("-s", "--secrets-url", default="")

    activate = workflow_cmds.add_parser(
        "activate", parents=[tx_flags], help="Activate the latest paused version of a workflow"
    )
    activate.add_argument("name", help="Workflow name")
    activate.add_argument("--don-family", default="", help="DON family (defaults to the registered one)")

    pause = workflow_cmds.add_parser(
        "pause", parents=[tx_flags], help="Pause every active version of a workflow"
    )
    pause.add_argument("name", help="Workflow name")

    delete = workflow_cmds.add_parser(
        "delete", parents=[tx_flags], help="Delete every version of a workflow"
    )
    delete.add_argument("name", help="Workflow name")

    account = groups.add_parser("account", help="Manage owner key links")
    account_cmds = account.add_subparsers(dest="command", required=True)
    link = account_cmds.add_parser(
        "link-key", parents=[tx_flags], help="Link the owner address to the registry"
    )
    link.add_argument("--owner-label", default="", help="Label for the linked owner")
    account_cmds.add_parser(
        "unlink-key", parents=[tx_flags], help="Unlink the owner address from the registry"
    )
    account_cmds.add_parser("list-key", help="List owners linked to this account")

    contract = groups.add_parser("contract", help="Deploy project contracts")
    contract_cmds = contract.add_subparsers(dest="command", required=True)
    contract_deploy = contract_cmds.add_parser(
        "deploy", parents=[tx_flags], help="Deploy contracts listed in contracts/contracts.yaml"
    )
    contract_deploy.add_argument(
        "--project-root", default=".", help="Project root holding the contracts/ folder"
    )
    contract_deploy.add_argument(
        "--dry-run", action="store_true", help="Validate the configuration without deploying"
    )

    gist = groups.add_parser("gist", help="GitHub Gist utilities")
    gist_cmds = gist.add_subparsers(dest="command", required=True)
    gist_upload = gist_cmds.add_parser("upload", help="Upload a file to a GitHub Gist")
    gist_upload.add_argument("file", help="File to upload (.wasm, .wasm.br, .json, .yaml, .yml, .b64)")
    gist_upload.add_argument("--gist-id", default="", help="Update this existing gist instead of creating one")
    gist_upload.add_argument("--public", action="store_true", help="Create a public gist")

    return parser


def _strategy(args: argparse.Namespace) -> TxStrategy:
    if getattr(args, "unsigned", False):
        return TxStrategy.RAW_CALLDATA
    if getattr(args, "ledger", False):
        return TxStrategy.HW_WALLET
    return TxStrategy.SIGN_SEND


def _require_owner(settings: CliSettings) -> str:
    if not settings.workflow_owner_address:
        raise InputValidationError("WORKFLOW_OWNER_ADDRESS or ETH_PRIVATE_KEY is required")
    return settings.workflow_owner_address


def _graphql(settings: CliSettings) -> GraphQLClient:
    if not settings.graphql_url:
        raise InputValidationError("GRAPHQL_URL is required for this command")
    return GraphQLClient(
        url=settings.graphql_url,
        api_key=settings.api_key,
        timeout_seconds=settings.service_timeout_seconds,
    )


def _tx_client(
    settings: CliSettings, args: argparse.Namespace, *, rpc_url: str, chain_name: str
) -> TxClient:
    strategy = _strategy(args)
    if strategy is TxStrategy.SIGN_SEND and settings.eth_private_key is None:
        raise InputValidationError("ETH_PRIVATE_KEY is required to sign transactions (or use --unsigned)")
    return TxClient(
        rpc=EthRpc(url=rpc_url, timeout_seconds=settings.http_timeout_seconds),
        strategy=strategy,
        private_key=settings.eth_private_key,
        chain_name=chain_name,
        explorer_url=settings.explorer_url,
        receipt_timeout_seconds=settings.receipt_timeout_seconds,
        skip_confirmation=args.skip_confirmation,
        ledger_derivation_path=args.ledger_derivation_path if args.ledger else "",
    )


def _registry(settings: CliSettings, args: argparse.Namespace) -> WorkflowRegistryClient:
    tx = _tx_client(settings, args, rpc_url=settings.rpc_url, chain_name=settings.registry_chain_name)
    return WorkflowRegistryClient(tx=tx, address=settings.workflow_registry_address)


def _run_workflow(args: argparse.Namespace, settings: CliSettings) -> int:
    if args.command == "generate-id":
        inputs = validate_inputs(
            BuildInputs,
            workflow_name=args.name,
            workflow_owner=_require_owner(settings),
            workflow_path=args.workflow_path,
            config_path=args.config,
            output_path=args.output,
            secrets_url=args.secrets_url,
        )
        artifact = generate_workflow_id(inputs, compiler=WorkflowCompiler())
        print(f"Workflow ID: {artifact.workflow_id}")
        return 0

    if args.command == "deploy":
        inputs = validate_inputs(
            DeployInputs,
            workflow_name=args.name,
            workflow_owner=_require_owner(settings),
            workflow_path=args.workflow_path,
            config_path=args.config,
            output_path=args.output,
            secrets_url=args.secrets_url,
            workflow_tag=args.tag,
            don_family=args.don_family or settings.don_family,
            auto_start=args.auto_start,
            keep_alive=args.keep_alive,
            tx_strategy=_strategy(args),
            owner_label=args.owner_label or settings.workflow_owner_label,
            confidential=args.confidential,
            vault_secrets=args.vault_secrets,
            skip_confirmation=args.skip_confirmation,
        )
        registry = _registry(settings, args)
        graphql = _graphql(settings)
        uploader = ArtifactUploader(
            graphql=graphql,
            owner=inputs.workflow_owner,
            registry_address=registry.address,
            chain_selector=settings.workflow_registry_chain_selector,
            http_timeout_seconds=settings.http_timeout_seconds,
        )
        try:
            linker = OwnerLinker(
                registry=registry,
                service=LinkingService(graphql=graphql, state_dir=settings.linking_state_path),
                owner=inputs.workflow_owner,
                owner_label=inputs.owner_label,
                is_msig=settings.is_msig,
            )
            deployer = Deployer(
                compiler=WorkflowCompiler(),
                linker=linker,
                uploader=uploader,
                registry=registry,
            )
            result = deployer.deploy(inputs)
            if result.halted:
                logger.info("Deploy halted until the link transaction is executed")
            return 0
        finally:
            uploader.close()
            graphql.close()

    target = validate_inputs(
        WorkflowTarget, workflow_name=args.name, workflow_owner=_require_owner(settings)
    )
    registry = _registry(settings, args)
    if args.command == "activate":
        activate_workflow(registry, target, don_family=args.don_family)
        return 0
    if args.command == "pause":
        pause_workflows(registry, target)
        return 0
    if args.command == "delete":
        delete_workflows(registry, target, skip_confirmation=args.skip_confirmation)
        return 0
    raise InputValidationError(f"unknown workflow command: {args.command}")


def _run_account(args: argparse.Namespace, settings: CliSettings) -> int:
    graphql = _graphql(settings)
    try:
        service = LinkingService(graphql=graphql, state_dir=settings.linking_state_path)
        if args.command == "list-key":
            list_keys(service)
            return 0

        owner = _require_owner(settings)
        registry = _registry(settings, args)
        if args.command == "link-key":
            link_key(
                registry=registry,
                service=service,
                owner=owner,
                owner_label=args.owner_label or settings.workflow_owner_label,
                is_msig=settings.is_msig,
            )
            return 0
        if args.command == "unlink-key":
            unlink_key(
                registry=registry,
                service=service,
                owner=owner,
                is_msig=settings.is_msig,
                skip_confirmation=args.skip_confirmation,
            )
            return 0
        raise InputValidationError(f"unknown account command: {args.command}")
    finally:
        graphql.close()


def _run_contract(args: argparse.Namespace, settings: CliSettings) -> int:
    if _strategy(args) is TxStrategy.RAW_CALLDATA:
        raise InputValidationError("--unsigned is not supported for contract deployment")

    def tx_factory(chain: str) -> TxClient:
        try:
            rpc_url = settings.rpc_url_for_chain(chain)
        except ValueError as e:
            raise InputValidationError(str(e)) from e
        return _tx_client(settings, args, rpc_url=rpc_url, chain_name=chain)

    deploy_contracts(
        ContractProject(Path(args.project_root).resolve()),
        tx_factory=tx_factory,
        dry_run=args.dry_run,
        skip_confirmation=args.skip_confirmation,
    )
    return 0


def _run_gist(args: argparse.Namespace, settings: CliSettings) -> int:
    token = settings.github_api_token
    if token is None or not token.get_secret_value():
        raise InputValidationError("GITHUB_API_TOKEN is required for gist uploads")
    if not has_gist_permissions(token):
        raise InputValidationError("GITHUB_API_TOKEN cannot access gists (check its gist scope)")

    uploader = GistUploader(token=token)
    try:
        path = Path(args.file)
        if args.gist_id:
            result = uploader.update(args.gist_id, path)
        else:
            result = uploader.upload(path, public=args.public)
        logger.info("Uploaded file to gist", extra={"gist_id": result.gist_id, "file": result.file_name})
        print(result.raw_url)
        return 0
    finally:
        uploader.close()


_HANDLERS = {
    "workflow": _run_workflow,
    "account": _run_account,
    "contract": _run_contract,
    "gist": _run_gist,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = CliSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, secrets=settings.raw_secrets())

    try:
        return _HANDLERS[args.group](args, settings)
    except KeyboardInterrupt:
        print("Cancelled", file=sys.stderr)
        return CancellationError.exit_code
    except CancellationError as e:
        print(str(e), file=sys.stderr)
        return e.exit_code
    except WorkflowCliError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""Error taxonomy shared by every command.

Each failure kind maps to one exception family so the CLI can translate it into an exit code
without inspecting messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class WorkflowCliError(Exception):
    """Base class for all expected CLI failures."""

    exit_code = 1


class InputValidationError(WorkflowCliError, ValueError):
    """Inputs failed schema checks; the message names the field and constraint."""

    exit_code = 2


class BuildError(WorkflowCliError):
    exit_code = 3


class ToolchainNotFoundError(BuildError):
    """The compiler (go, bun, make) required for a workflow language is not in PATH."""


class HashingError(WorkflowCliError):
    exit_code = 3


class LinkError(WorkflowCliError):
    exit_code = 4


class LinkRequestExpiredError(LinkError):
    pass


class UploadError(WorkflowCliError):
    exit_code = 5


class GraphQLError(WorkflowCliError, RuntimeError):
    """The remote service answered with GraphQL errors."""

    def __init__(self, message: str, *, codes: list[str] | None = None) -> None:
        super().__init__(message)
        self.codes = codes or []


class GraphQLTransportError(GraphQLError):
    """The remote service could not be reached or returned an unreadable response."""


class TxError(WorkflowCliError):
    exit_code = 6


@dataclass(eq=False)
class RevertError(TxError):
    """A contract call reverted; known custom errors are decoded into name and arguments."""

    error_name: str
    arguments: dict[str, object] = field(default_factory=dict)
    raw_data: str = ""

    def __str__(self) -> str:
        if not self.arguments:
            return self.error_name
        rendered = ", ".join(f"{key}={value}" for key, value in self.arguments.items())
        return f"{self.error_name}: {rendered}"


class ReceiptFailedError(TxError):
    pass


class EventNotEmittedError(TxError):
    """The transaction was mined but none of the expected events were found in its logs."""

    def __init__(self, message: str, *, tx_hash: str) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class HardwareWalletUnsupportedError(TxError):
    pass


class WorkflowNotFoundError(WorkflowCliError, LookupError):
    pass


class WorkflowStatusError(WorkflowCliError):
    """The workflow is not in a status that allows the requested change."""


class CancellationError(WorkflowCliError):
    exit_code = 130


class DeployStepError(WorkflowCliError):
    """Wraps a failure with the name of the deploy step that raised it."""

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"deploy step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return getattr(self.cause, "exit_code", 1)

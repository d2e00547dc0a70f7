"""Owner linking: service link requests and the state machine that drives them."""

from workflow_cli.linking.service import LinkedOwner, LinkingService, LinkRequest, parse_link_request
from workflow_cli.linking.state_machine import (
    ALLOWED_TRANSITIONS,
    IllegalTransitionError,
    LinkOutcome,
    LinkState,
    OwnerLinker,
    submit_link_owner,
    submit_unlink_owner,
    transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "IllegalTransitionError",
    "LinkOutcome",
    "LinkRequest",
    "LinkState",
    "LinkedOwner",
    "LinkingService",
    "OwnerLinker",
    "parse_link_request",
    "submit_link_owner",
    "submit_unlink_owner",
    "transition",
]

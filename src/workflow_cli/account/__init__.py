"""Account commands: link, unlink and list owner keys."""

from workflow_cli.account.link_key import link_key
from workflow_cli.account.list_key import list_keys
from workflow_cli.account.unlink_key import unlink_key

__all__ = ["link_key", "list_keys", "unlink_key"]

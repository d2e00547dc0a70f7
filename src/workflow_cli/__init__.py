"""Workflow Registry CLI.

Builds WASM workflows into reproducible artifacts, derives their content-addressed IDs,
uploads them to the artifact store and registers them on the on-chain Workflow Registry.
"""

__version__ = "0.1.0"

from workflow_cli.config import CliSettings

__all__ = ["__version__", "CliSettings"]

"""Reproducible WASM builds and binary framing."""

from workflow_cli.build.compile import WorkflowCompiler, WorkflowLanguage, detect_language
from workflow_cli.build.framing import (
    decode_framed,
    ensure_output_suffix,
    frame_wasm,
    unframe_wasm,
    write_framed,
)

__all__ = [
    "WorkflowCompiler",
    "WorkflowLanguage",
    "decode_framed",
    "detect_language",
    "ensure_output_suffix",
    "frame_wasm",
    "unframe_wasm",
    "write_framed",
]

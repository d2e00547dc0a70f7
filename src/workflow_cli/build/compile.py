"""Compile a workflow source tree into raw WASM bytes.

Three flavours are supported:
- golang-wasm: `go build` targeting wasip1/wasm with build ids, symbols and paths stripped
- typescript-wasm: `bun cre-compile`
- prebuilt-wasm: `make build` at the nearest ancestor Makefile, reading `wasm/workflow.wasm`
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from workflow_cli.errors import BuildError, ToolchainNotFoundError

logger = logging.getLogger(__name__)

MAKEFILE_NAME = "Makefile"
PREBUILT_WASM_OUTPUT = Path("wasm") / "workflow.wasm"
TMP_WASM_NAME = ".cre_build_tmp.wasm"

Runner = Callable[..., subprocess.CompletedProcess]


class WorkflowLanguage(str, Enum):
    GOLANG = "golang-wasm"
    TYPESCRIPT = "typescript-wasm"
    PREBUILT = "prebuilt-wasm"


_MISSING_TOOL_MESSAGES: dict[WorkflowLanguage, tuple[str, str]] = {
    WorkflowLanguage.GOLANG: (
        "go",
        "go toolchain is required for Go workflows but was not found in PATH; "
        "install from https://go.dev/dl",
    ),
    WorkflowLanguage.TYPESCRIPT: (
        "bun",
        "bun is required for TypeScript workflows but was not found in PATH; "
        "install from https://bun.com/docs/installation",
    ),
    WorkflowLanguage.PREBUILT: ("make", "make is required for WASM workflows but was not found in PATH"),
}


def detect_language(main_file: str) -> WorkflowLanguage:
    """Pick the build flavour from the main file's extension."""

    suffix = Path(main_file).suffix.lower()
    if suffix == ".go":
        return WorkflowLanguage.GOLANG
    if suffix in {".ts", ".mts"}:
        return WorkflowLanguage.TYPESCRIPT
    if suffix == ".wasm" or Path(main_file).name == MAKEFILE_NAME:
        return WorkflowLanguage.PREBUILT
    raise BuildError(f"unsupported workflow language for file {main_file}")


def resolve_workflow_path(workflow_path: Path) -> tuple[Path, str]:
    """Split a workflow path into (root directory, main file name).

    A directory is accepted when it holds a `main.go`, a `main.ts` or a Makefile.
    """

    path = workflow_path.expanduser()
    if path.is_dir():
        for candidate in ("main.go", "main.ts", MAKEFILE_NAME):
            if (path / candidate).is_file():
                return path.resolve(), candidate
        raise BuildError(f"no main.go, main.ts or Makefile found in {path}")
    return path.parent.resolve(), path.name


def find_makefile_root(start: Path) -> Path:
    current = start.resolve()
    while True:
        if (current / MAKEFILE_NAME).is_file():
            return current
        if current.parent == current:
            raise BuildError(
                "no Makefile found in directory or any parent (required for WASM workflow build)"
            )
        current = current.parent


class WorkflowCompiler:
    """Run the external toolchain for a workflow and return the produced WASM bytes."""

    def __init__(
        self,
        *,
        runner: Runner = subprocess.run,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._run = runner
        self._which = which

    def ensure_toolchain(self, language: WorkflowLanguage) -> None:
        tool, message = _MISSING_TOOL_MESSAGES[language]
        if self._which(tool) is None:
            raise ToolchainNotFoundError(message)

    def compile_path(self, workflow_path: Path) -> bytes:
        root, main_file = resolve_workflow_path(workflow_path)
        return self.compile(root, main_file, detect_language(main_file))

    def compile(self, root_dir: Path, main_file: str, language: WorkflowLanguage) -> bytes:
        if language is not WorkflowLanguage.PREBUILT and not (root_dir / main_file).is_file():
            raise BuildError(f"workflow file not found: {root_dir / main_file}")

        self.ensure_toolchain(language)
        logger.info(
            "Compiling workflow",
            extra={"root": str(root_dir), "main_file": main_file, "language": language.value},
        )

        if language is WorkflowLanguage.PREBUILT:
            make_root = find_makefile_root(root_dir)
            self._execute(["make", "build"], cwd=make_root)
            return self._read_output(make_root / PREBUILT_WASM_OUTPUT)

        tmp_path = root_dir / TMP_WASM_NAME
        if language is WorkflowLanguage.GOLANG:
            cmd = ["go", "build", "-o", str(tmp_path), "-trimpath", "-ldflags=-buildid= -w -s", "."]
            env = {**os.environ, "GOOS": "wasip1", "GOARCH": "wasm", "CGO_ENABLED": "0"}
        else:
            cmd = ["bun", "cre-compile", main_file, str(tmp_path)]
            env = None

        try:
            self._execute(cmd, cwd=root_dir, env=env)
            return self._read_output(tmp_path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def _execute(self, cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> None:
        logger.debug("Executing build command", extra={"cwd": str(cwd), "command": " ".join(cmd)})
        result = self._run(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
        output = result.stdout or b""
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        if result.returncode != 0:
            raise BuildError(
                f"failed to compile workflow: exit status {result.returncode}\n"
                f"build output:\n{output.strip()}"
            )
        logger.debug("Build output", extra={"output": output.strip()})

    def _read_output(self, path: Path) -> bytes:
        try:
            data = path.read_bytes()
        except FileNotFoundError as e:
            raise BuildError(f"failed to read workflow binary: {path} not found") from e
        logger.info("Workflow compiled", extra={"wasm_bytes": len(data)})
        return data

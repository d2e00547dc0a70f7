"""Interactive confirmation prompts."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TextIO

Confirm = Callable[[str], bool]


def confirm(question: str, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> bool:
    """Ask a yes/no question on the terminal; anything but y/yes counts as no."""

    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stdout.write(f"{question} [y/N]: ")
    stdout.flush()
    answer = stdin.readline()
    if not answer:
        return False
    return answer.strip().lower() in {"y", "yes"}

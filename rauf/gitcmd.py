"""Running git and capturing its output."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass


class GitError(Exception):
    """Raised when a git command cannot be started or exits with a failure."""

    def __init__(self, command: Sequence[str], message: str, returncode: int | None = None):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"git {' '.join(self.command)}: {message}")


Executor = Callable[[list[str]], str]


@dataclass
class Git:
    """Runs git commands in ``cwd``; ``executor`` replaces the real binary when given."""

    cwd: str | os.PathLike[str] | None = None
    binary: str = "git"
    executor: Executor | None = None

    def _run(self, args: Sequence[str]) -> str:
        argv = list(args)
        if self.executor is not None:
            return self.executor(argv)
        try:
            completed = subprocess.run(
                [self.binary, *argv],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                check=False,
            )
        except OSError as exc:
            raise GitError(argv, str(exc)) from exc
        if completed.returncode != 0:
            raise GitError(argv, completed.stderr.strip() or "command failed", completed.returncode)
        return completed.stdout

    def output(self, *args: str) -> str:
        """Run git and return its output with surrounding whitespace removed."""
        return self._run(args).strip()

    def output_raw(self, *args: str) -> str:
        """Run git and return its output exactly as written."""
        return self._run(args)
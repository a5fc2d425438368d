"""Command runner for executing shell commands.

This module provides the base command execution functionality used by
the Helm command module.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from .types import CommandResult


class CommandRunner:
    """Low-level command executor with consistent result handling."""

    def __init__(self, cwd: Path | None = None) -> None:
        """Initialize the command runner.

        Args:
            cwd: Working directory for commands (defaults to the process cwd)
        """
        self.cwd = cwd

    def run(
        self,
        cmd: Sequence[str],
        *,
        input: str | None = None,
        capture_output: bool = True,
    ) -> CommandResult:
        """Execute a command and return a structured result.

        Args:
            cmd: Command and arguments as a sequence
            input: Text written to the command's stdin
            capture_output: Whether to capture stdout/stderr

        Returns:
            CommandResult with success status, output, and return code.
            A missing executable is reported as returncode 127.
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=self.cwd,
                input=input,
                capture_output=capture_output,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            return CommandResult(
                success=False, stderr=f"{cmd[0]}: {e.strerror}", returncode=127
            )
        return CommandResult(
            success=result.returncode == 0,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            returncode=result.returncode,
        )

"""
Thin runner that issues git commands through GitPython.
"""

import logging
from pathlib import Path
from typing import Optional, Dict, Union, List

from git import Git
from git.exc import GitCommandNotFound

from ..error_handling import GitCommandFailed
from ..models import CommandResult

logger = logging.getLogger(__name__)


class GitRunner:
    """
    Issues ``git`` commands in one working directory.

    Commands never raise on a non-zero exit; callers inspect the
    returned CommandResult, or use ``run_checked`` when failure should
    abort.
    """

    def __init__(self, working_dir: Optional[Union[str, Path]] = None, verbose: bool = False):
        """
        Initialize git runner.

        Args:
            working_dir: Directory commands run in (current directory if None)
            verbose: Log every command and its output at INFO level
        """
        self.working_dir = str(working_dir) if working_dir else None
        self.verbose = verbose
        self._git = Git(self.working_dir)
        self.history: List[CommandResult] = []

    def run(self, *args: str, env: Optional[Dict[str, str]] = None) -> CommandResult:
        """
        Run git with the given arguments and capture its output.

        Args:
            *args: Arguments following ``git``
            env: Extra environment variables for the process

        Returns:
            Result holding exit status, stdout and stderr

        Raises:
            GitCommandFailed: If the git executable cannot be started
        """
        command = ["git", *args]
        log = logger.info if self.verbose else logger.debug
        log(f"Running: {' '.join(command)} (in {self.working_dir or '.'})")

        try:
            status, stdout, stderr = self._git.execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
                env=env
            )
        except GitCommandNotFound as e:
            raise GitCommandFailed(
                f"Could not start git in {self.working_dir or '.'}",
                args=args,
                cause=e
            )

        result = CommandResult(args=list(args), status=status, stdout=stdout or "", stderr=stderr or "")
        self.history.append(result)

        if result.output:
            log(result.output)
        if not result.ok:
            logger.debug(
                f"{result.command_line} exited with status {status}",
                extra={"git_command": result.command_line, "working_dir": self.working_dir or ".", "status": status}
            )

        return result

    def run_ok(self, *args: str) -> bool:
        """Run git and report whether it exited successfully."""
        return self.run(*args).ok

    def run_checked(self, *args: str, env: Optional[Dict[str, str]] = None) -> CommandResult:
        """
        Run git and raise if it fails.

        Raises:
            GitCommandFailed: If git exits with a non-zero status
        """
        result = self.run(*args, env=env)
        if not result.ok:
            raise GitCommandFailed(
                f"Command '{result.command_line}' failed",
                args=args,
                status=result.status,
                output=result.output
            )
        return result

    def in_directory(self, working_dir: Union[str, Path]) -> 'GitRunner':
        """Runner for another directory with the same settings."""
        return GitRunner(working_dir, verbose=self.verbose)

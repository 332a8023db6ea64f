"""
Export Git commits into a CVS sandbox with git-cvsexportcommit.

The last exported commit is remembered per CVS branch in the local git
config under ``cvsexportcommit.ens.lastexport.<CVS_BRANCH>``. When it is
missing, recent positions of HEAD are checked out one by one until the
Git tree matches the CVS sandbox.
"""

import filecmp
import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..error_handling import CvsExportError
from ..repository import GitRunner, GitWrapper
from .base import Console

logger = logging.getLogger(__name__)

TREE_IGNORE = ("CVS", ".git", ".DS_Store")
DEFAULT_BRANCH = "HEAD"

_STATUS_PATTERN = re.compile(r"Status: ([-a-z]+)", re.IGNORECASE)
_STICKY_TAG_PATTERN = re.compile(r"Sticky tag:\s+([-a-z0-9_()]+)", re.IGNORECASE)


def read_cvs_status(cvs_dir: Union[str, Path], filename: str) -> str:
    """Output of ``cvs -Q status`` for one file in the sandbox."""
    try:
        completed = subprocess.run(
            ["cvs", "-Q", "status", filename],
            cwd=str(cvs_dir),
            capture_output=True,
            text=True
        )
    except OSError as e:
        raise CvsExportError(f"Cannot run cvs status in {cvs_dir}: {e}", cause=e)
    if completed.returncode != 0:
        logger.debug(f"cvs status {filename} exited with {completed.returncode}: {completed.stderr.strip()}")
    return completed.stdout


def sticky_tag(status_output: str) -> Optional[str]:
    """
    Branch a file is checked out on, from ``cvs status`` output.

    Only up-to-date files count; ``(none)`` means the trunk.
    """
    status = _STATUS_PATTERN.search(status_output)
    if not status or status.group(1) != "Up-to-date":
        return None
    tag = _STICKY_TAG_PATTERN.search(status_output)
    if not tag or tag.group(1) == "(none)":
        return None
    return tag.group(1)


def trees_identical(left: Union[str, Path], right: Union[str, Path],
                    ignore: Sequence[str] = TREE_IGNORE) -> bool:
    """
    Compare two directory trees by content, like ``diff -r``.

    Args:
        left: First tree
        right: Second tree
        ignore: Names skipped at every level

    Returns:
        True if both trees hold the same files with the same contents
    """
    comparison = filecmp.dircmp(str(left), str(right), ignore=list(ignore))
    if comparison.left_only or comparison.right_only or comparison.common_funny or comparison.funny_files:
        return False

    _, mismatch, errors = filecmp.cmpfiles(str(left), str(right), comparison.common_files, shallow=False)
    if mismatch or errors:
        return False

    return all(
        trees_identical(os.path.join(left, name), os.path.join(right, name), ignore)
        for name in comparison.common_dirs
    )


class CvsExporter:
    """
    Replays new Git commits onto a CVS sandbox.

    All failures raise CvsExportError with the exit code of the command.
    """

    def __init__(
        self,
        git_dir: Union[str, Path],
        cvs_dir: Optional[Union[str, Path]] = None,
        commit: bool = False,
        remote: str = "origin",
        config_prefix: str = "cvsexportcommit.ens.lastexport",
        max_commits_back: int = 10,
        console: Optional[Console] = None,
        git: Optional[GitWrapper] = None
    ):
        """
        Initialize CVS exporter.

        Args:
            git_dir: Git working copy the commits come from
            cvs_dir: CVS sandbox the commits are applied to
            commit: Commit each applied change in CVS
            remote: Remote the Git branch must be up to date with
            config_prefix: Git config key prefix for the last exported commit
            max_commits_back: How many HEAD reflog entries to scan
            console: Progress output and prompts
            git: Wrapper bound to the Git working copy
        """
        if not git_dir:
            raise CvsExportError("No git directory was given")
        self.git_dir = Path(git_dir).resolve()
        if not self.git_dir.is_dir():
            raise CvsExportError(f"No git directory was found at {self.git_dir}")

        self.cvs_dir = Path(cvs_dir).resolve() if cvs_dir else None
        self.commit = commit
        self.remote = remote
        self.config_prefix = config_prefix
        self.max_commits_back = max_commits_back
        self.console = console or Console()
        self.git = git or GitWrapper(GitRunner(self.git_dir))

    def check_repository(self) -> None:
        """Require the git directory to be a repository with a clean tree."""
        if not self.git.is_git_repo():
            raise CvsExportError(f"{self.git_dir} is not under git control. Exiting")
        if not self.git.is_tree_clean():
            raise CvsExportError(f"The working tree of {self.git_dir} is not clean",
                                 hints=["Please commit/stash your changes and retry this command"])

    def list_configs(self) -> Dict[str, List[str]]:
        return self.git.get_config_regexp(self.config_prefix)

    def unset_configs(self) -> List[str]:
        """Remove every last-export entry. Returns the removed keys."""
        keys = list(self.list_configs())
        for key in keys:
            logger.info(f"Unsetting {key}")
            self.git.unset_all_config(key)
        return keys

    def detect_cvs_branch(self) -> str:
        """
        Work out which CVS branch the sandbox is on.

        Every regular file at the top of the sandbox is asked for its
        sticky tag; the trunk (HEAD) is assumed when none has one.
        """
        branch = DEFAULT_BRANCH
        for entry in sorted(self.cvs_dir.iterdir()):
            if not entry.is_file():
                continue
            tag = sticky_tag(read_cvs_status(self.cvs_dir, entry.name))
            if tag:
                branch = tag
        return branch

    def _require_cvs_dir(self) -> None:
        if self.cvs_dir is None:
            raise CvsExportError("No CVS directory was given")
        if not self.cvs_dir.is_dir():
            raise CvsExportError(f"No CVS directory was found at {self.cvs_dir}")

    def find_last_export(self, git_branch: str, config_key: str) -> Optional[str]:
        """
        Scan recent HEAD positions for the one matching the CVS sandbox.

        A match is recorded under ``config_key``. The Git branch is
        checked out again whatever the outcome.

        Returns:
            The matching commit, or None
        """
        self.console.step("No last exported config var found. Running scan")
        found = None
        try:
            for index in range(self.max_commits_back + 1):
                rev = f"HEAD@{{{index}}}"
                if not self.git.force_checkout(rev):
                    logger.debug(f"Could not check out {rev}; stopping the scan")
                    break
                if trees_identical(self.cvs_dir, self.git_dir):
                    self.console.step(f"  Checking {rev} for equality .. Yes")
                    found = self.git.rev_parse("HEAD")
                    if found:
                        self.git.add_config(config_key, found)
                    break
                self.console.step(f"  Checking {rev} for equality .. No")
        finally:
            self.git.checkout(git_branch)
        return found

    def _cleanup(self) -> None:
        for name in (".msg", ".cvsexportcommit.diff"):
            path = self.cvs_dir / name
            if path.exists():
                path.unlink()
        for leftover in self.cvs_dir.rglob(".#*"):
            if leftover.is_file():
                leftover.unlink()

    def export(self) -> List[str]:
        """
        Export every commit made since the last export.

        Returns:
            Commits that were applied to the sandbox, oldest first

        Raises:
            CvsExportError: With the exit code of the failing step
        """
        self._require_cvs_dir()

        cvs_branch = self.detect_cvs_branch()
        git_branch = self.git.current_branch()
        if git_branch is None:
            raise CvsExportError(f"HEAD of {self.git_dir} is detached; check out a branch first")

        self.console.step(f"Git branch is '{git_branch}'")
        self.console.step(f"CVS branch is '{cvs_branch}'")
        if not self.console.confirm("Is this correct?"):
            raise CvsExportError("Process has been abandoned", exit_code=8)

        self.console.step(f"Checking that {git_branch} is at the same rev as {self.remote}/{git_branch}")
        if not self.git.is_origin_uptodate(git_branch, self.remote):
            raise CvsExportError(
                f"Git local and remote {git_branch} are not the same",
                exit_code=6,
                hints=[f"Rerun this command after bringing {git_branch} up to date with {self.remote}/{git_branch}"]
            )

        config_key = f"{self.config_prefix}.{cvs_branch}"
        last_exported = self.git.get_local_config(config_key)
        if not last_exported:
            self.find_last_export(git_branch, config_key)
            last_exported = self.git.get_local_config(config_key)

        if not last_exported:
            raise CvsExportError(
                f"Cannot detect the last time {self.cvs_dir} and {self.git_dir} were identical",
                exit_code=3,
                hints=[
                    f"No {self.config_prefix} found in local config. Have you ever pushed this before? Aborting",
                    f"To populate run: git config --local --add {config_key} HASH",
                ]
            )

        resolved = self.git.rev_parse(last_exported)
        if resolved is None:
            raise CvsExportError(
                f"The ref we were going to use {last_exported} is unknown to this repository. "
                "Please check your current value",
                exit_code=4,
                hints=[
                    f"To remove run: git config --local --unset {config_key}",
                    f"To populate run: git config --local --add {config_key} HASH",
                ]
            )
        last_exported = resolved

        new_commits = self.git.rev_list(f"{last_exported}..HEAD", first_parent=True)
        if not new_commits:
            self.console.step(f"Finishing as there is nothing to export. We looked for git rev-list {last_exported}..HEAD")
            return []

        exported = []
        for commit in new_commits:
            self.console.step(f"Exporting {commit} commit to CVS. Using {last_exported} as our root")
            result = self.git.cvsexportcommit(str(self.cvs_dir), last_exported, commit, commit_to_cvs=self.commit)
            if not result.ok:
                logger.error(result.output)
                self._cleanup()
                raise CvsExportError("CVS commit failed. Cleaned up the CVS directory", exit_code=2, commit=commit)
            exported.append(commit)

            if self.commit:
                self.git.unset_all_config(config_key)
                self.git.add_config(config_key, commit)
            elif (self.cvs_dir / ".msg").exists():
                self.console.step("Commit is not on. Only applying 1 commit")
                break
            last_exported = commit

        return exported

"""
Bring the current branch in line with its remote counterpart and push it.
"""

import logging

from ..error_handling import WorkflowError
from ..models import BranchRelation
from ..repository import GitWrapper
from .base import Console
from .merge_push import (
    EXIT_NOT_REPO, EXIT_DIRTY_TREE, EXIT_NO_BRANCH, EXIT_PULL_OR_REBASE,
    EXIT_MERGE, EXIT_PUSH, EXIT_ABANDONED
)

logger = logging.getLogger(__name__)


class SyncPushWorkflow:
    """
    Synchronise the checked out branch with ``<remote>/<branch>`` and push.

    A diverged branch is rebased onto the remote branch, or merged with
    it when ``use_merge`` is set.
    """

    def __init__(self, git: GitWrapper, console: Console, remote: str = "origin", use_merge: bool = False):
        self.git = git
        self.console = console
        self.remote = remote
        self.use_merge = use_merge

    def run(self) -> str:
        """
        Run the synchronisation.

        Returns:
            Closing message for the user

        Raises:
            WorkflowError: If a step fails or the user declines to push
        """
        if not self.git.is_git_repo():
            raise WorkflowError("Current directory is not under git control. Exiting", exit_code=EXIT_NOT_REPO)

        if not self.git.is_tree_clean():
            raise WorkflowError("Working tree is not clean", exit_code=EXIT_DIRTY_TREE,
                                hints=["Please commit/stash your changes and retry this command"])

        branch = self.git.current_branch()
        if branch is None:
            raise WorkflowError("HEAD is detached; check out a branch first", exit_code=EXIT_NO_BRANCH)

        self.console.step(f"Fetching {self.remote}")
        if not self.git.fetch(self.remote):
            raise WorkflowError(f"Git fetch of {self.remote} failed", exit_code=EXIT_PULL_OR_REBASE)

        upstream = f"{self.remote}/{branch}"
        if not self.git.branch_exists(branch, self.remote):
            self._push(branch, f"{upstream} does not exist; about to push {branch} and set it as upstream",
                       set_upstream=True)
            return f"Pushed new branch {branch} to {self.remote}"

        relation = self.git.relation(branch, upstream)
        if relation is BranchRelation.UP_TO_DATE:
            message = f"{branch} is up to date with {upstream}; nothing to push"
            self.console.step(message)
            return message

        if relation is BranchRelation.BEHIND:
            self.console.step(f"Fast-forwarding {branch} to {upstream}")
            if not self.git.ff_merge(upstream):
                raise WorkflowError(f"Git merge with {upstream} failed", exit_code=EXIT_MERGE)
            message = f"{branch} fast-forwarded to {upstream}; nothing to push"
            self.console.step(message)
            return message

        if relation is BranchRelation.DIVERGED:
            self._integrate(branch, upstream)

        self._push(branch, f"About to push {branch} to {self.remote}")
        message = f"Pushed {branch} to {self.remote}"
        self.console.step(message)
        return message

    def _integrate(self, branch: str, upstream: str) -> None:
        if self.use_merge:
            self.console.step(f"Merging {upstream} into {branch}")
            result = self.git.no_ff_merge(upstream, f"Merge {upstream} into {branch}")
            if not result.ok:
                logger.debug(result.output)
                self.git.abort_merge()
                raise WorkflowError(
                    f"Git merge of {upstream} failed and has been aborted",
                    exit_code=EXIT_PULL_OR_REBASE,
                    hints=[f"Merge {upstream} by hand, resolve the conflicts and rerun this command"]
                )
            return

        self.console.step(f"Rebasing {branch} onto {upstream}")
        result = self.git.rebase(upstream)
        if not result.ok:
            logger.debug(result.output)
            self.git.abort_rebase()
            raise WorkflowError(
                f"Git rebase onto {upstream} failed and has been aborted",
                exit_code=EXIT_PULL_OR_REBASE,
                hints=[
                    "This is probably due to merge conflicts",
                    f"Run 'git rebase {upstream}' by hand, or rerun this command with --merge",
                ]
            )

    def _push(self, branch: str, message: str, set_upstream: bool = False) -> None:
        if not self.console.confirm(message):
            raise WorkflowError("Process has been abandoned before pushing", exit_code=EXIT_ABANDONED)
        self.console.step(f"Pushing to {self.remote}")
        if not self.git.push(self.remote, branch, set_upstream=set_upstream):
            raise WorkflowError(f"Git push to {self.remote} failed", exit_code=EXIT_PUSH)

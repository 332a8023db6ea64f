"""
Minimal Git Workflow: promote a local topic branch into the primary branch.

The sequence is: update the primary branch, bring the topic branch on
top of it (rebase, or a no-ff merge), let the user review, merge into the
primary branch and push. Exit codes identify the step that stopped.
"""

import logging
from typing import List, Optional

from ..error_handling import WorkflowError
from ..models import BranchRelation
from ..repository import GitWrapper
from .base import Console

logger = logging.getLogger(__name__)

STRATEGIES = ("rebase", "merge")

EXIT_NOT_REPO = 1
EXIT_DIRTY_TREE = 1
EXIT_NO_BRANCH = 2
EXIT_TRACKING_BRANCH = 3
EXIT_CHECKOUT = 4
EXIT_PULL_OR_REBASE = 5
EXIT_MERGE = 6
EXIT_PUSH = 7
EXIT_ABANDONED = 8


class MergePushWorkflow:
    """
    Merge a local, non-tracking topic branch into the primary branch and push.

    Every failing step raises WorkflowError carrying the exit code the
    command terminates with.
    """

    def __init__(
        self,
        git: GitWrapper,
        console: Console,
        target: str = "dev",
        primary: str = "master",
        remote: str = "origin",
        strategy: str = "rebase",
        abort_on_conflict: bool = False,
        dry_run: bool = False
    ):
        """
        Initialize merge and push workflow.

        Args:
            git: Wrapper bound to the working copy
            console: Progress output and prompts
            target: Topic branch to promote
            primary: Branch the topic branch is merged into
            remote: Remote the primary branch is pulled from and pushed to
            strategy: ``rebase`` (fast-forward after rebasing) or ``merge`` (no-ff merge)
            abort_on_conflict: Abort a conflicting rebase instead of leaving it for the user
            dry_run: Only run the checks and describe what would happen
        """
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy '{strategy}'. Use one of: {', '.join(STRATEGIES)}")
        self.git = git
        self.console = console
        self.target = target
        self.primary = primary
        self.remote = remote
        self.strategy = strategy
        self.abort_on_conflict = abort_on_conflict
        self.dry_run = dry_run
        self.start_rev: Optional[str] = None

    def run(self) -> str:
        """
        Run the workflow.

        Returns:
            Closing message for the user

        Raises:
            WorkflowError: If a step fails or the user abandons the process
        """
        self._check_repository()
        self._confirm_target()
        self._check_target_branch()

        if self.dry_run:
            self._require_clean_tree("rebase")
            return self._describe_plan()

        self._checkout(self.primary)
        self._pull()

        self._checkout(self.target)
        self._require_clean_tree("rebase")
        self.start_rev = self.git.rev_parse("HEAD")

        relation = self.git.relation(self.target, self.primary)
        if relation in (BranchRelation.UP_TO_DATE, BranchRelation.BEHIND):
            message = f"Nothing to merge: {self.target} has no commits that are not on {self.primary}"
            self.console.step(message)
            return message

        if self.strategy == "rebase" and relation is not None and not relation.can_fast_forward:
            self._rebase()

        self._review()

        self._checkout(self.primary)
        self._uptodate_check()
        self._merge()

        if not self.console.confirm(f"About to push to {self.remote}"):
            raise WorkflowError(
                "Process has been abandoned before pushing",
                exit_code=EXIT_ABANDONED,
                hints=[f"Your local {self.primary} contains the merge; push it with 'git push {self.remote} {self.primary}'"]
            )
        self._push()

        self._checkout(self.target)
        message = "Finished merge and push"
        self.console.step(message)
        return message

    def _check_repository(self) -> None:
        if not self.git.is_git_repo():
            raise WorkflowError("Current directory is not under git control. Exiting", exit_code=EXIT_NOT_REPO)

    def _confirm_target(self) -> None:
        if not self.console.confirm(f"Target branch we are working with is '{self.target}'"):
            raise WorkflowError("Process has been abandoned", exit_code=EXIT_ABANDONED)

    def _check_target_branch(self) -> None:
        if not self.git.branch_exists(self.target):
            raise WorkflowError(
                f"The branch {self.target} does not exist. Cannot continue as there is nothing to merge",
                exit_code=EXIT_NO_BRANCH
            )

        branch_merge = self.git.get_config(f"branch.{self.target}.merge")
        if branch_merge:
            raise WorkflowError(
                f"The {self.target} branch is setup to merge with '{branch_merge}'. Do not do this. "
                f"{self.target} must be a local non-tracking branch",
                exit_code=EXIT_TRACKING_BRANCH
            )

        branch_remote = self.git.get_config(f"branch.{self.target}.remote")
        if branch_remote:
            raise WorkflowError(
                f"The {self.target} branch is tracking a remote '{branch_remote}'. Do not do this. "
                f"{self.target} must be a local non-tracking branch",
                exit_code=EXIT_TRACKING_BRANCH
            )

    def _describe_plan(self) -> str:
        relation = self.git.relation(self.target, self.primary)
        plan: List[str] = [
            f"checkout {self.primary} and pull {self.remote}",
            f"checkout {self.target} and check the working tree is clean",
        ]
        if relation in (BranchRelation.UP_TO_DATE, BranchRelation.BEHIND):
            plan.append(f"stop: {self.target} has nothing to merge into the local {self.primary}")
        else:
            if self.strategy == "rebase":
                if relation is not None and not relation.can_fast_forward:
                    plan.append(f"rebase {self.target} onto {self.primary}")
                plan.append(f"checkout {self.primary} and fast-forward it to {self.target}")
            else:
                plan.append(f"checkout {self.primary} and merge {self.target} with --no-ff")
            plan.append(f"push {self.primary} to {self.remote}")
            plan.append(f"checkout {self.target}")

        for step in plan:
            self.console.step(f"[dry run] {step}")
        return "Dry run finished; nothing was changed"

    def _checkout(self, branch: str) -> None:
        self.console.step(f"Checking out {branch}")
        if not self.git.checkout(branch):
            raise WorkflowError(f"Git checkout of {branch} branch failed", exit_code=EXIT_CHECKOUT)

    def _pull(self) -> None:
        self.console.step(f"Pulling in remote {self.remote}")
        if not self.git.pull(self.remote):
            raise WorkflowError(f"Git pull of {self.remote} remote failed", exit_code=EXIT_PULL_OR_REBASE)

    def _require_clean_tree(self, action: str) -> None:
        status = self.git.tree_status()
        if status.is_clean:
            return

        hints = []
        if status.unstaged:
            hints.append(f"Cannot {action}: you have unstaged changes.\n{status.unstaged}")
        if status.uncommitted:
            hints.append(f"Cannot {action}: your index contains uncommitted changes.\n{status.uncommitted}")
        hints.append("Please commit/stash them and retry this command")
        raise WorkflowError(f"Working tree of {self.target} is not clean", exit_code=EXIT_DIRTY_TREE, hints=hints)

    def _rebase(self) -> None:
        self.console.step(f"Rebasing current branch onto {self.primary}")
        result = self.git.rebase(self.primary)
        if result.ok:
            return

        logger.debug(result.output)
        if self.abort_on_conflict:
            self.git.abort_rebase()
            hints = [
                f"The rebase has been aborted and {self.target} is unchanged",
                f"Rebase {self.target} onto {self.primary} by hand, or rerun with the merge strategy",
            ]
        else:
            hints = [
                "This is probably due to merge conflicts",
                "Resolve the conflicts, run 'git rebase --continue' and rerun this command",
            ]
        raise WorkflowError(f"Git rebase to {self.primary} failed", exit_code=EXIT_PULL_OR_REBASE, hints=hints)

    def _review(self) -> None:
        self.console.step("Please take a moment to review your changes.")
        log = self.git.log_oneline(f"{self.primary}..{self.target}")
        if log:
            self.console.step(f"Commits to merge:\n{log.rstrip()}")
        self.console.step(f"Example cmd: git log --oneline --reverse {self.primary}..{self.target}")

        if not self.console.confirm():
            raise WorkflowError(
                "Process has been abandoned. Please review the changes",
                exit_code=EXIT_ABANDONED,
                hints=[
                    "You can reset the current changes using the following command "
                    "(this will re-write your history and ref pointers)",
                    f"git reset {self.start_rev}",
                ]
            )

    def _uptodate_check(self) -> None:
        self.console.step(f"Checking that {self.primary} is at the same rev as {self.remote}/{self.primary}")
        if not self.git.is_origin_uptodate(self.primary, self.remote):
            raise WorkflowError(
                f"Git local and remote {self.primary} are not the same",
                exit_code=EXIT_MERGE,
                hints=[f"Rerun this command to rebase to the new remote {self.primary} HEAD"]
            )

    def _merge(self) -> None:
        self.console.step(f"Merge current branch with {self.target}")
        if self.strategy == "rebase":
            if not self.git.ff_merge(self.target):
                raise WorkflowError(f"Git merge with {self.target} failed", exit_code=EXIT_MERGE)
            return

        result = self.git.no_ff_merge(self.target, f"Merge branch '{self.target}' into {self.primary}")
        if not result.ok:
            logger.debug(result.output)
            self.git.abort_merge()
            raise WorkflowError(
                f"Git merge with {self.target} failed",
                exit_code=EXIT_MERGE,
                hints=[f"The merge has been aborted; resolve the conflicts on {self.target} and rerun this command"]
            )

    def _push(self) -> None:
        self.console.step(f"Pushing to {self.remote}")
        if not self.git.push(self.remote, self.primary):
            raise WorkflowError(f"Git push to {self.remote} failed", exit_code=EXIT_PUSH)

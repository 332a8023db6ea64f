"""
Git operations used by the multi-repository commands and workflows.
"""

import logging
from typing import Dict, List, Optional

from .git_runner import GitRunner
from ..models import BranchRelation, CommandResult, TreeStatus

logger = logging.getLogger(__name__)


class GitWrapper:
    """
    Git operations over one working copy.

    Boolean operations mirror the exit status of the underlying command;
    lookups return None when git cannot answer.
    """

    def __init__(self, runner: Optional[GitRunner] = None, verbose: bool = False):
        """
        Initialize git wrapper.

        Args:
            runner: Runner bound to the working copy (current directory if None)
            verbose: Pass --verbose to network operations
        """
        self.runner = runner or GitRunner(verbose=verbose)
        self.verbose = verbose or self.runner.verbose

    def _verbose_flag(self) -> List[str]:
        return ["--verbose"] if self.verbose else []

    # Repository state

    def is_git_repo(self) -> bool:
        return self.runner.run_ok("rev-parse")

    def tree_status(self) -> TreeStatus:
        """
        Look for changes in the working tree and index that are not committed.

        Returns:
            TreeStatus listing any unstaged or uncommitted paths
        """
        status = TreeStatus()

        refresh = self.runner.run("update-index", "-q", "--ignore-submodules", "--refresh")
        if not refresh.ok:
            status.unstaged = refresh.output or "index refresh failed"

        if not self.runner.run_ok("diff-files", "--quiet", "--ignore-submodules", "--"):
            result = self.runner.run("diff-files", "--name-status", "-r", "--ignore-submodules", "--")
            status.unstaged = result.stdout or status.unstaged or "unstaged changes"

        if not self.runner.run_ok("diff-index", "--cached", "--quiet", "HEAD", "--ignore-submodules", "--"):
            result = self.runner.run("diff-index", "--cached", "--name-status", "-r",
                                     "--ignore-submodules", "HEAD", "--")
            status.uncommitted = result.stdout or "uncommitted changes"

        return status

    def is_tree_clean(self) -> bool:
        """
        Check the working copy has nothing unstaged or uncommitted.

        Problems are logged as errors along with the offending paths.
        """
        status = self.tree_status()
        if status.is_clean:
            return True

        for problem in status.problems():
            logger.error(problem)
        logger.error("Please stash those changes away before rerunning")
        return False

    def current_branch(self) -> Optional[str]:
        """Name of the checked out branch, or None when HEAD is detached."""
        result = self.runner.run("rev-parse", "--abbrev-ref", "HEAD")
        if not result.ok:
            return None
        branch = result.stdout.strip()
        return None if branch == "HEAD" else branch

    def branch_exists(self, branch: str, remote: Optional[str] = None) -> bool:
        """
        Look for the branch's ref, locally or under a remote.

        Args:
            branch: Branch name
            remote: Remote name; checks refs/remotes/<remote>/<branch> when given
        """
        ref_loc = f"remotes/{remote}" if remote else "heads"
        return self.runner.run_ok("show-ref", "--verify", "--quiet", f"refs/{ref_loc}/{branch}")

    def tag_exists(self, tag: str) -> bool:
        return self.runner.run_ok("show-ref", "--verify", "--quiet", f"refs/tags/{tag}")

    def rev_parse(self, rev: str) -> Optional[str]:
        """Convert a ref symbol into a SHA-1 hash."""
        result = self.runner.run("rev-parse", "--verify", "--quiet", rev)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def merge_base(self, first: str, second: str) -> Optional[str]:
        result = self.runner.run("merge-base", first, second)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return self.runner.run_ok("merge-base", "--is-ancestor", ancestor, descendant)

    def relation(self, branch: str, other: str) -> Optional[BranchRelation]:
        """
        Work out how ``branch`` relates to ``other``.

        Args:
            branch: Branch being promoted or pushed
            other: Ref it is compared against

        Returns:
            The relation, or None if either ref does not resolve
        """
        branch_sha = self.rev_parse(branch)
        other_sha = self.rev_parse(other)
        if branch_sha is None or other_sha is None:
            return None

        if branch_sha == other_sha:
            return BranchRelation.UP_TO_DATE

        base = self.merge_base(branch_sha, other_sha)
        if base == other_sha:
            return BranchRelation.AHEAD
        if base == branch_sha:
            return BranchRelation.BEHIND
        return BranchRelation.DIVERGED

    def is_origin_uptodate(self, branch: str, remote: str = "origin") -> bool:
        """
        Check the branch points at the same commit as its remote counterpart.

        Fetches from the remote first.
        """
        self.fetch(remote)
        local_hash = self.rev_parse(branch)
        remote_hash = self.rev_parse(f"{remote}/{branch}")
        if local_hash is None or remote_hash is None:
            return False
        return local_hash == remote_hash

    def log_oneline(self, rev_range: str) -> str:
        result = self.runner.run("log", "--oneline", "--reverse", rev_range)
        return result.stdout if result.ok else ""

    def rev_list(self, rev_range: str, first_parent: bool = False) -> List[str]:
        """
        List commits in a range, eldest first.

        Args:
            rev_range: Range such as ``abc123..HEAD``
            first_parent: Follow only the first parent of merge commits

        Returns:
            Commit hashes ordered oldest to newest (empty if the range is invalid)
        """
        args = ["rev-list"]
        if first_parent:
            args.append("--first-parent")
        args.append(rev_range)

        result = self.runner.run(*args)
        if not result.ok:
            return []
        commits = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        commits.reverse()
        return commits

    # Working copy changes

    def clone(self, remote: str, directory: Optional[str] = None, branch: Optional[str] = None,
              depth: Optional[int] = None) -> CommandResult:
        """
        Clone a remote. Without a directory the clone is named after the remote.

        Returns:
            Result of the clone command
        """
        args = ["clone", *self._verbose_flag()]
        if branch:
            args.extend(["--branch", branch])
        if depth:
            args.extend(["--depth", str(depth)])
        args.append(remote)
        if directory:
            args.append(directory)
        return self.runner.run(*args)

    def checkout(self, branch: str) -> bool:
        args = ["checkout"]
        if not self.verbose:
            args.append("--quiet")
        args.append(branch)
        return self.runner.run_ok(*args)

    def force_checkout(self, rev: str) -> bool:
        return self.runner.run_ok("checkout", "-f", "-q", rev)

    def checkout_tracking(self, branch: str, remote: str = "origin") -> bool:
        """
        Switch to a branch, creating it to track the remote branch if needed.

        If the branch already exists locally it is assumed to track the remote.

        Args:
            branch: Branch to switch to
            remote: Remote the new branch should track

        Returns:
            True if the checkout succeeded
        """
        if self.branch_exists(branch):
            args = [branch]
        else:
            if not self.branch_exists(branch, remote):
                logger.error(f"No branch exists on {remote}/{branch}. Cannot checkout")
                return False
            args = ["--track", "-b", branch, f"{remote}/{branch}"]

        result = self.runner.run("checkout", *args)
        if not result.ok:
            logger.error(
                f"Could not switch {self.runner.working_dir or '.'} to branch '{branch}' "
                f"using options {' '.join(args)}.\nCommand output:\n{result.output}"
            )
            return False
        return True

    def pull(self, remote: str = "origin", branch: Optional[str] = None) -> bool:
        args = ["pull", *self._verbose_flag(), remote]
        if branch:
            args.append(branch)
        return self.runner.run_ok(*args)

    def fetch(self, remote: str = "origin") -> bool:
        return self.runner.run_ok("fetch", *self._verbose_flag(), remote)

    def rebase(self, onto: str) -> CommandResult:
        return self.runner.run("rebase", onto)

    def abort_rebase(self) -> bool:
        return self.runner.run_ok("rebase", "--abort")

    def ff_merge(self, branch: str) -> bool:
        return self.runner.run_ok("merge", "--ff-only", branch)

    def no_ff_merge(self, branch: str, message: str) -> CommandResult:
        return self.runner.run("merge", "--no-ff", "--log", "-m", message, branch)

    def abort_merge(self) -> bool:
        return self.runner.run_ok("merge", "--abort")

    def push(self, remote: str = "origin", branch: Optional[str] = None,
             set_upstream: bool = False) -> bool:
        args = ["push", *self._verbose_flag()]
        if set_upstream:
            args.append("--set-upstream")
        args.append(remote)
        if branch:
            args.append(branch)
        return self.runner.run_ok(*args)

    def reset(self, rev: str) -> bool:
        return self.runner.run_ok("reset", rev)

    # Configuration

    def get_config(self, key: str) -> Optional[str]:
        """Get a config value, or None when unset."""
        result = self.runner.run("config", "--get", key)
        if not result.ok:
            return None
        value = result.stdout.strip()
        return value or None

    def get_local_config(self, key: str) -> Optional[str]:
        result = self.runner.run("config", "--local", "--get", key)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def get_config_regexp(self, pattern: str) -> Dict[str, List[str]]:
        """
        Get every config entry whose key matches a regular expression.

        Returns:
            Keys mapped to all of their values, in config order
        """
        result = self.runner.run("config", "--get-regexp", pattern)
        entries: Dict[str, List[str]] = {}
        if not result.ok:
            return entries
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            key, _, value = line.partition(" ")
            entries.setdefault(key, []).append(value)
        return entries

    def add_config(self, key: str, value: str) -> bool:
        return self.runner.run_ok("config", "--local", "--add", key, value)

    def unset_all_config(self, key: str) -> bool:
        return self.runner.run_ok("config", "--local", "--unset-all", key)

    # History export and rewriting

    def cvsexportcommit(self, cvs_dir: str, parent: str, commit: str,
                        commit_to_cvs: bool = False) -> CommandResult:
        """
        Apply one commit to a CVS sandbox with git-cvsexportcommit.

        Args:
            cvs_dir: CVS working directory
            parent: Commit to diff against
            commit: Commit to export
            commit_to_cvs: Commit the change in CVS (``-c``)
        """
        args = ["cvsexportcommit", "-a", "-p"]
        if commit_to_cvs:
            args.append("-c")
        args.extend(["-w", cvs_dir, parent, commit])
        return self.runner.run(*args)

    def filter_branch_env(self, env_filter: str, rev_range: str = "HEAD",
                          force: bool = False) -> CommandResult:
        """
        Rewrite history with ``git filter-branch --env-filter``.

        Args:
            env_filter: Shell snippet evaluated for each commit
            rev_range: Revisions to rewrite
            force: Overwrite an existing refs/original backup
        """
        args = ["filter-branch"]
        if force:
            args.append("-f")
        args.extend(["--env-filter", env_filter, "--", rev_range])
        return self.runner.run(*args, env={"FILTER_BRANCH_SQUELCH_WARNING": "1"})

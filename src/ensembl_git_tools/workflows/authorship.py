"""
Author identity maintenance: rewriting history and shared-account identities.
"""

import logging
import shlex
from typing import Optional

from ..error_handling import WorkflowError
from ..models import Identity
from ..repository import GitWrapper
from .base import Console

logger = logging.getLogger(__name__)

USER_NAME_KEY = "user.name"
USER_EMAIL_KEY = "user.email"


def build_env_filter(old_email: str, new_identity: Identity, rewrite_committer: bool = True) -> str:
    """
    Shell snippet for ``git filter-branch --env-filter`` replacing an identity.

    Args:
        old_email: Email whose commits are rewritten
        new_identity: Identity written in its place
        rewrite_committer: Also rewrite the committer fields

    Returns:
        POSIX shell script
    """
    old = shlex.quote(old_email)
    name = shlex.quote(new_identity.name)
    email = shlex.quote(new_identity.email)

    roles = ["AUTHOR"]
    if rewrite_committer:
        roles.append("COMMITTER")

    lines = []
    for role in roles:
        lines.extend([
            f'if [ "$GIT_{role}_EMAIL" = {old} ]; then',
            f"    GIT_{role}_NAME={name}",
            f"    GIT_{role}_EMAIL={email}",
            f"    export GIT_{role}_NAME GIT_{role}_EMAIL",
            "fi",
        ])
    return "\n".join(lines) + "\n"


class AuthorRewriter:
    """Rewrite the author (and committer) of commits made with a given email."""

    def __init__(self, git: GitWrapper, console: Console):
        self.git = git
        self.console = console

    def rewrite(self, old_email: str, new_identity: Identity, rev_range: str = "HEAD",
                rewrite_committer: bool = True, force: bool = False) -> str:
        """
        Rewrite matching commits in ``rev_range``.

        Raises:
            WorkflowError: If the repository is unusable, the user declines or filter-branch fails
        """
        if not self.git.is_git_repo():
            raise WorkflowError("Current directory is not under git control. Exiting", exit_code=1)
        if not self.git.is_tree_clean():
            raise WorkflowError("Working tree is not clean", exit_code=1,
                                hints=["Please commit/stash your changes and retry this command"])

        self.console.step(f"Commits in {rev_range} authored by {old_email} will be rewritten as {new_identity}")
        if not self.console.confirm("This rewrites history; every rewritten commit gets a new hash."):
            raise WorkflowError("Process has been abandoned", exit_code=8)

        script = build_env_filter(old_email, new_identity, rewrite_committer)
        logger.debug(f"env-filter script:\n{script}")
        result = self.git.filter_branch_env(script, rev_range, force=force)
        if not result.ok:
            hints = [result.output] if result.output else []
            if "refs/original" in result.output:
                hints.append("A previous backup exists in refs/original; rerun with --force to overwrite it")
            raise WorkflowError("git filter-branch failed", exit_code=1, hints=hints)

        message = f"Rewrote {rev_range}; push with --force to publish the new history"
        self.console.step(message)
        return message


class SharedUser:
    """
    Per-repository identity for accounts used by several people.

    The identity lives in the repository's local config so it never
    leaks into the account's global configuration.
    """

    def __init__(self, git: GitWrapper):
        self.git = git

    def set(self, identity: Identity) -> None:
        for key, value in ((USER_NAME_KEY, identity.name), (USER_EMAIL_KEY, identity.email)):
            self.git.unset_all_config(key)
            if not self.git.add_config(key, value):
                raise WorkflowError(f"Could not set {key} in the local git config", exit_code=1)
        logger.info(f"Local identity set to {identity}")

    def local_identity(self) -> Optional[Identity]:
        name = self.git.get_local_config(USER_NAME_KEY)
        email = self.git.get_local_config(USER_EMAIL_KEY)
        if not name or not email:
            return None
        return Identity(name=name, email=email)

    def effective_identity(self) -> Optional[Identity]:
        """Identity git would commit with, from any config level."""
        name = self.git.get_config(USER_NAME_KEY)
        email = self.git.get_config(USER_EMAIL_KEY)
        if not name or not email:
            return None
        return Identity(name=name, email=email)

    def clear(self) -> None:
        for key in (USER_NAME_KEY, USER_EMAIL_KEY):
            self.git.unset_all_config(key)

    def check(self) -> Identity:
        """
        Require a local identity.

        Raises:
            WorkflowError: If user.name or user.email is missing from the local config
        """
        identity = self.local_identity()
        if identity is None:
            raise WorkflowError(
                "No local identity is set for this repository",
                exit_code=1,
                hints=['Run: ens-git shared-user set "Your Name <you@example.org>"']
            )
        return identity

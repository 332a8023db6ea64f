"""
Repository manager for running git operations across groups of modules.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Callable, Union

from git import Repo, GitCommandError

from ..models import Module, BranchRelation
from .git_runner import GitRunner
from .git_wrapper import GitWrapper

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of one operation on one module."""
    module: str
    ok: bool
    message: str = ""
    skipped: bool = False


class RepositoryManager:
    """
    Runs one git operation over a list of modules checked out under a base directory.

    Every module is attempted; failures are collected rather than stopping
    the run so one broken checkout does not hide the state of the others.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None, remote: str = "origin",
                 verbose: bool = False, wrapper_factory: Optional[Callable[[Path], GitWrapper]] = None):
        """
        Initialize repository manager.

        Args:
            base_dir: Directory holding the module checkouts (current directory if None)
            remote: Remote name used for fetch, pull and tracking branches
            verbose: Ask git for verbose output
            wrapper_factory: Builds the GitWrapper for a module directory
        """
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.remote = remote
        self.verbose = verbose
        self._wrapper_factory = wrapper_factory or self._default_wrapper

    def _default_wrapper(self, path: Path) -> GitWrapper:
        return GitWrapper(GitRunner(path, verbose=self.verbose), verbose=self.verbose)

    def _module_wrapper(self, module: Module) -> Optional[GitWrapper]:
        path = module.path_under(self.base_dir)
        module.local_path = str(path)
        if not path.is_dir():
            return None
        return self._wrapper_factory(path)

    def clone(self, modules: List[Module], branch: Optional[str] = None,
              depth: Optional[int] = None) -> List[OperationResult]:
        """
        Clone modules into the base directory.

        Existing directories are skipped. When a branch is requested and
        differs from the cloned default, a tracking branch is checked out.

        Args:
            modules: Modules to clone
            branch: Branch to switch to after cloning
            depth: Clone depth (None for full history)

        Returns:
            One result per module
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        results = []

        for module in modules:
            local_path = module.path_under(self.base_dir)
            module.local_path = str(local_path)

            if local_path.exists():
                logger.info(f"Skipping {module.name}: {local_path} already exists")
                results.append(OperationResult(module.name, True, f"{local_path} already exists", skipped=True))
                continue

            logger.info(f"Cloning {module.name} from {module.remote} to {local_path}")
            clone_kwargs = {"origin": self.remote}
            if depth is not None:
                clone_kwargs["depth"] = depth
                # A shallow clone would otherwise only know its default branch
                clone_kwargs["no_single_branch"] = True

            try:
                git_repo = Repo.clone_from(module.remote, local_path, **clone_kwargs)
            except GitCommandError as e:
                logger.error(f"Git clone failed for {module.remote}: {e}")
                results.append(OperationResult(module.name, False, f"clone failed: {e.stderr.strip() if e.stderr else e}"))
                continue

            current = None if git_repo.head.is_detached else git_repo.active_branch.name
            module.branch = current or module.branch

            if branch and branch != current:
                wrapper = self._wrapper_factory(local_path)
                if not wrapper.checkout_tracking(branch, self.remote):
                    results.append(OperationResult(module.name, False, f"cloned but could not switch to '{branch}'"))
                    continue
                module.branch = branch

            results.append(OperationResult(module.name, True, f"cloned ({module.branch})"))

        return results

    def checkout(self, modules: List[Module], branch: str) -> List[OperationResult]:
        """
        Switch every module to a branch, creating tracking branches where needed.

        Modules with local modifications are left alone.
        """
        results = []
        for module in modules:
            wrapper = self._module_wrapper(module)
            if wrapper is None:
                results.append(OperationResult(module.name, False, f"no checkout at {module.local_path}"))
                continue

            if not wrapper.is_tree_clean():
                results.append(OperationResult(module.name, False, "working tree is not clean"))
                continue

            if wrapper.checkout_tracking(branch, self.remote):
                results.append(OperationResult(module.name, True, f"on {branch}"))
            else:
                results.append(OperationResult(module.name, False, f"could not switch to {branch}"))
        return results

    def pull(self, modules: List[Module], only_clean: bool = False) -> List[OperationResult]:
        """
        Pull the current branch of every module from the remote.

        Args:
            modules: Modules to update
            only_clean: Skip modules with local modifications instead of pulling
        """
        results = []
        for module in modules:
            wrapper = self._module_wrapper(module)
            if wrapper is None:
                results.append(OperationResult(module.name, False, f"no checkout at {module.local_path}"))
                continue

            if only_clean and not wrapper.tree_status().is_clean:
                results.append(OperationResult(module.name, True, "skipped: working tree is not clean", skipped=True))
                continue

            branch = wrapper.current_branch()
            if wrapper.pull(self.remote):
                results.append(OperationResult(module.name, True, f"pulled {branch or 'HEAD'}"))
            else:
                results.append(OperationResult(module.name, False, f"pull of {self.remote} failed"))
        return results

    def fetch(self, modules: List[Module]) -> List[OperationResult]:
        results = []
        for module in modules:
            wrapper = self._module_wrapper(module)
            if wrapper is None:
                results.append(OperationResult(module.name, False, f"no checkout at {module.local_path}"))
                continue

            if wrapper.fetch(self.remote):
                results.append(OperationResult(module.name, True, f"fetched {self.remote}"))
            else:
                results.append(OperationResult(module.name, False, f"fetch of {self.remote} failed"))
        return results

    def status(self, modules: List[Module]) -> List[OperationResult]:
        """
        Report branch, cleanliness and relation to the remote for every module.

        No network access; relations use the last fetched remote refs.
        """
        descriptions = {
            BranchRelation.UP_TO_DATE: "up to date",
            BranchRelation.AHEAD: "ahead",
            BranchRelation.BEHIND: "behind",
            BranchRelation.DIVERGED: "diverged",
        }
        results = []
        for module in modules:
            wrapper = self._module_wrapper(module)
            if wrapper is None:
                results.append(OperationResult(module.name, False, "not cloned"))
                continue

            branch = wrapper.current_branch()
            if branch is None:
                results.append(OperationResult(module.name, True, "detached HEAD"))
                continue

            clean = "clean" if wrapper.tree_status().is_clean else "dirty"
            relation = wrapper.relation(branch, f"{self.remote}/{branch}")
            remote_state = descriptions[relation] if relation else f"no {self.remote}/{branch}"
            results.append(OperationResult(module.name, True, f"{branch} {clean}, {remote_state}"))
        return results

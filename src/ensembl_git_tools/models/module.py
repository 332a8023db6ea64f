"""
Module data model for repositories tracked by the tooling.
"""

from dataclasses import dataclass, field
from typing import Optional, List
from pathlib import Path


@dataclass
class Module:
    """
    Represents one Git repository tracked by the tooling.

    A module knows its remote and, once placed under a base directory,
    the local path its working copy lives at.
    """

    name: str
    remote: str
    local_path: Optional[str] = None
    branch: str = "master"

    @property
    def directory_name(self) -> str:
        """Directory name `git clone` creates for this module's remote."""
        url = self.remote.rstrip('/')
        if url.endswith('.git'):
            url = url[:-4]
        # Handles both scp-like (git@host:org/repo) and URL forms
        tail = url.replace(':', '/').split('/')[-1]
        return tail or self.name

    def path_under(self, base_dir: Path) -> Path:
        """
        Get the working copy path of this module under a base directory.

        Args:
            base_dir: Directory holding the module checkouts

        Returns:
            Path to the module's working copy
        """
        return Path(base_dir) / self.directory_name


@dataclass
class Group:
    """A named, ordered set of module names operated on together."""

    name: str
    modules: List[str] = field(default_factory=list)

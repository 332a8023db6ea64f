"""
Git and GitHub access for the Ensembl git tools.
"""

from .git_runner import GitRunner
from .git_wrapper import GitWrapper
from .github_client import GitHubClient, BranchProtectionRules, parse_oauth_token
from .repository_manager import RepositoryManager, OperationResult

__all__ = [
    "GitRunner",
    "GitWrapper",
    "GitHubClient",
    "BranchProtectionRules",
    "parse_oauth_token",
    "RepositoryManager",
    "OperationResult"
]

"""
Data models for the Ensembl git tools.
"""

from .module import Module, Group
from .identity import Identity
from .git_state import CommandResult, TreeStatus, BranchRelation
from .pull_request import PullRequestSummary, RateLimitInfo

__all__ = [
    "Module",
    "Group",
    "Identity",
    "CommandResult",
    "TreeStatus",
    "BranchRelation",
    "PullRequestSummary",
    "RateLimitInfo"
]

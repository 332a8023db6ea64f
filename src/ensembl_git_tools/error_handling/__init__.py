"""
Error types and recovery helpers for the Ensembl git tools.
"""

from .exceptions import (
    EnsGitError, ConfigurationError, GitCommandFailed, WorkflowError,
    GitHubAPIError, TokenPermissionError, CvsExportError
)
from .retry_decorator import retry, RetryConfig

__all__ = [
    "EnsGitError",
    "ConfigurationError",
    "GitCommandFailed",
    "WorkflowError",
    "GitHubAPIError",
    "TokenPermissionError",
    "CvsExportError",
    "retry",
    "RetryConfig"
]

"""
Custom exceptions for the Ensembl git tools.
"""

from typing import Optional, Dict, Any, List, Sequence


class EnsGitError(Exception):
    """
    Base exception for all Ensembl git tools errors.

    Every other custom exception inherits from this class so callers
    can catch a single type at the command-line boundary.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize error.

        Args:
            message: Error message
            error_code: Optional error code for categorization
            context: Additional context information
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"Context: {context_str}")

        if self.cause:
            parts.append(f"Caused by: {self.cause}")

        return " | ".join(parts)


class ConfigurationError(EnsGitError):
    """
    Exception for configuration errors.

    Raised for invalid configuration values, unreadable module tables
    and names that resolve to no known module or group.
    """

    def __init__(
        self,
        message: str,
        config_section: Optional[str] = None,
        config_key: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.get('context', {})
        if config_section:
            context['config_section'] = config_section
        if config_key:
            context['config_key'] = config_key

        kwargs['context'] = context
        super().__init__(message, **kwargs)

        self.config_section = config_section
        self.config_key = config_key


class GitCommandFailed(EnsGitError):
    """
    Exception for a git invocation that exited with a non-zero status.
    """

    def __init__(
        self,
        message: str,
        args: Optional[Sequence[str]] = None,
        status: Optional[int] = None,
        output: str = "",
        **kwargs
    ):
        """
        Initialize git command error.

        Args:
            message: Error message
            args: Arguments given to git
            status: Exit status of the git process
            output: Combined stdout and stderr of the process
            **kwargs: Additional arguments for base class
        """
        context = kwargs.get('context', {})
        if args:
            context['command'] = "git " + " ".join(args)
        if status is not None:
            context['status'] = status

        kwargs['context'] = context
        super().__init__(message, **kwargs)

        self.git_args = list(args or [])
        self.status = status
        self.output = output


class WorkflowError(EnsGitError):
    """
    Exception for a workflow step that must stop the command.

    The exit code is what the process terminates with, so scripts that
    wrap these commands can tell the failure modes apart.
    """

    def __init__(
        self,
        message: str,
        exit_code: int = 1,
        hints: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.hints = hints or []

    def __str__(self) -> str:
        return self.message


class GitHubAPIError(EnsGitError):
    """Exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        response_data: Optional[Any] = None,
        **kwargs
    ):
        context = kwargs.get('context', {})
        if status_code:
            context['status_code'] = status_code
        if reason:
            context['reason'] = reason

        kwargs['context'] = context
        super().__init__(message, **kwargs)

        self.status_code = status_code
        self.reason = reason
        self.response_data = response_data


class TokenPermissionError(EnsGitError):
    """
    Raised when an OAuth token file, or its directory, is readable by
    anyone other than its owner.
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.get('context', {})
        if path:
            context['path'] = path

        kwargs['context'] = context
        super().__init__(message, **kwargs)

        self.path = path


class CvsExportError(WorkflowError):
    """Exception for failures while exporting commits into CVS."""

    def __init__(
        self,
        message: str,
        exit_code: int = 1,
        commit: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, exit_code=exit_code, **kwargs)
        if commit:
            self.context['commit'] = commit
        self.commit = commit

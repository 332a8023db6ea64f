"""
Identity model for "Name <email>" strings.
"""

import re
from dataclasses import dataclass

from ..error_handling import ConfigurationError

_IDENTITY_PATTERN = re.compile(r'^\s*(.+?)\s*<([^<>\s]+@[^<>\s]+)>\s*$')


@dataclass(frozen=True)
class Identity:
    """A git author or committer identity."""

    name: str
    email: str

    @classmethod
    def parse(cls, value: str) -> 'Identity':
        """
        Parse an identity written as ``Name <email>``.

        Args:
            value: Identity string

        Returns:
            Parsed identity

        Raises:
            ConfigurationError: If the string is not a well formed identity
        """
        match = _IDENTITY_PATTERN.match(value or "")
        if not match:
            raise ConfigurationError(
                f"'{value}' is not a valid identity. Expected format is 'Name <email>'"
            )
        return cls(name=match.group(1).strip(), email=match.group(2).strip())

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

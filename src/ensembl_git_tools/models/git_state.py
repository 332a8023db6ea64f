"""
Value types describing the state of a working copy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence


@dataclass
class CommandResult:
    """Outcome of one git invocation."""

    args: Sequence[str]
    status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, as a terminal would show them."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    @property
    def command_line(self) -> str:
        return "git " + " ".join(self.args)


@dataclass
class TreeStatus:
    """
    Result of checking a working tree for local modifications.

    Both fields hold ``--name-status`` listings; empty means nothing to
    report for that area.
    """

    unstaged: str = ""
    uncommitted: str = ""

    @property
    def is_clean(self) -> bool:
        return not self.unstaged and not self.uncommitted

    def problems(self) -> List[str]:
        """Description of each dirty area followed by its paths."""
        messages = []
        if self.unstaged:
            messages.append(f"Detected unstaged changes in the working tree\n{self.unstaged}")
        if self.uncommitted:
            messages.append(f"Detected uncommitted changes in the index\n{self.uncommitted}")
        return messages


class BranchRelation(Enum):
    """How a branch relates to the ref it is compared against."""

    UP_TO_DATE = "up_to_date"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"

    @property
    def can_fast_forward(self) -> bool:
        """True when the other ref can be fast-forwarded onto this branch."""
        return self is BranchRelation.AHEAD

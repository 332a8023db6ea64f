"""
Pull request and rate limit models for GitHub data.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, Any


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # GitHub timestamps are ISO 8601 with a trailing Z
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class PullRequestSummary:
    """The parts of a GitHub pull request the hygiene commands report on."""

    module: str
    number: int
    title: str
    author: str
    state: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    html_url: str
    base: Optional[str] = None

    @classmethod
    def from_api(cls, module: str, data: Dict[str, Any]) -> 'PullRequestSummary':
        """
        Build a summary from a GitHub pull request payload.

        Args:
            module: Module the pull request belongs to
            data: Decoded JSON of one pull request

        Returns:
            Pull request summary
        """
        return cls(
            module=module,
            number=int(data["number"]),
            title=data.get("title", ""),
            author=(data.get("user") or {}).get("login", "unknown"),
            state=data.get("state", "open"),
            created_at=_parse_timestamp(data.get("created_at")),
            updated_at=_parse_timestamp(data.get("updated_at")),
            html_url=data.get("html_url", ""),
            base=(data.get("base") or {}).get("ref")
        )

    def age_days(self, now: Optional[datetime] = None) -> int:
        """Whole days since the pull request was last updated."""
        reference = self.updated_at or self.created_at
        if reference is None:
            return 0
        now = now or datetime.now(timezone.utc)
        return (now - reference).days

    def is_stale(self, stale_days: int, now: Optional[datetime] = None) -> bool:
        return self.age_days(now) >= stale_days


@dataclass
class RateLimitInfo:
    """GitHub API rate limit information."""
    limit: int
    remaining: int
    reset_time: datetime
    used: int

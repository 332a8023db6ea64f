"""
GitHub REST API client with authentication, pagination and rate limiting support.
"""

import requests
import stat
import time
import logging
from typing import Dict, Any, Optional, List, Tuple, Union
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
import json

from ..config import get_config
from ..error_handling import GitHubAPIError, TokenPermissionError, retry, RetryConfig
from ..models import PullRequestSummary, RateLimitInfo

logger = logging.getLogger(__name__)


@dataclass
class BranchProtectionRules:
    """Branch protection settings applied through the GitHub API."""
    required_approving_review_count: int = 1
    dismiss_stale_reviews: bool = True
    require_code_owner_reviews: bool = False
    enforce_admins: bool = False
    status_check_contexts: List[str] = field(default_factory=list)
    strict_status_checks: bool = False
    required_linear_history: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Build the body for PUT /repos/{owner}/{repo}/branches/{branch}/protection."""
        status_checks = None
        if self.status_check_contexts:
            status_checks = {
                "strict": self.strict_status_checks,
                "contexts": list(self.status_check_contexts)
            }

        reviews = None
        if self.required_approving_review_count > 0:
            reviews = {
                "dismiss_stale_reviews": self.dismiss_stale_reviews,
                "require_code_owner_reviews": self.require_code_owner_reviews,
                "required_approving_review_count": self.required_approving_review_count
            }

        return {
            "required_status_checks": status_checks,
            "enforce_admins": self.enforce_admins,
            "required_pull_request_reviews": reviews,
            "restrictions": None,
            "required_linear_history": self.required_linear_history,
            "allow_force_pushes": False,
            "allow_deletions": False
        }


def summarise_protection(protection: Optional[Dict[str, Any]]) -> str:
    """One-line description of a branch protection payload."""
    if not protection:
        return "unprotected"

    parts = []
    reviews = protection.get("required_pull_request_reviews")
    if reviews:
        parts.append(f"reviews={reviews.get('required_approving_review_count', 0)}")
        if reviews.get("dismiss_stale_reviews"):
            parts.append("dismiss-stale")
        if reviews.get("require_code_owner_reviews"):
            parts.append("code-owners")
    if (protection.get("enforce_admins") or {}).get("enabled"):
        parts.append("enforce-admins")
    checks = protection.get("required_status_checks")
    if checks:
        contexts = ",".join(checks.get("contexts", [])) or "-"
        parts.append(f"checks={contexts}{' (strict)' if checks.get('strict') else ''}")
    if (protection.get("required_linear_history") or {}).get("enabled"):
        parts.append("linear-history")
    return "protected" + (f": {' '.join(parts)}" if parts else "")


def parse_oauth_token(path: Union[str, Path]) -> str:
    """
    Read an OAuth token from a file only its owner can access.

    Both the file and its containing directory must grant no permissions
    to group or other users, so the token cannot leak.

    Args:
        path: Path to the token file

    Returns:
        Token with all whitespace removed

    Raises:
        TokenPermissionError: If the file is missing or too permissive
    """
    abs_path = Path(path).expanduser().absolute()
    if not abs_path.is_file():
        raise TokenPermissionError(f"Cannot find a file at the path {abs_path}", path=str(abs_path))

    dir_path = abs_path.parent
    dir_mode = dir_path.stat().st_mode
    if dir_mode & stat.S_IRWXO:
        raise TokenPermissionError(f"Other users have read/write/execute access to dir {dir_path}", path=str(dir_path))
    if dir_mode & stat.S_IRWXG:
        raise TokenPermissionError(f"Group users have read/write/execute access to dir {dir_path}", path=str(dir_path))

    file_mode = abs_path.stat().st_mode
    if file_mode & stat.S_IRWXO:
        raise TokenPermissionError(f"Other users have read/write/execute access to path {abs_path}", path=str(abs_path))
    if file_mode & stat.S_IRWXG:
        raise TokenPermissionError(f"Group users have read/write/execute access to path {abs_path}", path=str(abs_path))

    return "".join(abs_path.read_text(encoding="utf-8").split())


def next_page_url(link_header: Optional[str]) -> Optional[str]:
    """
    Pull the rel="next" URL out of a GitHub Link header.

    Args:
        link_header: Value of the Link response header

    Returns:
        URL of the next page, or None on the last page
    """
    if not link_header:
        return None
    for link in link_header.split(","):
        segments = [segment.strip() for segment in link.split(";")]
        if len(segments) < 2:
            continue
        url = segments[0].strip("<>")
        for segment in segments[1:]:
            if segment.replace(" ", "") == 'rel="next"':
                return url
    return None


class GitHubClient:
    """
    GitHub API client with authentication, rate limiting, and retry logic.

    Paths are given relative to the API base URL (``/orgs/Ensembl/repos``);
    full URLs, as found in Link headers, are used unchanged.
    """

    def __init__(self, access_token: Optional[str] = None, base_url: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize GitHub API client.

        Args:
            access_token: GitHub personal access token
            base_url: GitHub API base URL
            session: Session to send requests through
        """
        config = get_config()

        self.access_token = access_token or config.github.access_token
        self.base_url = base_url or config.github.api_base_url
        self.timeout = config.github.timeout
        self.max_retries = config.github.max_retries
        self.per_page = config.github.per_page
        self.retry_config = RetryConfig(
            max_attempts=self.max_retries + 1,
            exceptions=[requests.ConnectionError, requests.Timeout]
        )

        self.session = session or requests.Session()
        self._setup_session()

        self._rate_limit_info: Optional[RateLimitInfo] = None

    def _setup_session(self) -> None:
        """Set up the requests session with headers and authentication."""
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "ensembl-git-tools/1.0"
        }

        if self.access_token:
            headers["Authorization"] = f"token {self.access_token}"

        self.session.headers.update(headers)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        @retry(self.retry_config)
        def send() -> requests.Response:
            return self.session.request(method=method, url=url, timeout=self.timeout, **kwargs)
        return send()

    def _make_request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Make a request to the GitHub API with retry logic and rate limiting.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path or full URL
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            GitHubAPIError: If the request fails after retries
        """
        url = self._url(path)

        for attempt in range(self.max_retries + 1):
            self._check_rate_limits()

            try:
                response = self._send(method, url, **kwargs)
            except requests.RequestException as e:
                raise GitHubAPIError(f"Failed to process {method} ({url}): {e}", cause=e)

            self._update_rate_limit_info(response)

            if response.status_code == 403 and "rate limit" in response.text.lower():
                if attempt < self.max_retries:
                    wait_time = self._calculate_rate_limit_wait()
                    logger.warning(f"Rate limited. Waiting {wait_time} seconds before retry {attempt + 1}")
                    time.sleep(wait_time)
                    continue
                raise GitHubAPIError(
                    "Rate limit exceeded and max retries reached",
                    status_code=response.status_code,
                    reason=response.reason,
                    response_data=response.text
                )

            if not response.ok:
                if attempt < self.max_retries and response.status_code >= 500:
                    wait_time = self.retry_config.delay_for(attempt)
                    logger.warning(f"Server error {response.status_code}. Retrying in {wait_time:.1f} seconds")
                    time.sleep(wait_time)
                    continue

                raise GitHubAPIError(
                    f"Failed to process {method} ({url})! STATUS: {response.status_code} "
                    f"REASON: {response.reason} CONTENT: {response.text}",
                    status_code=response.status_code,
                    reason=response.reason,
                    response_data=response.text
                )

            return response

        raise GitHubAPIError("Unexpected error in request retry logic")

    def _update_rate_limit_info(self, response: requests.Response) -> None:
        """Update rate limit information from response headers."""
        headers = response.headers

        if "X-RateLimit-Limit" in headers:
            self._rate_limit_info = RateLimitInfo(
                limit=int(headers["X-RateLimit-Limit"]),
                remaining=int(headers.get("X-RateLimit-Remaining", 0)),
                reset_time=datetime.fromtimestamp(int(headers.get("X-RateLimit-Reset", 0))),
                used=int(headers.get("X-RateLimit-Used", 0))
            )

    def _check_rate_limits(self) -> None:
        """Wait for the reset when only a handful of requests remain."""
        if not self._rate_limit_info:
            return

        if self._rate_limit_info.remaining < 10:
            now = datetime.now()
            if now < self._rate_limit_info.reset_time:
                wait_time = (self._rate_limit_info.reset_time - now).total_seconds() + 1
                logger.info(f"Rate limit nearly exhausted. Waiting {wait_time:.0f} seconds until reset")
                time.sleep(wait_time)

    def _calculate_rate_limit_wait(self) -> int:
        if self._rate_limit_info and self._rate_limit_info.reset_time:
            now = datetime.now()
            if now < self._rate_limit_info.reset_time:
                return int((self._rate_limit_info.reset_time - now).total_seconds()) + 1
        return 60

    def get_rate_limit_info(self) -> Optional[RateLimitInfo]:
        return self._rate_limit_info

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise GitHubAPIError(
                f"GitHub returned a body that is not JSON for {response.url}",
                status_code=response.status_code,
                response_data=response.text,
                cause=e
            )

    def rest_request(self, method: str, path: str, content: Optional[Any] = None,
                     params: Optional[Dict[str, Any]] = None) -> Tuple[Any, Dict[str, str]]:
        """
        Perform a REST request.

        Args:
            method: HTTP method
            path: API path (e.g. ``/orgs/Ensembl/repos``) or full URL
            content: Body to send as JSON
            params: Query string parameters

        Returns:
            Decoded JSON (None for empty bodies) and the response headers

        Raises:
            GitHubAPIError: If no method or path is given, or the request fails
        """
        if not method:
            raise GitHubAPIError("No method specified")
        if not path:
            raise GitHubAPIError("No URL specified")

        kwargs: Dict[str, Any] = {}
        if params:
            kwargs["params"] = params
        if content is not None:
            kwargs["json"] = content

        response = self._make_request(method.upper(), path, **kwargs)
        return self._decode(response), dict(response.headers)

    def paginated_rest_request(self, method: str, path: str,
                               params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Perform a REST request and follow every page GitHub links to.

        Args:
            method: HTTP method
            path: API path of the first page
            params: Query parameters for the first page

        Returns:
            Items of every page concatenated in order
        """
        query = {"per_page": self.per_page}
        query.update(params or {})

        items: List[Any] = []
        url: Optional[str] = path
        page_params: Optional[Dict[str, Any]] = query

        while url:
            data, headers = self.rest_request(method, url, params=page_params)
            if isinstance(data, list):
                items.extend(data)
            elif data is not None:
                items.append(data)

            # Link URLs already carry the query string
            url = next_page_url(headers.get("Link") or headers.get("link"))
            page_params = None

        logger.debug(f"Retrieved {len(items)} items from {path}")
        return items

    def authenticate(self) -> str:
        """
        Test authentication with GitHub API.

        Returns:
            Login of the authenticated user

        Raises:
            GitHubAPIError: If authentication fails
        """
        try:
            user_data, _ = self.rest_request("GET", "/user")
        except GitHubAPIError as e:
            if e.status_code == 401:
                logger.error("GitHub authentication failed: Invalid or missing access token")
            else:
                logger.error(f"GitHub authentication failed: {e}")
            raise
        login = (user_data or {}).get("login", "unknown")
        logger.info(f"Successfully authenticated as GitHub user: {login}")
        return login

    def public_repositories(self, organisation: str) -> List[str]:
        """
        Sorted names of an organisation's public repositories.

        Args:
            organisation: GitHub organisation login
        """
        repos = self.paginated_rest_request("GET", f"/orgs/{organisation}/repos", params={"type": "public"})
        return sorted(repo["name"] for repo in repos)

    # Branch protection

    def get_branch_protection(self, owner: str, repo: str, branch: str) -> Optional[Dict[str, Any]]:
        """
        Current protection of a branch.

        Returns:
            Protection payload, or None when the branch is unprotected
        """
        try:
            data, _ = self.rest_request("GET", f"/repos/{owner}/{repo}/branches/{branch}/protection")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return data

    def set_branch_protection(self, owner: str, repo: str, branch: str,
                              rules: BranchProtectionRules) -> Dict[str, Any]:
        data, _ = self.rest_request(
            "PUT", f"/repos/{owner}/{repo}/branches/{branch}/protection", content=rules.to_payload()
        )
        logger.info(f"{repo}:{branch}: protection set")
        return data or {}

    def remove_branch_protection(self, owner: str, repo: str, branch: str) -> bool:
        """
        Remove protection from a branch.

        Returns:
            True if protection was removed, False if there was none
        """
        try:
            self.rest_request("DELETE", f"/repos/{owner}/{repo}/branches/{branch}/protection")
        except GitHubAPIError as e:
            if e.status_code == 404:
                return False
            raise
        logger.info(f"{repo}:{branch}: protection removed")
        return True

    # Pull requests

    def list_pull_requests(self, owner: str, repo: str, state: str = "open",
                           base: Optional[str] = None) -> List[PullRequestSummary]:
        params: Dict[str, Any] = {"state": state}
        if base:
            params["base"] = base
        pulls = self.paginated_rest_request("GET", f"/repos/{owner}/{repo}/pulls", params=params)
        return [PullRequestSummary.from_api(repo, pull) for pull in pulls]

    def close_pull_request(self, owner: str, repo: str, number: int,
                           comment: Optional[str] = None) -> None:
        """
        Close a pull request, first leaving a comment when one is given.
        """
        if comment:
            self.rest_request("POST", f"/repos/{owner}/{repo}/issues/{number}/comments",
                              content={"body": comment})
        self.rest_request("PATCH", f"/repos/{owner}/{repo}/pulls/{number}", content={"state": "closed"})
        logger.info(f"Closed pull request {owner}/{repo}#{number}")

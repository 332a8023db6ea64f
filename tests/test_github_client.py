"""Tests for the GitHub REST wrapper: requests, paging, tokens and endpoints."""

import json
import os
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests

from ensembl_git_tools.config import get_config_manager
from ensembl_git_tools.error_handling import GitHubAPIError, TokenPermissionError
from ensembl_git_tools.repository import github_client
from ensembl_git_tools.repository.github_client import (
    BranchProtectionRules, GitHubClient, next_page_url, parse_oauth_token, summarise_protection
)


def _make_resp(status: int = 200, payload: Any = None, headers: Optional[Dict[str, str]] = None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.reason = "OK" if status < 400 else "Error"
    resp.headers = headers or {}
    resp.url = "https://api.github.com/x"
    body = "" if payload is None else json.dumps(payload)
    resp.content = body.encode("utf-8")
    resp.text = body
    resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    mock_session = MagicMock()
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def client(session, monkeypatch):
    monkeypatch.setattr(github_client.time, "sleep", lambda seconds: None)
    return GitHubClient(access_token="tok", session=session)


def test_session_headers(client, session):
    assert session.headers["Authorization"] == "token tok"
    assert session.headers["Accept"] == "application/vnd.github.v3+json"
    assert "User-Agent" in session.headers


def test_rest_request_sends_json_and_decodes(client, session):
    session.request.return_value = _make_resp(200, {"id": 1})

    data, headers = client.rest_request("post", "/repos/Ensembl/ensembl/issues/3/comments",
                                        content={"body": "hi"})

    assert data == {"id": 1}
    session.request.assert_called_once_with(
        method="POST",
        url="https://api.github.com/repos/Ensembl/ensembl/issues/3/comments",
        timeout=30,
        json={"body": "hi"}
    )


def test_rest_request_empty_body_is_none(client, session):
    session.request.return_value = _make_resp(204)
    data, _ = client.rest_request("DELETE", "/repos/Ensembl/ensembl/branches/main/protection")
    assert data is None


def test_rest_request_error_carries_status(client, session):
    session.request.return_value = _make_resp(422, {"message": "Validation Failed"})

    with pytest.raises(GitHubAPIError) as excinfo:
        client.rest_request("PATCH", "/repos/Ensembl/ensembl/pulls/1", content={"state": "closed"})

    assert excinfo.value.status_code == 422
    assert "STATUS: 422" in excinfo.value.message
    assert "Validation Failed" in excinfo.value.message


def test_server_errors_are_retried(client, session):
    session.request.side_effect = [_make_resp(502), _make_resp(200, [1])]
    data, _ = client.rest_request("GET", "/user/repos")
    assert data == [1]
    assert session.request.call_count == 2


def test_rate_limited_request_waits_and_retries(client, session):
    limited = _make_resp(403)
    limited.text = "API rate limit exceeded"
    session.request.side_effect = [limited, _make_resp(200, {"login": "bot"})]

    assert client.authenticate() == "bot"
    assert session.request.call_count == 2


def test_connection_errors_become_api_errors(client, session):
    session.request.side_effect = requests.ConnectionError("down")
    with pytest.raises(GitHubAPIError):
        client.rest_request("GET", "/user")
    assert session.request.call_count == 4


def test_connection_retries_follow_max_retries(session, monkeypatch):
    monkeypatch.setattr(github_client.time, "sleep", lambda seconds: None)
    get_config_manager().apply_overrides({"github.max_retries": 1})
    session.request.side_effect = requests.Timeout("slow")

    with pytest.raises(GitHubAPIError):
        GitHubClient(access_token="tok", session=session).rest_request("GET", "/user")

    assert session.request.call_count == 2


def test_rate_limit_headers_are_tracked(client, session):
    session.request.return_value = _make_resp(200, {}, headers={
        "X-RateLimit-Limit": "5000", "X-RateLimit-Remaining": "4999",
        "X-RateLimit-Reset": "1700000000", "X-RateLimit-Used": "1",
    })
    client.rest_request("GET", "/user")
    info = client.get_rate_limit_info()
    assert (info.limit, info.remaining, info.used) == (5000, 4999, 1)


def test_next_page_url():
    header = ('<https://api.github.com/organizations/1/repos?page=12>; rel="next", '
              '<https://api.github.com/organizations/1/repos?page=30>; rel="last"')
    assert next_page_url(header) == "https://api.github.com/organizations/1/repos?page=12"
    assert next_page_url('<https://api.github.com/x?page=1>; rel="prev"') is None
    assert next_page_url(None) is None


def test_pagination_follows_links_past_single_digit_pages(client, session):
    link = '<https://api.github.com/orgs/Ensembl/repos?type=public&page=11>; rel="next"'
    session.request.side_effect = [
        _make_resp(200, [{"name": "ensembl-vep"}, {"name": "ensembl"}], headers={"Link": link}),
        _make_resp(200, [{"name": "ensembl-compara"}]),
    ]

    assert client.public_repositories("Ensembl") == ["ensembl", "ensembl-compara", "ensembl-vep"]

    first, second = session.request.call_args_list
    assert first.kwargs["params"] == {"per_page": 100, "type": "public"}
    assert "params" not in second.kwargs
    assert second.kwargs["url"].endswith("page=11")


def test_branch_protection_round_trip(client, session):
    session.request.side_effect = [
        _make_resp(404, {"message": "Branch not protected"}),
        _make_resp(200, {"url": "x"}),
        _make_resp(404, {"message": "Branch not protected"}),
    ]
    rules = BranchProtectionRules(required_approving_review_count=2, status_check_contexts=["travis"],
                                  strict_status_checks=True)

    assert client.get_branch_protection("Ensembl", "ensembl", "main") is None
    client.set_branch_protection("Ensembl", "ensembl", "main", rules)
    assert client.remove_branch_protection("Ensembl", "ensembl", "main") is False

    put_call = session.request.call_args_list[1]
    assert put_call.kwargs["method"] == "PUT"
    assert put_call.kwargs["json"]["required_status_checks"] == {"strict": True, "contexts": ["travis"]}
    assert put_call.kwargs["json"]["required_pull_request_reviews"]["required_approving_review_count"] == 2


def test_protection_payload_without_reviews():
    payload = BranchProtectionRules(required_approving_review_count=0).to_payload()
    assert payload["required_pull_request_reviews"] is None
    assert payload["required_status_checks"] is None


def test_summarise_protection():
    assert summarise_protection(None) == "unprotected"
    summary = summarise_protection({
        "required_pull_request_reviews": {"required_approving_review_count": 1, "dismiss_stale_reviews": True},
        "enforce_admins": {"enabled": True},
    })
    assert summary == "protected: reviews=1 dismiss-stale enforce-admins"


def test_close_pull_request_comments_then_closes(client, session):
    session.request.return_value = _make_resp(200, {})
    client.close_pull_request("Ensembl", "ensembl", 7, comment="Closing stale PR")

    comment_call, close_call = session.request.call_args_list
    assert comment_call.kwargs["url"].endswith("/repos/Ensembl/ensembl/issues/7/comments")
    assert comment_call.kwargs["json"] == {"body": "Closing stale PR"}
    assert close_call.kwargs["method"] == "PATCH"
    assert close_call.kwargs["json"] == {"state": "closed"}


def test_list_pull_requests(client, session):
    session.request.return_value = _make_resp(200, [{
        "number": 5, "title": "t", "user": {"login": "u"}, "state": "open",
        "created_at": "2024-01-01T00:00:00Z", "updated_at": "2024-01-02T00:00:00Z",
        "html_url": "https://github.com/Ensembl/ensembl/pull/5", "base": {"ref": "main"},
    }])
    pulls = client.list_pull_requests("Ensembl", "ensembl", base="main")
    assert [(p.module, p.number) for p in pulls] == [("ensembl", 5)]
    assert session.request.call_args.kwargs["params"] == {"per_page": 100, "state": "open", "base": "main"}


class TestParseOauthToken:
    def _token_file(self, tmp_path, dir_mode=0o700, file_mode=0o600):
        directory = tmp_path / "secrets"
        directory.mkdir()
        token = directory / "token"
        token.write_text("  abc123\n\tdef \n", encoding="utf-8")
        os.chmod(token, file_mode)
        os.chmod(directory, dir_mode)
        return token

    def test_private_file_is_read_without_whitespace(self, tmp_path):
        assert parse_oauth_token(self._token_file(tmp_path)) == "abc123def"

    @pytest.mark.parametrize("dir_mode,file_mode", [(0o750, 0o600), (0o705, 0o600), (0o700, 0o640), (0o700, 0o604)])
    def test_permissive_modes_are_rejected(self, tmp_path, dir_mode, file_mode):
        token = self._token_file(tmp_path, dir_mode, file_mode)
        try:
            with pytest.raises(TokenPermissionError):
                parse_oauth_token(token)
        finally:
            os.chmod(token.parent, 0o700)

    def test_missing_file(self, tmp_path):
        with pytest.raises(TokenPermissionError):
            parse_oauth_token(tmp_path / "absent")

"""Shared fixtures: a scripted git runner and an isolated configuration."""

from typing import Dict, List, Optional, Tuple

import pytest

from ensembl_git_tools.config import reset_config_manager
from ensembl_git_tools.models import CommandResult
from ensembl_git_tools.repository import GitWrapper
from ensembl_git_tools.workflows import Console

ENV_VARS = (
    "GITHUB_TOKEN", "GITHUB_TOKEN_FILE", "GITHUB_API_URL", "GITHUB_ORGANISATION",
    "ENSGIT_CONFIG", "ENSGIT_REMOTE", "ENSGIT_PRIMARY_BRANCH", "ENSGIT_PROTOCOL",
    "ENSGIT_MODULES_FILE", "ENSGIT_LOG_LEVEL", "ENSGIT_LOG_FILE", "NO_PROMPT",
)


class FakeRunner:
    """Stands in for GitRunner: records commands and replays scripted results.

    Unscripted commands succeed with empty output. Scripting a command
    again replaces its earlier result.
    """

    def __init__(self, working_dir: str = "/work/repo"):
        self.working_dir = working_dir
        self.verbose = False
        self.calls: List[List[str]] = []
        self.envs: List[Optional[Dict[str, str]]] = []
        self._responses: Dict[Tuple[str, ...], Tuple[int, str, str]] = {}

    def script(self, *args: str, status: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._responses[tuple(args)] = (status, stdout, stderr)

    def fail(self, *args: str, stderr: str = "error") -> None:
        self.script(*args, status=1, stderr=stderr)

    def run(self, *args: str, env: Optional[Dict[str, str]] = None) -> CommandResult:
        self.calls.append(list(args))
        self.envs.append(env)
        status, stdout, stderr = self._responses.get(tuple(args), (0, "", ""))
        return CommandResult(args=list(args), status=status, stdout=stdout, stderr=stderr)

    def run_ok(self, *args: str) -> bool:
        return self.run(*args).ok

    def called(self, *args: str) -> bool:
        return list(args) in self.calls

    def commands_starting(self, *prefix: str) -> List[List[str]]:
        return [call for call in self.calls if call[:len(prefix)] == list(prefix)]


def script_relation(runner: FakeRunner, branch: str, other: str, relation: str) -> None:
    """Script rev-parse/merge-base so GitWrapper.relation(branch, other) gives ``relation``."""
    branch_sha, other_sha, base_sha = "b" * 40, "o" * 40, "c" * 40
    if relation == "up_to_date":
        other_sha = branch_sha
    elif relation == "ahead":
        base_sha = other_sha
    elif relation == "behind":
        base_sha = branch_sha
    runner.script("rev-parse", "--verify", "--quiet", branch, stdout=branch_sha + "\n")
    runner.script("rev-parse", "--verify", "--quiet", other, stdout=other_sha + "\n")
    runner.script("merge-base", branch_sha, other_sha, stdout=base_sha + "\n")


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep the user's environment and ~/.ensgit.yaml out of every test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    reset_config_manager()
    yield
    reset_config_manager()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def git(runner):
    return GitWrapper(runner)


@pytest.fixture
def console():
    return Console(prompt=False)

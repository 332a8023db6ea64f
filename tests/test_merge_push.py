"""Tests for the Minimal Git Workflow promotion (mgw)."""

from unittest.mock import patch

import pytest

from conftest import script_relation
from ensembl_git_tools.error_handling import WorkflowError
from ensembl_git_tools.workflows import Console, MergePushWorkflow

START = "s" * 40


@pytest.fixture
def repo(runner):
    """A repository with a non-tracking dev branch ahead of master."""
    runner.script("rev-parse", "--verify", "--quiet", "HEAD", stdout=START)
    script_relation(runner, "dev", "master", "ahead")
    runner.fail("config", "--get", "branch.dev.merge")
    runner.fail("config", "--get", "branch.dev.remote")
    runner.script("rev-parse", "--verify", "--quiet", "origin/master", stdout="o" * 40)
    return runner


def _workflow(git, console, **kwargs):
    return MergePushWorkflow(git, console, **kwargs)


def _exit_code(workflow):
    with pytest.raises(WorkflowError) as excinfo:
        workflow.run()
    return excinfo.value


def test_fast_forward_promotion(git, repo, console):
    message = _workflow(git, console).run()

    assert message == "Finished merge and push"
    mutating = [call for call in repo.calls if call[0] in ("checkout", "pull", "rebase", "merge", "push")]
    assert mutating == [
        ["checkout", "--quiet", "master"],
        ["pull", "origin"],
        ["checkout", "--quiet", "dev"],
        ["checkout", "--quiet", "master"],
        ["merge", "--ff-only", "dev"],
        ["push", "origin", "master"],
        ["checkout", "--quiet", "dev"],
    ]
    assert repo.called("fetch", "origin")


def test_diverged_branch_is_rebased(git, repo, console):
    script_relation(repo, "dev", "master", "diverged")
    repo.calls.clear()

    _workflow(git, console).run()

    assert repo.called("rebase", "master")
    assert repo.called("merge", "--ff-only", "dev")


def test_merge_strategy_uses_no_ff_merge(git, repo, console):
    script_relation(repo, "dev", "master", "diverged")

    _workflow(git, console, strategy="merge").run()

    assert not repo.commands_starting("rebase")
    assert repo.called("merge", "--no-ff", "--log", "-m", "Merge branch 'dev' into master", "dev")


@pytest.mark.parametrize("relation", ["up_to_date", "behind"])
def test_nothing_to_promote(git, repo, console, relation):
    script_relation(repo, "dev", "master", relation)

    message = _workflow(git, console).run()

    assert message.startswith("Nothing to merge")
    assert not repo.commands_starting("push")
    assert repo.commands_starting("checkout")[-1] == ["checkout", "--quiet", "dev"]


def test_not_a_repository(git, runner, console):
    runner.fail("rev-parse")
    assert _exit_code(_workflow(git, console)).exit_code == 1


def test_missing_target_branch(git, repo, console):
    repo.fail("show-ref", "--verify", "--quiet", "refs/heads/feature")
    error = _exit_code(_workflow(git, console, target="feature"))
    assert error.exit_code == 2
    assert "feature does not exist" in error.message


@pytest.mark.parametrize("key", ["merge", "remote"])
def test_tracking_target_is_refused(git, repo, console, key):
    repo.script("config", "--get", f"branch.dev.{key}", stdout="refs/heads/dev" if key == "merge" else "origin")
    assert _exit_code(_workflow(git, console)).exit_code == 3


def test_checkout_failure(git, repo, console):
    repo.fail("checkout", "--quiet", "master")
    assert _exit_code(_workflow(git, console)).exit_code == 4


def test_pull_failure(git, repo, console):
    repo.fail("pull", "origin")
    assert _exit_code(_workflow(git, console)).exit_code == 5


def test_dirty_tree_before_rebase(git, repo, console):
    repo.fail("diff-files", "--quiet", "--ignore-submodules", "--")
    repo.script("diff-files", "--name-status", "-r", "--ignore-submodules", "--", stdout="M\tFoo.pm")
    error = _exit_code(_workflow(git, console))
    assert error.exit_code == 1
    assert any("unstaged changes" in hint for hint in error.hints)


def test_rebase_conflict_left_for_user(git, repo, console):
    script_relation(repo, "dev", "master", "diverged")
    repo.fail("rebase", "master", stderr="CONFLICT (content)")

    error = _exit_code(_workflow(git, console))

    assert error.exit_code == 5
    assert not repo.called("rebase", "--abort")
    assert any("git rebase --continue" in hint for hint in error.hints)


def test_rebase_conflict_aborted_on_request(git, repo, console):
    script_relation(repo, "dev", "master", "diverged")
    repo.fail("rebase", "master", stderr="CONFLICT (content)")

    error = _exit_code(_workflow(git, console, abort_on_conflict=True))

    assert error.exit_code == 5
    assert repo.called("rebase", "--abort")


def test_remote_moved_on(git, repo, console):
    repo.script("rev-parse", "--verify", "--quiet", "origin/master", stdout="n" * 40)
    repo.script("rev-parse", "--verify", "--quiet", "master", stdout="o" * 40)
    assert _exit_code(_workflow(git, console)).exit_code == 6


def test_no_ff_merge_failure_is_aborted(git, repo, console):
    repo.fail("merge", "--no-ff", "--log", "-m", "Merge branch 'dev' into master", "dev")
    error = _exit_code(_workflow(git, console, strategy="merge"))
    assert error.exit_code == 6
    assert repo.called("merge", "--abort")


def test_push_failure(git, repo, console):
    repo.fail("push", "origin", "master")
    assert _exit_code(_workflow(git, console)).exit_code == 7


def test_declining_review_gives_reset_hint(git, repo):
    console = Console(prompt=True)
    with patch("ensembl_git_tools.workflows.base.click.confirm", side_effect=[True, False]):
        error = _exit_code(_workflow(git, console))

    assert error.exit_code == 8
    assert f"git reset {START}" in error.hints
    assert not repo.commands_starting("push")


def test_dry_run_changes_nothing(git, repo, console):
    message = _workflow(git, console, dry_run=True).run()

    assert message.startswith("Dry run")
    assert not [call for call in repo.calls if call[0] in ("checkout", "pull", "rebase", "merge", "push")]


def test_dry_run_checks_working_tree(git, repo, console):
    repo.fail("diff-files", "--quiet", "--ignore-submodules", "--")
    repo.script("diff-files", "--name-status", "-r", "--ignore-submodules", "--", stdout="M\tFoo.pm")

    error = _exit_code(_workflow(git, console, dry_run=True))

    assert error.exit_code == 1
    assert any("unstaged changes" in hint for hint in error.hints)
    assert not [call for call in repo.calls if call[0] in ("checkout", "pull", "rebase", "merge", "push")]


def test_unknown_strategy(git, console):
    with pytest.raises(ValueError):
        MergePushWorkflow(git, console, strategy="squash")

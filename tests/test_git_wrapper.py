"""Tests for the git command layer: GitRunner and GitWrapper."""

from unittest.mock import patch

import pytest

from conftest import script_relation
from ensembl_git_tools.error_handling import GitCommandFailed
from ensembl_git_tools.models import BranchRelation
from ensembl_git_tools.repository import GitRunner, GitWrapper


class TestGitRunner:
    @patch("ensembl_git_tools.repository.git_runner.Git")
    def test_run_returns_result_without_raising(self, mock_git_class):
        mock_git_class.return_value.execute.return_value = (1, "", "fatal: not a git repository")
        runner = GitRunner("/tmp/somewhere")

        result = runner.run("rev-parse")

        mock_git_class.assert_called_once_with("/tmp/somewhere")
        mock_git_class.return_value.execute.assert_called_once_with(
            ["git", "rev-parse"], with_extended_output=True, with_exceptions=False, env=None
        )
        assert not result.ok
        assert result.stderr == "fatal: not a git repository"
        assert runner.history == [result]

    @patch("ensembl_git_tools.repository.git_runner.Git")
    def test_run_checked_raises_with_details(self, mock_git_class):
        mock_git_class.return_value.execute.return_value = (128, "", "boom")
        runner = GitRunner()

        with pytest.raises(GitCommandFailed) as excinfo:
            runner.run_checked("push", "origin")

        assert excinfo.value.status == 128
        assert excinfo.value.git_args == ["push", "origin"]
        assert "boom" in excinfo.value.output

    @patch("ensembl_git_tools.repository.git_runner.Git")
    def test_in_directory_keeps_settings(self, mock_git_class):
        runner = GitRunner("/a", verbose=True).in_directory("/b")
        assert runner.working_dir == "/b"
        assert runner.verbose is True


class TestTreeStatus:
    def test_clean_tree(self, git, runner):
        assert git.is_tree_clean()
        assert runner.calls == [
            ["update-index", "-q", "--ignore-submodules", "--refresh"],
            ["diff-files", "--quiet", "--ignore-submodules", "--"],
            ["diff-index", "--cached", "--quiet", "HEAD", "--ignore-submodules", "--"],
        ]

    def test_unstaged_and_uncommitted_changes(self, git, runner):
        runner.fail("diff-files", "--quiet", "--ignore-submodules", "--")
        runner.script("diff-files", "--name-status", "-r", "--ignore-submodules", "--", stdout="M\tmodules/Foo.pm")
        runner.fail("diff-index", "--cached", "--quiet", "HEAD", "--ignore-submodules", "--")
        runner.script("diff-index", "--cached", "--name-status", "-r", "--ignore-submodules", "HEAD", "--",
                      stdout="A\tmodules/Bar.pm")

        status = git.tree_status()

        assert status.unstaged == "M\tmodules/Foo.pm"
        assert status.uncommitted == "A\tmodules/Bar.pm"
        assert not git.is_tree_clean()


class TestBranches:
    def test_current_branch_and_detached_head(self, git, runner):
        runner.script("rev-parse", "--abbrev-ref", "HEAD", stdout="dev\n")
        assert git.current_branch() == "dev"

        runner.script("rev-parse", "--abbrev-ref", "HEAD", stdout="HEAD\n")
        assert git.current_branch() is None

    def test_branch_exists_local_and_remote(self, git, runner):
        git.branch_exists("dev")
        git.branch_exists("dev", "origin")
        git.tag_exists("release/110")
        assert runner.calls == [
            ["show-ref", "--verify", "--quiet", "refs/heads/dev"],
            ["show-ref", "--verify", "--quiet", "refs/remotes/origin/dev"],
            ["show-ref", "--verify", "--quiet", "refs/tags/release/110"],
        ]

    def test_checkout_tracking_existing_local_branch(self, git, runner):
        assert git.checkout_tracking("release/110")
        assert runner.calls[-1] == ["checkout", "release/110"]

    def test_checkout_tracking_creates_tracking_branch(self, git, runner):
        runner.fail("show-ref", "--verify", "--quiet", "refs/heads/release/110")
        assert git.checkout_tracking("release/110", "upstream")
        assert runner.calls[-1] == ["checkout", "--track", "-b", "release/110", "upstream/release/110"]

    def test_checkout_tracking_without_remote_branch(self, git, runner):
        runner.fail("show-ref", "--verify", "--quiet", "refs/heads/nope")
        runner.fail("show-ref", "--verify", "--quiet", "refs/remotes/origin/nope")
        assert not git.checkout_tracking("nope")
        assert not runner.commands_starting("checkout")

    def test_checkout_is_quiet_unless_verbose(self, runner):
        GitWrapper(runner).checkout("master")
        GitWrapper(runner, verbose=True).checkout("master")
        assert runner.calls == [["checkout", "--quiet", "master"], ["checkout", "master"]]

    @pytest.mark.parametrize("relation", ["up_to_date", "ahead", "behind", "diverged"])
    def test_relation(self, git, runner, relation):
        script_relation(runner, "dev", "master", relation)
        assert git.relation("dev", "master") is BranchRelation(relation)

    def test_relation_unknown_ref(self, git, runner):
        runner.fail("rev-parse", "--verify", "--quiet", "origin/gone")
        assert git.relation("master", "origin/gone") is None

    def test_is_origin_uptodate_fetches_first(self, git, runner):
        runner.script("rev-parse", "--verify", "--quiet", "master", stdout="a" * 40)
        runner.script("rev-parse", "--verify", "--quiet", "origin/master", stdout="a" * 40)
        assert git.is_origin_uptodate("master")
        assert runner.calls[0] == ["fetch", "origin"]


class TestNetworkAndHistory:
    def test_clone_arguments(self, git, runner):
        git.clone("git@github.com:Ensembl/ensembl.git", "ensembl", branch="dev", depth=1)
        assert runner.calls[-1] == [
            "clone", "--branch", "dev", "--depth", "1", "git@github.com:Ensembl/ensembl.git", "ensembl"
        ]

    def test_verbose_network_operations(self, runner):
        verbose = GitWrapper(runner, verbose=True)
        verbose.pull("origin", "master")
        verbose.fetch("origin")
        verbose.push("origin", "dev", set_upstream=True)
        assert runner.calls == [
            ["pull", "--verbose", "origin", "master"],
            ["fetch", "--verbose", "origin"],
            ["push", "--verbose", "--set-upstream", "origin", "dev"],
        ]

    def test_merges(self, git, runner):
        git.ff_merge("dev")
        git.no_ff_merge("dev", "Merge branch 'dev'")
        assert runner.calls == [
            ["merge", "--ff-only", "dev"],
            ["merge", "--no-ff", "--log", "-m", "Merge branch 'dev'", "dev"],
        ]

    def test_rev_list_oldest_first(self, git, runner):
        runner.script("rev-list", "--first-parent", "abc..HEAD", stdout="c3\nc2\nc1\n")
        assert git.rev_list("abc..HEAD", first_parent=True) == ["c1", "c2", "c3"]

    def test_rev_list_bad_range(self, git, runner):
        runner.fail("rev-list", "bogus..HEAD")
        assert git.rev_list("bogus..HEAD") == []

    def test_cvsexportcommit_arguments(self, git, runner):
        git.cvsexportcommit("/cvs/ensembl", "p1", "c1", commit_to_cvs=True)
        git.cvsexportcommit("/cvs/ensembl", "p1", "c1")
        assert runner.calls == [
            ["cvsexportcommit", "-a", "-p", "-c", "-w", "/cvs/ensembl", "p1", "c1"],
            ["cvsexportcommit", "-a", "-p", "-w", "/cvs/ensembl", "p1", "c1"],
        ]

    def test_filter_branch_silences_warning(self, git, runner):
        git.filter_branch_env("export X=1", "HEAD~3..HEAD", force=True)
        assert runner.calls[-1] == ["filter-branch", "-f", "--env-filter", "export X=1", "--", "HEAD~3..HEAD"]
        assert runner.envs[-1] == {"FILTER_BRANCH_SQUELCH_WARNING": "1"}


class TestConfig:
    def test_get_config_regexp_groups_values(self, git, runner):
        runner.script("config", "--get-regexp", "cvsexportcommit.ens.lastexport", stdout=(
            "cvsexportcommit.ens.lastexport.head abc\n"
            "cvsexportcommit.ens.lastexport.branch-110 def\n"
            "cvsexportcommit.ens.lastexport.head 123\n"
        ))
        assert git.get_config_regexp("cvsexportcommit.ens.lastexport") == {
            "cvsexportcommit.ens.lastexport.head": ["abc", "123"],
            "cvsexportcommit.ens.lastexport.branch-110": ["def"],
        }

    def test_unset_config_value(self, git, runner):
        runner.fail("config", "--get", "user.name")
        assert git.get_config("user.name") is None

    def test_config_writes_are_local(self, git, runner):
        git.add_config("user.name", "Jane")
        git.unset_all_config("user.name")
        assert runner.calls == [
            ["config", "--local", "--add", "user.name", "Jane"],
            ["config", "--local", "--unset-all", "user.name"],
        ]

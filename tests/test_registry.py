"""Tests for module and group resolution in ensembl_git_tools.registry."""

import json
from unittest.mock import MagicMock

import pytest

from ensembl_git_tools.config import ConfigManager
from ensembl_git_tools.error_handling import ConfigurationError
from ensembl_git_tools.registry import Registry, load_lenient_json


def test_lenient_json_allows_comments_and_trailing_commas():
    text = """
    {
      // private fork
      "modules": {"my-plugins": "https://git.example.org/my-plugins.git",},
      "groups": {"mine": ["ensembl", "my-plugins",]},
    }
    """
    document = load_lenient_json(text)
    assert document["modules"]["my-plugins"] == "https://git.example.org/my-plugins.git"
    assert document["groups"]["mine"] == ["ensembl", "my-plugins"]


def test_remote_urls_follow_protocol():
    assert Registry().remote_for("ensembl") == "git@github.com:Ensembl/ensembl.git"
    registry = Registry(organisation="EnsemblGenomes", protocol="https")
    assert registry.remote_for("eg-pipelines") == "https://github.com/EnsemblGenomes/eg-pipelines.git"


def test_resolve_keeps_order_and_drops_duplicates():
    registry = Registry()
    names = [module.name for module in registry.resolve(["ensembl-vep", "variation", "ensembl"])]
    assert names == ["ensembl-vep", "ensembl", "ensembl-variation", "ensembl-io"]


def test_resolve_unknown_name_raises():
    with pytest.raises(ConfigurationError, match="'ensembl-nope' is not a known module or group"):
        Registry().resolve(["ensembl-nope"])


def test_public_group_lists_organisation_repositories():
    github_client = MagicMock()
    github_client.public_repositories.return_value = ["ensembl", "ensembl-newthing"]
    registry = Registry(github_client=github_client)

    modules = registry.resolve(["public"])

    github_client.public_repositories.assert_called_once_with("Ensembl")
    assert [module.name for module in modules] == ["ensembl", "ensembl-newthing"]
    assert modules[1].remote == "git@github.com:Ensembl/ensembl-newthing.git"


def test_public_group_needs_github_client():
    with pytest.raises(ConfigurationError):
        Registry().resolve(["public"])


def test_merge_file_overrides_table(tmp_path):
    path = tmp_path / "modules.json"
    path.write_text(json.dumps({
        "modules": {"ensembl": "https://mirror.example.org/ensembl.git", "extra": None},
        "groups": {"small": ["ensembl", "extra"]},
    }), encoding="utf-8")

    registry = Registry()
    registry.merge_file(path)

    assert registry.remote_for("ensembl") == "https://mirror.example.org/ensembl.git"
    assert [module.name for module in registry.resolve(["small"])] == ["ensembl", "extra"]
    assert "api" in registry.groups


def test_merge_file_missing_keeps_builtin_table(tmp_path):
    registry = Registry()
    registry.merge_file(tmp_path / "absent.json")
    assert "ensembl" in registry.modules


def test_merge_file_rejects_unknown_group_member(tmp_path):
    path = tmp_path / "modules.json"
    path.write_text('{"groups": {"bad": ["ensembl", "ghost"]}}', encoding="utf-8")
    with pytest.raises(ConfigurationError, match="ghost"):
        Registry().merge_file(path)


def test_merge_file_rejects_invalid_json(tmp_path):
    path = tmp_path / "modules.json"
    path.write_text('{"modules": ', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Registry().merge_file(path)


def test_from_config_reads_modules_file(tmp_path, monkeypatch):
    path = tmp_path / "modules.json"
    path.write_text('{"groups": {"core": ["ensembl"]}}', encoding="utf-8")
    monkeypatch.setenv("ENSGIT_MODULES_FILE", str(path))
    monkeypatch.setenv("ENSGIT_PROTOCOL", "https")

    registry = Registry.from_config(ConfigManager().load_config())

    assert registry.group("core").modules == ["ensembl"]
    assert registry.remote_for("ensembl") == "https://github.com/Ensembl/ensembl.git"

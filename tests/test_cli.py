import pytest
import yaml
from typer.testing import CliRunner

from reflinker import __version__
from reflinker.cli import app
from reflinker.config_loader import CONFIG_ENV_VAR

runner = CliRunner()


@pytest.fixture
def repo(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    config_dir = tmp_path / ".reflinker"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text(
        yaml.safe_dump(
            {
                "autolinks": [
                    {"prefix": "#", "url": "https://x/issues/<num>", "title": "Issue <num>"},
                    {"prefix": "JIRA-", "url": "https://j/<num>", "alphanumeric": True, "ignoreCase": True},
                ],
                "integrations": {"supported": []},
            }
        )
    )
    return tmp_path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"REFLINKER v{__version__}" in result.stdout


def test_linkify_markdown(repo):
    result = runner.invoke(app, ["linkify", "fixes #5", "--format", "markdown", "--repo", str(repo)])
    assert result.exit_code == 0
    assert '[#5](https://x/issues/5 "Issue 5")' in result.stdout


def test_linkify_reads_stdin(repo):
    result = runner.invoke(app, ["linkify", "-", "-f", "html", "-r", str(repo)], input="see #6\n")
    assert result.exit_code == 0
    assert '<a href="https://x/issues/6" title="Issue 6">#6</a>' in result.stdout


def test_linkify_without_autolinks(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    result = runner.invoke(app, ["linkify", "fixes #5", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "No autolinks configured." in result.stdout
    assert "fixes #5" in result.stdout


def test_missing_repo(tmp_path):
    result = runner.invoke(app, ["linkify", "#5", "--repo", str(tmp_path / "nope")])
    assert result.exit_code == 1


def test_branch(repo):
    result = runner.invoke(app, ["branch", "feature/jira-42-fix", "--repo", str(repo)])
    assert result.exit_code == 0
    assert "42" in result.stdout
    assert "JIRA-" in result.stdout


def test_branch_without_matches(repo):
    result = runner.invoke(app, ["branch", "main", "--repo", str(repo)])
    assert result.exit_code == 1
    assert "No issue references in main" in result.stdout


def test_refs(repo):
    result = runner.invoke(app, ["refs", "--repo", str(repo)])
    assert result.exit_code == 0
    assert "JIRA-" in result.stdout
    assert "alphanumeric" in result.stdout
    assert "Issue <num>" in result.stdout

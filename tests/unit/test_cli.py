"""CLI smoke tests against a throwaway store file."""

import json

import pytest
from typer.testing import CliRunner

from mint_ledger import __version__
from mint_ledger.cli import app
from mint_ledger.store import BACKUP_SENTINEL_KEY, STORE_ENV_VAR

runner = CliRunner()


@pytest.fixture
def store_path(tmp_path, monkeypatch):
    """Point the CLI at a store file in a temporary directory."""
    path = tmp_path / "ledger.json"
    monkeypatch.setenv(STORE_ENV_VAR, str(path))
    monkeypatch.chdir(tmp_path)
    return path


def test_version():
    """Test the version flag."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"mint-ledger v{__version__}" in result.output


def test_mints_empty(store_path):
    """Test listing mints on a fresh store, which also records the backup sentinel."""
    result = runner.invoke(app, ["mints"])

    assert result.exit_code == 0
    assert "No mints added yet" in result.output
    assert BACKUP_SENTINEL_KEY in json.loads(store_path.read_text())


def test_balance_without_active_mint(store_path):
    result = runner.invoke(app, ["balance"])

    assert result.exit_code == 1
    assert "No active mint" in result.output


def test_backup_and_restore(store_path, tmp_path):
    """Test exporting a backup and restoring an edited copy."""
    backup_file = tmp_path / "backup.json"

    result = runner.invoke(app, ["backup", "--output", str(backup_file)])
    assert result.exit_code == 0
    snapshot = json.loads(backup_file.read_text())
    assert snapshot[BACKUP_SENTINEL_KEY] == "true"

    snapshot["cashu.activeUnit"] = '"usd"'
    backup_file.write_text(json.dumps(snapshot))
    result = runner.invoke(app, ["restore", str(backup_file)])

    assert result.exit_code == 0
    assert json.loads(store_path.read_text())["cashu.activeUnit"] == '"usd"'


def test_restore_rejects_foreign_file(store_path, tmp_path):
    """Test that a JSON file without the sentinel is refused."""
    foreign = tmp_path / "foreign.json"
    foreign.write_text(json.dumps({"cashu.activeUnit": '"usd"'}))

    result = runner.invoke(app, ["restore", str(foreign)])

    assert result.exit_code == 1
    assert "Unrecognized Backup Format!" in result.output


def test_init_without_env(store_path, monkeypatch):
    monkeypatch.delenv("CASHU_MINTS", raising=False)

    result = runner.invoke(app, ["init"])

    assert result.exit_code == 1
    assert "CASHU_MINTS is not set" in result.output


def test_restore_malformed_file(store_path, tmp_path):
    """Test that a file that is not JSON is reported, not raised."""
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    result = runner.invoke(app, ["restore", str(broken)])

    assert result.exit_code == 1
    assert "Unrecognized Backup Format!" in result.output


def test_restore_missing_file(store_path, tmp_path):
    result = runner.invoke(app, ["restore", str(tmp_path / "nowhere.json")])

    assert result.exit_code == 1
    assert "Unrecognized Backup Format!" in result.output


def test_restore_plain_string_backup(store_path, tmp_path):
    """Test restoring a backup that stores the active unit as a bare string."""
    backup_file = tmp_path / "plain.json"
    backup_file.write_text(
        json.dumps({BACKUP_SENTINEL_KEY: "true", "cashu.activeUnit": "usd"})
    )

    result = runner.invoke(app, ["restore", str(backup_file)])
    assert result.exit_code == 0

    result = runner.invoke(app, ["mints"])
    assert result.exit_code == 0
    assert json.loads(store_path.read_text())["cashu.activeUnit"] == '"usd"'

"""
Tests for the command line interface.
"""
import json

import pytest

from importer.cli import main
from importer.config import get_settings


@pytest.fixture()
def cli_store(tmp_path, monkeypatch):
    """Point the CLI at a file-backed execution store."""
    monkeypatch.setenv("IMPORTER_DATABASE_URL", f"sqlite:///{tmp_path / 'store.db'}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def import_config(tmp_path, write_csv):
    def _write(rows: str, entity: str = "account") -> str:
        config = {
            "connection": {"type": "FILE_CSV", "file_path": write_csv(rows)},
            "mapping": {
                "target_entity": entity,
                "field_mappings": [{"source_field": "name", "target_field": "accountName", "required": True}],
            },
        }
        path = tmp_path / "import.json"
        path.write_text(json.dumps(config))
        return str(path)
    return _write


class TestCLI:
    """Test CLI commands end to end."""

    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_validate_mapping(self, tmp_path, capsys):
        path = tmp_path / "mapping.json"
        path.write_text(json.dumps({"target_entity": "invoice", "field_mappings": []}))

        assert main(["validate", "--mapping", str(path)]) == 1
        out = capsys.readouterr().out
        assert "At least one field mapping is required" in out
        assert "Unknown target entity: invoice" in out

    def test_test_connection(self, tmp_path, write_csv, capsys):
        path = tmp_path / "conn.json"
        path.write_text(json.dumps({"type": "FILE_CSV", "file_path": write_csv("id\n1\n2\n")}))

        assert main(["test-connection", "--connection", str(path)]) == 0
        assert "OK" in capsys.readouterr().out

    def test_bad_connection_config(self, tmp_path, capsys):
        path = tmp_path / "conn.json"
        path.write_text(json.dumps({"type": "FTP"}))

        assert main(["schema", "--connection", str(path)]) == 1
        assert "Error: Unsupported source type: FTP" in capsys.readouterr().err

    def test_run_and_logs(self, cli_store, import_config, capsys):
        config = import_config("id,name\n1,Acme\n2,Globex\n")

        assert main(["run", "--config", config]) == 0
        out = capsys.readouterr().out
        assert "IMPORT COMPLETE" in out
        assert "Succeeded: 2" in out

        execution_id = next(
            line.split(": ", 1)[1] for line in out.splitlines() if line.startswith("Execution: ")
        )
        assert main(["logs", execution_id]) == 0
        assert "Starting import execution" in capsys.readouterr().out

    def test_dry_run_with_failures(self, cli_store, import_config, capsys):
        config = import_config("id,name\n1,Acme\n2,\n")

        assert main(["run", "--config", config, "--dry-run"]) == 1
        out = capsys.readouterr().out
        assert "DRY RUN COMPLETE" in out
        assert "Failed: 1" in out

"""Unit tests for the league_etl.import_disciplinary_csv click entrypoint."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from league_etl.executor import new_result
from league_etl.import_disciplinary_csv import main

DSN = "postgresql://league@localhost/league"


def _result(**overrides):
    result = new_result(False)
    result.update(success=True, records_processed=2, records_imported=1, records_skipped=1)
    result["skipped_details"] = [{
        "player": "John Smith", "team": "Knights", "date": "",
        "card_type": "N/A", "reason": "Invalid card type (N/A)",
    }]
    result.update(overrides)
    return result


class TestImportAction:
    def test_success_writes_report_and_rejects(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch("league_etl.import_disciplinary_csv.run_import", return_value=_result()) as run:
                result = runner.invoke(main, [
                    "--db-dsn", DSN,
                    "--csv-path", "cards.csv",
                    "--rejects-path", "rejects.csv",
                    "--run-id", "cli-test",
                ])
            assert result.exit_code == 0, result.output
            assert run.call_args.kwargs["dry_run"] is False
            assert "Committed." in result.output

            report = json.loads(Path("artifacts/reports/cli-test.json").read_text())
            assert report["action"] == "import"
            assert report["result"]["records_imported"] == 1
            assert len(report["mappings_hash"]) == 64

            with open("rejects.csv", newline="") as fh:
                rows = list(csv.DictReader(fh))
            assert rows[0]["player"] == "John Smith"
            assert rows[0]["_reject_reason"] == "Invalid card type (N/A)"

    def test_dry_run_flag_passed(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(
                "league_etl.import_disciplinary_csv.run_import",
                return_value=_result(dry_run=True),
            ) as run:
                result = runner.invoke(main, [
                    "--db-dsn", DSN, "--csv-path", "cards.csv", "--dry-run",
                    "--rejects-path", "rejects.csv",
                ])
            assert result.exit_code == 0, result.output
            assert run.call_args.kwargs["dry_run"] is True
            assert "[dry-run] All changes rolled back." in result.output

    def test_failure_exits_non_zero(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            failed = _result(success=False, errors=["duplicate key value"], skipped_details=[])
            with patch("league_etl.import_disciplinary_csv.run_import", return_value=failed):
                result = runner.invoke(main, [
                    "--db-dsn", DSN, "--csv-path", "cards.csv", "--rejects-path", "rejects.csv",
                ])
            assert result.exit_code == 1
            assert not Path("rejects.csv").exists()

    def test_missing_dsn_is_fatal(self, monkeypatch):
        for var in ("DATABASE_URL", "POSTGRES_URL", "POSTGRESQL_URL"):
            monkeypatch.delenv(var, raising=False)
        runner = CliRunner()
        with patch("league_etl.import_disciplinary_csv.run_import") as run:
            result = runner.invoke(main, ["--csv-path", "cards.csv"])
        assert result.exit_code == 1
        run.assert_not_called()

    def test_invalid_mappings_is_fatal(self, tmp_path: Path):
        bad = tmp_path / "m.yml"
        bad.write_text("version: v1\nteams: []\n", encoding="utf-8")
        runner = CliRunner()
        with patch("league_etl.import_disciplinary_csv.run_import") as run:
            result = runner.invoke(main, [
                "--db-dsn", DSN, "--csv-path", "cards.csv", "--mappings-path", str(bad),
            ])
        assert result.exit_code == 1
        run.assert_not_called()

    def test_mappings_directory_is_fatal(self, tmp_path: Path):
        runner = CliRunner()
        with patch("league_etl.import_disciplinary_csv.run_import") as run:
            result = runner.invoke(main, [
                "--db-dsn", DSN, "--csv-path", "cards.csv", "--mappings-path", str(tmp_path),
            ])
        assert result.exit_code == 1
        assert not isinstance(result.exception, OSError)
        assert "FATAL:" in result.output
        run.assert_not_called()


class TestPreviewAction:
    def test_writes_output_file(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(
                "league_etl.import_disciplinary_csv.run_preview",
                return_value="BEGIN;\nCOMMIT;\n",
            ) as preview:
                result = runner.invoke(main, [
                    "--action", "preview_sql", "--db-dsn", DSN,
                    "--csv-path", "cards.csv", "--output", "out/preview.sql",
                ])
            assert result.exit_code == 0, result.output
            assert Path("out/preview.sql").read_text() == "BEGIN;\nCOMMIT;\n"
            preview.assert_called_once()
            assert not Path("artifacts/reports").exists()

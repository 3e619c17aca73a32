"""Unit tests for league_etl.request_handler."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import psycopg
import pytest

from league_etl.executor import new_result
from league_etl.request_handler import handle_request, parse_request_body
from league_etl.shared import ImportInputError

DSN = "postgresql://league@localhost/league"
CSV = Path("cards.csv")


def _call(body, method="POST", importer=None, previewer=None, **kwargs):
    importer = importer or MagicMock(return_value={**new_result(True), "success": True})
    previewer = previewer or MagicMock(return_value="BEGIN;\nCOMMIT;\n")
    resp = handle_request(
        method, body, CSV, db_dsn=DSN,
        importer=importer, previewer=previewer, **kwargs,
    )
    return resp, importer, previewer


# ---------------------------------------------------------------------------
# Body parsing
# ---------------------------------------------------------------------------

class TestParseRequestBody:
    def test_defaults(self):
        assert parse_request_body("{}") == ("import", True)

    def test_empty_body_uses_defaults(self):
        assert parse_request_body(b"") == ("import", True)

    def test_explicit(self):
        assert parse_request_body(b'{"action": "import", "dry_run": false}') == ("import", False)
        assert parse_request_body('{"action": "preview_sql"}') == ("preview_sql", True)

    @pytest.mark.parametrize("body,match", [
        ("{not json", "Invalid JSON"),
        ("[1, 2]", "must be an object"),
        ('{"action": "drop_tables"}', "Unknown action"),
        ('{"dry_run": "no"}', "boolean"),
        (b"\xff\xfe", "Invalid JSON"),
    ])
    def test_malformed(self, body, match):
        with pytest.raises(ValueError, match=match):
            parse_request_body(body)


# ---------------------------------------------------------------------------
# handle_request
# ---------------------------------------------------------------------------

class TestHandleRequest:
    def test_method_not_allowed(self):
        resp, importer, _ = _call("{}", method="GET")
        assert resp.status == 405
        assert json.loads(resp.body) == {"success": False, "errors": ["Method not allowed"]}
        importer.assert_not_called()

    def test_malformed_body_is_client_error(self):
        resp, importer, previewer = _call("{oops")
        assert resp.status == 400
        assert resp.content_type == "application/json"
        payload = json.loads(resp.body)
        assert payload["success"] is False
        assert payload["errors"][0].startswith("Invalid JSON input")
        importer.assert_not_called()
        previewer.assert_not_called()

    def test_import_defaults_to_dry_run(self):
        resp, importer, _ = _call("{}")
        assert resp.status == 200
        assert importer.call_args.kwargs["dry_run"] is True
        assert json.loads(resp.body)["success"] is True

    def test_import_commit(self):
        resp, importer, _ = _call('{"action": "import", "dry_run": false}')
        assert resp.status == 200
        args = importer.call_args
        assert args.args[0] == DSN
        assert args.args[1] == CSV
        assert args.kwargs["dry_run"] is False

    def test_import_failure_result_still_200(self):
        importer = MagicMock(return_value={**new_result(False), "errors": ["boom"]})
        resp, _, _ = _call('{"dry_run": false}', importer=importer)
        assert resp.status == 200
        assert json.loads(resp.body)["errors"] == ["boom"]

    def test_preview_returns_text(self):
        resp, importer, previewer = _call('{"action": "preview_sql"}')
        assert resp.status == 200
        assert resp.content_type.startswith("text/plain")
        assert resp.body == "BEGIN;\nCOMMIT;\n"
        importer.assert_not_called()
        previewer.assert_called_once()

    def test_preview_structural_error_is_400(self):
        previewer = MagicMock(side_effect=ImportInputError("CSV file not found: cards.csv"))
        resp, _, _ = _call('{"action": "preview_sql"}', previewer=previewer)
        assert resp.status == 400
        assert json.loads(resp.body)["errors"] == ["CSV file not found: cards.csv"]

    def test_preview_db_error_is_500(self):
        previewer = MagicMock(side_effect=psycopg.OperationalError("gone"))
        resp, _, _ = _call('{"action": "preview_sql"}', previewer=previewer)
        assert resp.status == 500
        assert "Database error" in json.loads(resp.body)["errors"][0]

    def test_unexpected_error_is_500(self):
        importer = MagicMock(side_effect=RuntimeError("kaboom"))
        resp, _, _ = _call("{}", importer=importer)
        assert resp.status == 500
        assert json.loads(resp.body)["errors"] == ["Server error: kaboom"]

    def test_missing_dsn(self, monkeypatch):
        for var in ("DATABASE_URL", "POSTGRES_URL", "POSTGRESQL_URL"):
            monkeypatch.delenv(var, raising=False)
        importer = MagicMock()
        resp = handle_request("POST", "{}", CSV, importer=importer)
        assert resp.status == 500
        assert "DATABASE_URL" in json.loads(resp.body)["errors"][0]
        importer.assert_not_called()

    def test_dsn_from_environment(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_URL", "postgresql://env/db")
        importer = MagicMock(return_value=new_result(True))
        handle_request("POST", "{}", CSV, importer=importer)
        assert importer.call_args.args[0] == "postgresql://env/db"

    def test_bad_mappings_path(self, tmp_path: Path):
        resp, importer, _ = _call("{}", mappings_path=tmp_path / "missing.yml")
        assert resp.status == 500
        importer.assert_not_called()

    def test_mappings_path_is_directory(self, tmp_path: Path):
        resp, importer, _ = _call(b"{}", mappings_path=tmp_path)
        assert resp.status == 500
        assert resp.content_type == "application/json"
        assert json.loads(resp.body)["errors"][0].startswith("Server error:")
        importer.assert_not_called()

    def test_mappings_file_not_utf8(self, tmp_path: Path):
        p = tmp_path / "latin1.yml"
        p.write_bytes("version: v1\nteams: []\nreasons: [{variant: Café}]\n".encode("latin-1"))
        resp, importer, _ = _call("{}", mappings_path=p)
        assert resp.status == 500
        assert "not UTF-8" in json.loads(resp.body)["errors"][0]
        importer.assert_not_called()

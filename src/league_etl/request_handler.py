"""league_etl.request_handler

JSON request contract for the admin import endpoint.

A POST body selects the action and, for import, the dry-run flag:

    {"action": "import", "dry_run": false}
    {"action": "preview_sql"}

handle_request() is framework-agnostic: it returns a Response carrying the
status code, content type and body for whatever HTTP layer mounts it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import psycopg

from league_etl.executor import run_import, run_preview
from league_etl.mappings import MappingValidationError, NameMappings, load_name_mappings
from league_etl.shared import ConfigurationError, ImportInputError, resolve_db_dsn

log = logging.getLogger(__name__)

VALID_ACTIONS = ("import", "preview_sql")

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class Response:
    status: int
    content_type: str
    body: str


def _json_response(status: int, payload: dict[str, Any]) -> Response:
    return Response(status, JSON_CONTENT_TYPE, json.dumps(payload))


def _error_response(status: int, *errors: str) -> Response:
    return _json_response(status, {"success": False, "errors": list(errors)})


def parse_request_body(body: bytes | str) -> tuple[str, bool]:
    """Return (action, dry_run) from a request body.

    Raises:
        ValueError: the body is not a JSON object, the action is unknown, or
            dry_run is not a boolean.
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"Invalid JSON input: {exc}") from exc
    try:
        payload = json.loads(body) if body.strip() else {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON input: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Invalid JSON input: request body must be an object")

    action = payload.get("action", "import")
    if action not in VALID_ACTIONS:
        raise ValueError(f"Unknown action {action!r}; expected one of {list(VALID_ACTIONS)}")

    dry_run = payload.get("dry_run", True)
    if not isinstance(dry_run, bool):
        raise ValueError("'dry_run' must be a boolean")
    return action, dry_run


def handle_request(
    method: str,
    body: bytes | str,
    csv_path: Path,
    db_dsn: str | None = None,
    mappings_path: Path | None = None,
    strict_card_types: bool = False,
    importer: Callable[..., dict[str, Any]] = run_import,
    previewer: Callable[..., str] = run_preview,
) -> Response:
    if method.upper() != "POST":
        return _error_response(405, "Method not allowed")

    try:
        action, dry_run = parse_request_body(body)
    except ValueError as exc:
        return _error_response(400, str(exc))

    try:
        dsn = resolve_db_dsn(db_dsn)
        mappings: NameMappings = load_name_mappings(mappings_path)
    except (ConfigurationError, MappingValidationError, OSError) as exc:
        return _error_response(500, f"Server error: {exc}")

    log.info("Handling %s request (dry_run=%s)", action, dry_run)
    try:
        if action == "preview_sql":
            try:
                sql_text = previewer(
                    dsn, csv_path, mappings, strict_card_types=strict_card_types,
                )
            except ImportInputError as exc:
                return _error_response(400, str(exc))
            except psycopg.Error as exc:
                return _error_response(500, f"Database error: {exc}")
            return Response(200, TEXT_CONTENT_TYPE, sql_text)

        result = importer(
            dsn, csv_path, mappings, dry_run=dry_run, strict_card_types=strict_card_types,
        )
        return _json_response(200, result)
    except Exception as exc:
        log.exception("Unhandled error during %s", action)
        return _error_response(500, f"Server error: {exc}")

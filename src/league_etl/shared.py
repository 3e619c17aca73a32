"""league_etl.shared

Shared utilities used by both the import and preview_sql actions.
Includes the roster snapshot types and loader, CSV reading, RejectWriter,
database DSN discovery, and report-writing support.
"""

from __future__ import annotations

import csv
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg

from league_etl.normalize import EXPECTED_COLUMNS


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ImportInputError(Exception):
    """Raised when the source CSV is missing, unreadable, or has no header."""


class ConfigurationError(Exception):
    """Raised when required runtime configuration (e.g. the DSN) is absent."""


# ---------------------------------------------------------------------------
# Roster snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Player:
    id: str
    name: str
    team_id: str
    team_name: str
    active: bool = True


@dataclass(frozen=True)
class Team:
    id: str
    name: str


def load_players(conn: psycopg.Connection) -> list[Player]:
    """Read every team member with its team name, ordered by id."""
    rows = conn.execute(
        """
        SELECT tm.id, tm.name, tm.team_id, t.name AS team_name, tm.active
        FROM team_members tm
        JOIN teams t ON tm.team_id = t.id
        ORDER BY tm.id ASC
        """
    ).fetchall()
    return [
        Player(id=str(r[0]), name=r[1], team_id=str(r[2]), team_name=r[3], active=bool(r[4]))
        for r in rows
    ]


def load_teams(conn: psycopg.Connection) -> list[Team]:
    rows = conn.execute("SELECT id, name FROM teams ORDER BY id ASC").fetchall()
    return [Team(id=str(r[0]), name=r[1]) for r in rows]


def load_snapshot(conn: psycopg.Connection) -> tuple[list[Player], list[Team]]:
    """Return the read-once (players, teams) snapshot for a run."""
    return load_players(conn), load_teams(conn)


# ---------------------------------------------------------------------------
# CSV reading
# ---------------------------------------------------------------------------

def normalize_headers(raw: dict[str, str]) -> dict[str, str]:
    """Return a new dict with header keys whitespace-stripped."""
    return {k.strip(): v for k, v in raw.items() if k is not None}


def read_csv_rows(csv_path: Path) -> tuple[list[dict[str, str]], list[str]]:
    """Read the whole card CSV into memory.

    Returns (rows, missing_columns).  Missing expected columns are not
    fatal; their values read as ''.

    Raises:
        ImportInputError: file absent, unreadable, not decodable, or empty.
    """
    if not csv_path.is_file():
        raise ImportInputError(f"CSV file not found: {csv_path}")
    try:
        with csv_path.open(encoding="utf-8-sig", newline="") as fh:
            reader = csv.DictReader(fh)
            fieldnames = reader.fieldnames
            if not fieldnames:
                raise ImportInputError(f"CSV file has no header row: {csv_path}")
            rows = [normalize_headers(r) for r in reader]
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise ImportInputError(f"Could not read CSV file {csv_path}: {exc}") from exc

    present = {h.strip() for h in fieldnames}
    missing = [c for c in EXPECTED_COLUMNS if c not in present]
    return rows, missing


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for skipped rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DSN_ENV_VARS = ("DATABASE_URL", "POSTGRES_URL", "POSTGRESQL_URL")


def resolve_db_dsn(explicit: str | None = None) -> str:
    """Return the explicit DSN, else the first DSN env var that is set."""
    if explicit:
        return explicit
    for var in DSN_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    raise ConfigurationError(
        f"PostgreSQL database required. None of {', '.join(DSN_ENV_VARS)} is set."
    )


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    action: str,
    dry_run: bool,
    source_paths: dict[str, str],
    result: dict[str, Any],
) -> Path:
    report = {
        "run_id": run_id,
        "action": action,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "result": result,
    }
    report_path = Path(f"./artifacts/reports/{run_id}.json")
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path

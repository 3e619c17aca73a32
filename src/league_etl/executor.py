"""league_etl.executor

Apply or render a ChangePlan.

  render_preview_sql  — SQL text for manual review; touches nothing
  commit_plan         — full-replace of player_disciplinary_records in one
                        transaction; any failure rolls everything back
  run_import          — CSV → snapshot → plan → commit, returning the JSON
                        result object
  run_preview         — CSV → snapshot → plan → SQL text
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable

import psycopg

from league_etl.mappings import NameMappings
from league_etl.planner import ChangePlan, PendingPlayer, PlannedRecord, plan_import
from league_etl.shared import ImportInputError, load_snapshot, read_csv_rows

log = logging.getLogger(__name__)

Connect = Callable[[str], psycopg.Connection]


def _default_connect(dsn: str) -> psycopg.Connection:
    return psycopg.connect(dsn, autocommit=False)


def epoch_to_date(epoch: int | None) -> date | None:
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, tz=timezone.utc).date()


# ---------------------------------------------------------------------------
# Preview rendering
# ---------------------------------------------------------------------------

def sql_literal(value: Any) -> str:
    """Render a Python value as a PostgreSQL literal for preview text."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, date):
        return f"DATE '{value.isoformat()}'"
    text = str(value).replace("'", "''")
    return f"'{text}'"


def _comment(text: str) -> str:
    return "-- " + " ".join(text.split())


def _pending_member_subquery(player: PendingPlayer) -> str:
    return (
        "(SELECT id FROM team_members"
        f" WHERE name = {sql_literal(player.name)}"
        f" AND team_id = {sql_literal(player.team_id)}"
        " ORDER BY created_at DESC, id DESC LIMIT 1)"
    )


def _record_insert_sql(record: PlannedRecord, member_expr: str) -> str:
    values = ", ".join([
        member_expr,
        sql_literal(record.card_type),
        sql_literal(record.reason),
        sql_literal(record.incident_date_epoch),
        sql_literal(epoch_to_date(record.incident_date_epoch)),
        sql_literal(json.dumps(record.notes)),
        "NOW()",
    ])
    return (
        "INSERT INTO player_disciplinary_records"
        " (member_id, card_type, reason, incident_date_epoch, incident_date, notes, created_at)"
        f" VALUES ({values});"
    )


def render_preview_sql(plan: ChangePlan) -> str:
    """Render the plan as an ordered SQL script plus a summary comment block."""
    pending = plan.pending_by_key()
    stats = plan.stats
    lines: list[str] = [
        "-- Disciplinary record import preview",
        "-- Review before running the import action; nothing below has been executed.",
        "BEGIN;",
        "",
        "-- Full replace: clear existing disciplinary records",
        "DELETE FROM player_disciplinary_records;",
        "",
        f"-- New players ({len(plan.pending_players)})",
    ]
    for p in plan.pending_players:
        values = ", ".join([
            sql_literal(p.name), sql_literal(p.team_id), sql_literal(p.active), "NOW()",
        ])
        lines.append(
            f"INSERT INTO team_members (name, team_id, active, created_at) VALUES ({values});"
        )

    lines += ["", f"-- Disciplinary records ({len(plan.records)})"]
    for rec in plan.records:
        if rec.member_id is not None:
            member_expr = sql_literal(rec.member_id)
        else:
            member_expr = _pending_member_subquery(pending[rec.pending_key])
        lines.append(_record_insert_sql(rec, member_expr))

    lines += [
        "",
        "COMMIT;",
        "",
        "-- Summary",
        f"-- Rows processed: {stats.records_processed}",
        f"-- Records to import: {stats.records_imported}",
        f"-- Rows skipped: {stats.records_skipped}",
        f"-- New players: {stats.players_added}",
    ]
    for s in plan.skipped:
        lines.append(_comment(
            f"Skipped row {s.row_number}: {s.player or '?'} ({s.team or '?'}) - {s.reason}"
        ))
    for w in plan.warnings:
        lines.append(_comment(f"Warning: {w}"))
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------

@dataclass
class CommitResult:
    records_deleted: int = 0
    players_added: int = 0
    records_imported: int = 0
    rolled_back: bool = False


def commit_plan(
    conn: psycopg.Connection,
    plan: ChangePlan,
    dry_run: bool = False,
) -> CommitResult:
    """Execute the plan as a single all-or-nothing transaction.

    The connection must be in non-autocommit mode with no open transaction.
    On any exception the transaction is rolled back and the exception
    re-raised.  With dry_run=True every statement runs and is then rolled
    back.
    """
    result = CommitResult()
    try:
        cur = conn.execute("DELETE FROM player_disciplinary_records")
        result.records_deleted = cur.rowcount

        new_ids: dict[tuple[str, str], str] = {}
        for p in plan.pending_players:
            row = conn.execute(
                """
                INSERT INTO team_members (name, team_id, active, created_at)
                VALUES (%s, %s, %s, now())
                RETURNING id
                """,
                (p.name, p.team_id, p.active),
            ).fetchone()
            new_ids[p.key] = str(row[0])
            result.players_added += 1

        for rec in plan.records:
            member_id = rec.member_id if rec.member_id is not None else new_ids[rec.pending_key]
            conn.execute(
                """
                INSERT INTO player_disciplinary_records
                  (member_id, card_type, reason, incident_date_epoch,
                   incident_date, notes, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, now())
                """,
                (
                    member_id,
                    rec.card_type,
                    rec.reason,
                    rec.incident_date_epoch,
                    epoch_to_date(rec.incident_date_epoch),
                    json.dumps(rec.notes),
                ),
            )
            result.records_imported += 1

        if dry_run:
            conn.rollback()
            result.rolled_back = True
        else:
            conn.commit()
    except Exception:
        conn.rollback()
        log.error("Commit failed; all changes rolled back")
        raise

    if dry_run:
        log.info("[dry-run] All changes rolled back.")
    else:
        log.info(
            "Committed %d records and %d new players (%d prior records replaced)",
            result.records_imported, result.players_added, result.records_deleted,
        )
    return result


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def new_result(dry_run: bool) -> dict[str, Any]:
    return {
        "success": False,
        "records_processed": 0,
        "records_imported": 0,
        "records_skipped": 0,
        "players_added": 0,
        "errors": [],
        "warnings": [],
        "dry_run": dry_run,
        "skipped_details": [],
        "team_stats": {},
    }


def _plan_from_db(
    conn: psycopg.Connection,
    rows: list[dict[str, str]],
    mappings: NameMappings | None,
    strict_card_types: bool,
) -> ChangePlan:
    players, teams = load_snapshot(conn)
    # close the read-only snapshot transaction before any writes
    conn.rollback()
    log.info("Snapshot loaded: %d players, %d teams", len(players), len(teams))
    return plan_import(rows, players, teams, mappings, strict_card_types=strict_card_types)


def run_import(
    db_dsn: str,
    csv_path: Path,
    mappings: NameMappings | None = None,
    dry_run: bool = True,
    strict_card_types: bool = False,
    connect: Connect = _default_connect,
) -> dict[str, Any]:
    """Run the import action and return the JSON-serializable result."""
    result = new_result(dry_run)

    try:
        rows, missing = read_csv_rows(csv_path)
    except ImportInputError as exc:
        result["errors"].append(str(exc))
        return result
    if missing:
        result["warnings"].append(f"Missing expected CSV columns: {missing}")
    log.info("Read %d rows from %s", len(rows), csv_path)

    try:
        conn = connect(db_dsn)
    except psycopg.Error as exc:
        result["errors"].append(f"Database connection failed: {exc}")
        return result

    try:
        plan = _plan_from_db(conn, rows, mappings, strict_card_types)
        result.update(plan.stats.to_dict())
        result["skipped_details"] = [s.to_dict() for s in plan.skipped]
        result["warnings"].extend(plan.warnings)

        committed = commit_plan(conn, plan, dry_run=dry_run)
    except psycopg.Error as exc:
        result["errors"].append(str(exc))
        result["records_imported"] = 0
        result["players_added"] = 0
        return result
    finally:
        conn.close()

    if dry_run:
        result["warnings"].append("Dry run: all changes rolled back")
    else:
        result["warnings"].append(
            f"Cleared {committed.records_deleted} existing disciplinary records"
        )
    result["success"] = True
    return result


def run_preview(
    db_dsn: str,
    csv_path: Path,
    mappings: NameMappings | None = None,
    strict_card_types: bool = False,
    connect: Connect = _default_connect,
) -> str:
    """Run the preview_sql action.

    Raises:
        ImportInputError: the CSV cannot be read.
        psycopg.Error: the snapshot cannot be loaded.
    """
    rows, missing = read_csv_rows(csv_path)
    conn = connect(db_dsn)
    try:
        plan = _plan_from_db(conn, rows, mappings, strict_card_types)
    finally:
        conn.close()
    if missing:
        plan.warnings.insert(0, f"Missing expected CSV columns: {missing}")
    return render_preview_sql(plan)

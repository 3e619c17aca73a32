"""league_etl.import_disciplinary_csv

CLI entrypoint for the disciplinary card history import.

Actions (--action):
  import       — full-replace player_disciplinary_records from the CSV (default)
  preview_sql  — print the SQL the import would run, without touching the DB

Usage (preview):
    python -m league_etl.import_disciplinary_csv \\
        --action preview_sql \\
        --csv-path "Cumulative Card Data - Sheet1.csv" \\
        --output artifacts/preview.sql

Usage (import):
    python -m league_etl.import_disciplinary_csv \\
        --db-dsn "$DATABASE_URL" \\
        --csv-path "Cumulative Card Data - Sheet1.csv" \\
        --rejects-path artifacts/rejects/card_import_rejects.csv

--db-dsn falls back to DATABASE_URL, POSTGRES_URL, then POSTGRESQL_URL.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg

from league_etl.executor import run_import, run_preview
from league_etl.mappings import MappingValidationError, load_name_mappings
from league_etl.shared import (
    ConfigurationError,
    ImportInputError,
    RejectWriter,
    resolve_db_dsn,
    write_run_report,
)


@click.command()
@click.option(
    "--action",
    type=click.Choice(["import", "preview_sql"]),
    default="import",
    show_default=True,
)
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (default: DATABASE_URL env)")
@click.option("--csv-path", required=True, type=click.Path(), help="Card history CSV")
@click.option("--mappings-path", default=None, type=click.Path(), help="Team/reason variant YAML")
@click.option("--dry-run", is_flag=True, default=False, help="[import] Run everything, then roll back")
@click.option(
    "--strict-card-types",
    is_flag=True,
    default=False,
    help="Skip rows with unrecognized card types instead of importing them as yellow",
)
@click.option("--output", default=None, type=click.Path(), help="[preview_sql] Write SQL here instead of stdout")
@click.option(
    "--rejects-path",
    default="artifacts/rejects/card_import_rejects.csv",
    show_default=True,
    type=click.Path(),
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False)
def main(
    action: str,
    db_dsn: str | None,
    csv_path: str,
    mappings_path: str | None,
    dry_run: bool,
    strict_card_types: bool,
    output: str | None,
    rejects_path: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Import league disciplinary card history from CSV."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    click.echo(f"[{run_id}] Starting {action} run (dry_run={dry_run})", err=action == "preview_sql")

    try:
        dsn = resolve_db_dsn(db_dsn)
        mappings = load_name_mappings(Path(mappings_path) if mappings_path else None)
    except (ConfigurationError, MappingValidationError, OSError) as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    if action == "preview_sql":
        try:
            sql_text = run_preview(
                dsn, Path(csv_path), mappings, strict_card_types=strict_card_types,
            )
        except (ImportInputError, psycopg.Error) as exc:
            click.echo(f"[{run_id}] FATAL: {exc}", err=True)
            sys.exit(1)
        if output:
            out_path = Path(output)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(sql_text, encoding="utf-8")
            click.echo(f"[{run_id}] Preview SQL written to {out_path}", err=True)
        else:
            click.echo(sql_text, nl=False)
        return

    result = run_import(
        dsn, Path(csv_path), mappings,
        dry_run=dry_run, strict_card_types=strict_card_types,
    )

    rejects = RejectWriter(Path(rejects_path))
    try:
        for detail in result["skipped_details"]:
            rejects.write(
                {k: v for k, v in detail.items() if k != "reason"},
                detail["reason"],
            )
    finally:
        rejects.close()

    click.echo(json.dumps(result, indent=2))
    report_path = write_run_report(
        run_id, started_at, action, dry_run,
        {"csv_path": str(csv_path), "mappings_version": mappings.version,
         "mappings_hash": mappings.yaml_hash},
        result,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if result["skipped_details"]:
        click.echo(f"[{run_id}] {len(result['skipped_details'])} skipped row(s) written to {rejects_path}")

    if not result["success"]:
        for err in result["errors"]:
            click.echo(f"[{run_id}] FATAL: {err}", err=True)
        sys.exit(1)
    if dry_run:
        click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
    else:
        click.echo(f"[{run_id}] Committed.")


if __name__ == "__main__":
    main()

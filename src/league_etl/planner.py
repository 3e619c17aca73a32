"""league_etl.planner

Turn the card CSV plus a roster snapshot into a ChangePlan.

Planning is side-effect free and deterministic: the same rows and snapshot
always produce the same pending players, records, skips and statistics.
Row-level problems never raise; they become skips with a reason string.

Per row, in file order:
  1. normalize every field
  2. skip rows with no usable card type, player name, or team name
  3. resolve the team id (case-insensitive); skip unknown teams
  4. match the player against the snapshot, then against players already
     queued for insert in this run
  5. queue an inactive PendingPlayer when still unmatched
  6. queue the disciplinary record with its notes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from league_etl.mappings import NameMappings, default_mappings
from league_etl.matcher import PlayerIndex
from league_etl.normalize import NormalizedIncident, is_lenient_card_type, normalize_incident
from league_etl.shared import Player, Team

log = logging.getLogger(__name__)

IMPORT_SOURCE_TAG = "csv_import"

SKIP_MISSING_PLAYER = "Missing player name"
SKIP_MISSING_TEAM = "Missing team name"


# ---------------------------------------------------------------------------
# Plan types
# ---------------------------------------------------------------------------

PendingKey = tuple[str, str]


@dataclass(frozen=True)
class PendingPlayer:
    key: PendingKey
    name: str
    team_id: str
    team_name: str
    active: bool = False


@dataclass(frozen=True)
class PlannedRecord:
    player_name: str
    team_name: str
    card_type: str
    reason: str
    incident_date_epoch: int | None
    notes: dict[str, str]
    member_id: str | None = None
    pending_key: PendingKey | None = None


@dataclass(frozen=True)
class SkippedRow:
    row_number: int
    player: str
    team: str
    date: str
    card_type: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {
            "player": self.player,
            "team": self.team,
            "date": self.date,
            "card_type": self.card_type,
            "reason": self.reason,
        }


@dataclass
class TeamStats:
    total: int = 0
    imported: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "imported": self.imported,
            "skipped": self.skipped,
            "skip_reasons": dict(self.skip_reasons),
        }


@dataclass
class PlanStats:
    records_processed: int = 0
    records_imported: int = 0
    records_skipped: int = 0
    players_added: int = 0
    team_stats: dict[str, TeamStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records_processed": self.records_processed,
            "records_imported": self.records_imported,
            "records_skipped": self.records_skipped,
            "players_added": self.players_added,
            "team_stats": {k: v.to_dict() for k, v in self.team_stats.items()},
        }


@dataclass
class ChangePlan:
    pending_players: list[PendingPlayer] = field(default_factory=list)
    records: list[PlannedRecord] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    stats: PlanStats = field(default_factory=PlanStats)
    warnings: list[str] = field(default_factory=list)

    def pending_by_key(self) -> dict[PendingKey, PendingPlayer]:
        return {p.key: p for p in self.pending_players}


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def pending_key(player_name: str, team_name: str) -> PendingKey:
    return (player_name.lower(), team_name.lower())


def _build_notes(incident: NormalizedIncident) -> dict[str, str]:
    return {
        "season": incident.season,
        "division": incident.division,
        "additional_comments": incident.additional_comments,
        "official_name": incident.official_name,
        "import_source": IMPORT_SOURCE_TAG,
    }


def _invalid_reason(incident: NormalizedIncident) -> str | None:
    if incident.card_type is None:
        return f"Invalid card type ({incident.raw_card_type})"
    if not incident.player_name:
        return SKIP_MISSING_PLAYER
    if not incident.team_name:
        return SKIP_MISSING_TEAM
    return None


def plan_import(
    rows: Iterable[dict[str, str]],
    players: Iterable[Player],
    teams: Iterable[Team],
    mappings: NameMappings | None = None,
    strict_card_types: bool = False,
) -> ChangePlan:
    """Build the full change plan for one run.  Never touches the database."""
    mappings = mappings or default_mappings()
    index = PlayerIndex(players)
    team_ids: dict[str, str] = {}
    for t in teams:
        team_ids.setdefault(t.name.lower(), t.id)

    plan = ChangePlan()
    stats = plan.stats
    queued: dict[PendingKey, PendingPlayer] = {}

    def skip(row_number: int, incident: NormalizedIncident, reason: str) -> None:
        stats.records_skipped += 1
        ts = stats.team_stats.setdefault(incident.team_name, TeamStats())
        ts.skipped += 1
        ts.skip_reasons[reason] = ts.skip_reasons.get(reason, 0) + 1
        plan.skipped.append(SkippedRow(
            row_number=row_number,
            player=incident.player_name,
            team=incident.team_name,
            date=incident.raw_game_date,
            card_type=incident.raw_card_type,
            reason=reason,
        ))

    for row_number, row in enumerate(rows, start=1):
        stats.records_processed += 1
        incident = normalize_incident(row, mappings, strict_card_types=strict_card_types)
        stats.team_stats.setdefault(incident.team_name, TeamStats()).total += 1

        reason = _invalid_reason(incident)
        if reason is not None:
            skip(row_number, incident, reason)
            continue

        team_id = team_ids.get(incident.team_name.lower())
        if team_id is None:
            skip(row_number, incident, f"Team not found: {incident.team_name}")
            continue

        if is_lenient_card_type(incident.raw_card_type):
            plan.warnings.append(
                f"Row {row_number}: unrecognized card type "
                f"{incident.raw_card_type!r} for {incident.player_name} imported as yellow"
            )

        member_id: str | None = None
        key: PendingKey | None = None
        existing = index.find(incident.player_name, incident.team_name)
        if existing is not None:
            member_id = existing.id
        else:
            key = pending_key(incident.player_name, incident.team_name)
            if key not in queued:
                queued[key] = PendingPlayer(
                    key=key,
                    name=incident.player_name,
                    team_id=team_id,
                    team_name=incident.team_name,
                )
                plan.pending_players.append(queued[key])

        plan.records.append(PlannedRecord(
            player_name=incident.player_name,
            team_name=incident.team_name,
            card_type=incident.card_type,
            reason=incident.reason,
            incident_date_epoch=incident.incident_date_epoch,
            notes=_build_notes(incident),
            member_id=member_id,
            pending_key=key,
        ))
        stats.records_imported += 1
        stats.team_stats[incident.team_name].imported += 1

    stats.players_added = len(plan.pending_players)
    log.info(
        "Planned %d records (%d skipped, %d new players) from %d rows",
        stats.records_imported, stats.records_skipped,
        stats.players_added, stats.records_processed,
    )
    return plan

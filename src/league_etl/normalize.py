"""Normalization functions for league card-history CSV ingestion.

All field normalizers accept str | None. Team and reason lookups use the
variant tables in league_etl/name_mappings.yml unless a NameMappings instance is
passed explicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from league_etl.mappings import NameMappings, default_mappings

# ---------------------------------------------------------------------------
# Source CSV columns
# ---------------------------------------------------------------------------

COL_PLAYER = "Name of Player Receiving Card"
COL_TEAM = "Team of Player Receiving Yellow Card"
COL_CARD_TYPE = "Card Type"
COL_REASON = "Reason Card Issued"
COL_GAME_DATE = "Game (Date)"
COL_SEASON = "Season"
COL_DIVISION = "Division"
COL_COMMENTS = "Additional Comments about Card Issued"
COL_OFFICIAL = "Official Issuing Card"

EXPECTED_COLUMNS = (
    COL_PLAYER,
    COL_TEAM,
    COL_CARD_TYPE,
    COL_REASON,
    COL_GAME_DATE,
    COL_SEASON,
    COL_DIVISION,
    COL_COMMENTS,
    COL_OFFICIAL,
)

_GENDERED_NAME_RE = re.compile(r"^(.+?),\s*(.+?)\s*\((?:Male|Female)\)$", re.IGNORECASE)
_TRAILING_PAREN_RE = re.compile(r"\s*\([^)]*\)$")
_GAME_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_EMPTY_REASONS = frozenset({"", "NA", "N/A"})


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_player_name
# ---------------------------------------------------------------------------

def normalize_player_name(value: str | None) -> str:
    """Return a player name in 'First Last' order.

    The card spreadsheet records registered players as
    'Last, First (Male)' / 'Last, First (Female)'; those are reordered and
    the gender annotation dropped.  Quote characters are removed and runs of
    whitespace collapse to one space.  Anything else is assumed to already
    be 'First Last'.
    """
    v = normalize_space(value) or ""
    v = v.replace('"', "").replace("'", "").strip()
    m = _GENDERED_NAME_RE.match(v)
    if m:
        last = m.group(1).strip()
        first = m.group(2).strip()
        return f"{first} {last}"
    return v


# ---------------------------------------------------------------------------
# Rule 4: normalize_team_name
# ---------------------------------------------------------------------------

def normalize_team_name(
    value: str | None,
    mappings: NameMappings | None = None,
) -> str:
    """Drop a trailing '(Division)' qualifier and map historical variants.

    e.g. 'Green Achers (B Division)' → 'GreenAchers'
    """
    v = normalize_space(value) or ""
    v = _TRAILING_PAREN_RE.sub("", v).strip()
    if not v:
        return v
    mapped = (mappings or default_mappings()).team(v)
    return mapped if mapped is not None else v


# ---------------------------------------------------------------------------
# Rule 5: normalize_reason
# ---------------------------------------------------------------------------

def normalize_reason(
    value: str | None,
    mappings: NameMappings | None = None,
) -> str:
    """Map a free-text card reason to the league's canonical reason text.

    'NA', 'N/A' and blank become ''.  Unknown text is returned with its
    whitespace collapsed.
    """
    v = normalize_space(value) or ""
    if v.upper() in _EMPTY_REASONS:
        return ""
    mapped = (mappings or default_mappings()).reason(v)
    return mapped if mapped is not None else v


# ---------------------------------------------------------------------------
# Rule 6: normalize_card_type
# ---------------------------------------------------------------------------

def normalize_card_type(value: str | None, strict: bool = False) -> str | None:
    """Return 'yellow', 'red', or None (row must be skipped).

    'N/A' is always None.  Any other unrecognized value is read as a yellow
    card unless strict=True, in which case it is None as well.
    """
    v = (value or "").strip().upper()
    if v == "YELLOW":
        return "yellow"
    if v == "RED":
        return "red"
    if v == "N/A" or strict:
        return None
    return "yellow"


def is_lenient_card_type(value: str | None) -> bool:
    """True when normalize_card_type would fall back to yellow."""
    return (value or "").strip().upper() not in {"YELLOW", "RED", "N/A"}


# ---------------------------------------------------------------------------
# Rule 7: parse_game_date
# ---------------------------------------------------------------------------

def parse_game_date(value: str | None) -> int | None:
    """Parse 'M/D/YYYY' into epoch seconds at 00:00 UTC.

    Any other format, or an impossible calendar date, returns None.
    """
    v = trim(value)
    if v is None:
        return None
    m = _GAME_DATE_RE.match(v)
    if not m:
        return None
    month, day, year = (int(g) for g in m.groups())
    try:
        dt = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None
    return int(dt.timestamp())


# ---------------------------------------------------------------------------
# Row-level normalization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedIncident:
    player_name: str
    team_name: str
    card_type: str | None
    reason: str
    incident_date_epoch: int | None
    season: str
    division: str
    additional_comments: str
    official_name: str
    raw_card_type: str
    raw_game_date: str


def normalize_incident(
    row: dict[str, str],
    mappings: NameMappings | None = None,
    strict_card_types: bool = False,
) -> NormalizedIncident:
    """Apply every field rule to one CSV row.  Missing columns read as ''."""
    def col(name: str) -> str:
        return row.get(name) or ""

    mappings = mappings or default_mappings()
    return NormalizedIncident(
        player_name=normalize_player_name(col(COL_PLAYER)),
        team_name=normalize_team_name(col(COL_TEAM), mappings),
        card_type=normalize_card_type(col(COL_CARD_TYPE), strict=strict_card_types),
        reason=normalize_reason(col(COL_REASON), mappings),
        incident_date_epoch=parse_game_date(col(COL_GAME_DATE)),
        season=col(COL_SEASON).strip(),
        division=col(COL_DIVISION).strip(),
        additional_comments=col(COL_COMMENTS).strip(),
        official_name=col(COL_OFFICIAL).strip(),
        raw_card_type=col(COL_CARD_TYPE).strip(),
        raw_game_date=col(COL_GAME_DATE).strip(),
    )

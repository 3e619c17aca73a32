"""league_etl.matcher

Resolve a normalized (player name, team name) pair from the card CSV to a
player in the roster snapshot.

Tiers, first hit wins:
  1. exact name + exact team   (case-insensitive)
  2. exact name, any team      (players move between teams across seasons)
  3. token-overlap fuzzy match restricted to the given team

Within a tier the first candidate in snapshot order is returned.  The
snapshot is loaded ORDER BY id, so ties go to the smallest id.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from league_etl.shared import Player

_MIN_TOKEN_LEN = 3


def tokens_overlap(csv_name: str, stored_name: str) -> int:
    """Count CSV name tokens that share a substring relation with a stored token.

    Only tokens of 3+ characters take part.  Each CSV token counts once.
    """
    csv_tokens = csv_name.lower().split()
    stored_tokens = stored_name.lower().split()
    count = 0
    for csv_tok in csv_tokens:
        if len(csv_tok) < _MIN_TOKEN_LEN:
            continue
        for stored_tok in stored_tokens:
            if len(stored_tok) < _MIN_TOKEN_LEN:
                continue
            if csv_tok in stored_tok or stored_tok in csv_tok:
                count += 1
                break
    return count


def is_fuzzy_match(csv_name: str, stored_name: str) -> bool:
    """Accept when at least half the CSV tokens (rounded down, minimum 1) match."""
    needed = max(1, len(csv_name.split()) // 2)
    return tokens_overlap(csv_name, stored_name) >= needed


class PlayerIndex:
    """Case-folded lookups over a roster snapshot, preserving snapshot order."""

    def __init__(self, players: Iterable[Player]) -> None:
        self._by_name_team: dict[tuple[str, str], Player] = {}
        self._by_name: dict[str, Player] = {}
        self._by_team: dict[str, list[Player]] = defaultdict(list)
        for p in players:
            name = p.name.lower()
            team = p.team_name.lower()
            self._by_name_team.setdefault((name, team), p)
            self._by_name.setdefault(name, p)
            self._by_team[team].append(p)

    def find(self, player_name: str, team_name: str) -> Player | None:
        name = player_name.lower()
        team = team_name.lower()

        hit = self._by_name_team.get((name, team))
        if hit is not None:
            return hit

        hit = self._by_name.get(name)
        if hit is not None:
            return hit

        for candidate in self._by_team.get(team, ()):
            if is_fuzzy_match(player_name, candidate.name):
                return candidate
        return None


def find_player_match(
    player_name: str,
    team_name: str,
    players: Iterable[Player],
) -> Player | None:
    """One-off lookup; build a PlayerIndex when matching many rows."""
    return PlayerIndex(players).find(player_name, team_name)

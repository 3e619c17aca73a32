"""league_etl.mappings

YAML-backed lookup tables for historical team and card-reason name variants.

Responsibilities:
  - Load and validate name_mappings.yml, shipped inside the package
  - Reject duplicate or conflicting variants at load time
  - Hash the YAML content for traceability in run reports
  - Provide exact and case-insensitive variant lookups to the normalizer

Usage:
    from league_etl.mappings import load_name_mappings

    mappings = load_name_mappings()
    mappings.team("Stingrays ReUtd")   # -> "Stingrays ReUnited"
    mappings.reason("ub-sliding")      # -> "Sliding"
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MAPPINGS_PATH = Path(__file__).parent / "name_mappings.yml"

REQUIRED_YAML_KEYS = frozenset({"version", "teams", "reasons"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MappingValidationError(ValueError):
    """Raised when the name-mapping YAML fails validation."""


# ---------------------------------------------------------------------------
# NameMappings dataclass
# ---------------------------------------------------------------------------

@dataclass
class NameMappings:
    """Parsed, validated variant → canonical lookup tables."""

    version: str
    yaml_hash: str
    teams: dict[str, str]
    reasons: dict[str, str]
    _reasons_ci: dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._reasons_ci = {k.lower(): v for k, v in self.reasons.items()}

    def team(self, name: str) -> str | None:
        """Exact lookup of a team name variant."""
        return self.teams.get(name)

    def reason(self, text: str) -> str | None:
        """Exact lookup first, then case-insensitive."""
        hit = self.reasons.get(text)
        if hit is not None:
            return hit
        return self._reasons_ci.get(text.lower())


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_name_mappings(yaml_path: Path | None = None) -> NameMappings:
    """Load, validate, and return NameMappings from a YAML file.

    Args:
        yaml_path: Path to the mapping file. Defaults to
            name_mappings.yml next to this module.

    Raises:
        MappingValidationError: If the content is malformed, or a variant is
            duplicated or mapped to two canonical values.
            Also raised for a file that is not valid UTF-8.
        OSError: If the YAML file does not exist or cannot be read.
    """
    path = yaml_path or DEFAULT_MAPPINGS_PATH
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MappingValidationError(f"Mapping file {path} is not UTF-8: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise MappingValidationError(f"Invalid YAML in {path}: {exc}") from exc
    validate_name_mappings(data)
    return NameMappings(
        version=str(data["version"]),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        teams=_pairs_to_dict(data["teams"]),
        reasons=_pairs_to_dict(data["reasons"]),
    )


def validate_name_mappings(data: Any) -> None:
    """Raise MappingValidationError if data does not match the required schema.

    Validates:
      - Root is a mapping with version, teams, reasons
      - teams / reasons are lists of {variant, canonical} with non-empty strings
      - No variant appears twice within a table
      - Reason variants that differ only by case agree on the canonical value
    """
    if not isinstance(data, dict):
        raise MappingValidationError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise MappingValidationError(f"Missing required YAML keys: {sorted(missing_keys)}")

    for table in ("teams", "reasons"):
        entries = data.get(table)
        if not isinstance(entries, list):
            raise MappingValidationError(f"'{table}' must be a list of variant/canonical pairs.")

        seen: dict[str, str] = {}
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise MappingValidationError(f"{table}[{idx}] must be a mapping.")
            variant = entry.get("variant")
            canonical = entry.get("canonical")
            for key, val in (("variant", variant), ("canonical", canonical)):
                if not isinstance(val, str) or not val.strip():
                    raise MappingValidationError(
                        f"{table}[{idx}] '{key}' must be a non-empty string."
                    )
            if variant in seen:
                if seen[variant] == canonical:
                    raise MappingValidationError(
                        f"Duplicate {table} variant {variant!r}."
                    )
                raise MappingValidationError(
                    f"Conflicting {table} variant {variant!r}: "
                    f"{seen[variant]!r} vs {canonical!r}."
                )
            seen[variant] = canonical

        if table == "reasons":
            folded: dict[str, tuple[str, str]] = {}
            for variant, canonical in seen.items():
                prior = folded.get(variant.lower())
                if prior is not None and prior[1] != canonical:
                    raise MappingValidationError(
                        f"Conflicting reasons variants {prior[0]!r} and {variant!r}: "
                        f"{prior[1]!r} vs {canonical!r}."
                    )
                folded.setdefault(variant.lower(), (variant, canonical))


def _pairs_to_dict(entries: list[dict[str, str]]) -> dict[str, str]:
    return {e["variant"]: e["canonical"] for e in entries}


# ---------------------------------------------------------------------------
# Process-wide default
# ---------------------------------------------------------------------------

_default: NameMappings | None = None


def default_mappings() -> NameMappings:
    """Return the packaged mappings, loading them on first use."""
    global _default
    if _default is None:
        _default = load_name_mappings()
    return _default

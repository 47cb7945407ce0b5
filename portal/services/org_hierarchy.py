"""
Org Hierarchy Resolver.

Area codes arrive as free text from sign-up forms and spreadsheets
("djtb cub", "DJTB-CUB", "djtb_cub "). This module normalizes them into
canonical codes and resolves a code into its (division, coordination, team)
chain against the directory.

    normalize_code("djtb cub")      → "DJTB-CUB"
    derive_org("DJTB-CUB", dir)     → OrgChain("DJTB", "DJTB-CUB", ...)

Provisioning helpers (``build_org_units`` / ``seed_org_units``) build a full
chain purely from the text of a code and back the org scripts under
``scripts/``.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple

from portal.models.org import (
    EXTERNAL_AREA_CODES,
    GUEST_TEAM_ID,
    GUEST_TEAM_NAME,
    ORG_CODE_MAX_LENGTH,
)
from portal.stores.directory import DirectoryStore

logger = logging.getLogger(__name__)

_INVALID_RE = re.compile(r"[^A-Z0-9-]")
_DASHES_RE = re.compile(r"-+")

DEFAULT_DIVISION_ID = "DJT"
DEFAULT_COORDINATION_TAG = "SEDE"

# Superseded codes still present in old profiles and spreadsheets.
LEGACY_CODE_ALIASES = {
    "DJT-PLA": "DJT-PLAN",
    "DJTV-ITP": "DJTV-ITA",
    "DJTV-VOR": "DJTV-VOT",
    "DJTB-STO": "DJTB-SAN",
}


class OrgChain(NamedTuple):
    division_id: str | None
    coord_id: str | None
    team_id: str | None


class OrgUnits(NamedTuple):
    division_id: str
    division_name: str
    coord_id: str
    coord_name: str
    team_id: str
    team_name: str


# ═════════════════════════════════════════════════════════════════════════════
# Normalization
# ═════════════════════════════════════════════════════════════════════════════

def normalize_code(raw) -> str:
    """Canonical area code: ``[A-Z0-9-]`` only, single dashes, at most 32 chars.

    Total and idempotent; ``None`` or blank input gives ``""``.
    """
    s = str(raw or "").strip().upper()
    s = _INVALID_RE.sub("-", s)
    s = _DASHES_RE.sub("-", s).strip("-")
    return s[:ORG_CODE_MAX_LENGTH].rstrip("-")


def canonicalize_code(raw) -> str:
    code = normalize_code(raw)
    return LEGACY_CODE_ALIASES.get(code, code)


def is_guest_code(raw) -> bool:
    return normalize_code(raw) in EXTERNAL_AREA_CODES


def _split_code(code: str) -> tuple[str, str]:
    """``"DJTB-CUB-STO"`` → ``("DJTB", "CUB")``: first two dash-separated parts."""
    parts = code.split("-")
    return parts[0], (parts[1] if len(parts) > 1 else "")


# ═════════════════════════════════════════════════════════════════════════════
# Derivation
# ═════════════════════════════════════════════════════════════════════════════

def derive_org(raw_code, directory: DirectoryStore | None = None) -> OrgChain | None:
    """Resolve a code to its (division, coordination, team) chain.

    1. A known team id wins: its coordination and that coordination's
       division are followed.
    2. Otherwise ``DIV-TAG…`` is read textually: division ``DIV``,
       coordination ``DIV-TAG``, and team ``TAG`` if such a team exists.
    3. A bare unknown code resolves to nothing.
    """
    directory = directory or DirectoryStore()
    code = normalize_code(raw_code)
    if not code:
        return None

    division_id = coord_id = team_id = None

    team = directory.get_team(code)
    if team is not None:
        team_id = team.id
        coord_id = team.coord_id
        if coord_id:
            coord = directory.get_coordination(coord_id)
            division_id = coord.division_id if coord else None
    elif "-" in code:
        div, tag = _split_code(code)
        division_id = div or None
        coord_id = f"{div}-{tag}" if div and tag else None
        if tag and directory.get_team(tag) is not None:
            team_id = tag
    else:
        return None

    if not division_id and coord_id:
        coord = directory.get_coordination(coord_id)
        division_id = coord.division_id if coord else None

    if not (division_id or coord_id or team_id):
        return None
    return OrgChain(division_id, coord_id, team_id)


# ═════════════════════════════════════════════════════════════════════════════
# Provisioning
# ═════════════════════════════════════════════════════════════════════════════

def ensure_team(raw_code, directory: DirectoryStore | None = None):
    """Guarantee a Team row exists for ``raw_code`` so profiles can reference it.

    External codes map to the guest team. A new team is attached to its
    textual coordination when that coordination already exists.
    """
    directory = directory or DirectoryStore()
    code = normalize_code(raw_code)
    if not code:
        return None
    if code in EXTERNAL_AREA_CODES:
        return directory.upsert_team(GUEST_TEAM_ID, GUEST_TEAM_NAME)

    team = directory.get_team(code)
    if team is not None:
        return team

    coord_id = None
    if "-" in code:
        div, tag = _split_code(code)
        candidate = f"{div}-{tag}" if div and tag else None
        if candidate and directory.get_coordination(candidate) is not None:
            coord_id = candidate
    return directory.upsert_team(code, code, coord_id)


def assign_profile_team(profile, raw_code, directory: DirectoryStore | None = None) -> OrgChain:
    """Point ``profile`` at the team for ``raw_code`` and refresh its org cache."""
    directory = directory or DirectoryStore()
    code = normalize_code(raw_code)

    if code in EXTERNAL_AREA_CODES:
        ensure_team(GUEST_TEAM_ID, directory)
        profile.sigla_area = GUEST_TEAM_ID
        profile.operational_base = GUEST_TEAM_ID
        profile.team_id = GUEST_TEAM_ID
        profile.coord_id = None
        profile.division_id = None
        return OrgChain(None, None, GUEST_TEAM_ID)

    if code:
        ensure_team(code, directory)
    chain = derive_org(code, directory) if code else None
    if chain is None:
        chain = OrgChain(None, None, code or None)

    profile.sigla_area = code or profile.sigla_area
    profile.team_id = chain.team_id
    profile.coord_id = chain.coord_id
    profile.division_id = chain.division_id
    return chain


def build_org_units(raw_code) -> OrgUnits | None:
    """Textual Division/Coordination/Team chain for a code (no lookups).

    ``"DJTB-CUB"`` → division ``DJTB``, coordination ``DJTB-CUB``, team
    ``DJTB-CUB``; ``"DJTV"`` → coordination ``DJTV-SEDE``. External codes
    have no chain.
    """
    code = normalize_code(raw_code)
    if not code or code in EXTERNAL_AREA_CODES:
        return None
    div, tag = _split_code(code)
    div = div or DEFAULT_DIVISION_ID
    tag = tag or DEFAULT_COORDINATION_TAG
    return OrgUnits(
        division_id=div,
        division_name=f"Divisão {div}",
        coord_id=f"{div}-{tag}",
        coord_name=f"{div} {tag}",
        team_id=code,
        team_name=f"Equipe {code}",
    )


def seed_org_units(codes, directory: DirectoryStore | None = None) -> dict:
    """Upsert the chain of every code. Idempotent; returns distinct counts."""
    directory = directory or DirectoryStore()
    seen = {"divisions": set(), "coordinations": set(), "teams": set()}
    for raw in codes:
        units = build_org_units(raw)
        if units is None:
            continue
        if units.division_id not in seen["divisions"]:
            directory.upsert_division(units.division_id, units.division_name)
            seen["divisions"].add(units.division_id)
        if units.coord_id not in seen["coordinations"]:
            directory.upsert_coordination(units.coord_id, units.coord_name, units.division_id)
            seen["coordinations"].add(units.coord_id)
        if units.team_id not in seen["teams"]:
            # Only name brand-new teams; keep curated names on existing ones.
            existing = directory.get_team(units.team_id)
            directory.upsert_team(
                units.team_id,
                existing.name if existing else units.team_name,
                units.coord_id,
            )
            seen["teams"].add(units.team_id)
    summary = {k: len(v) for k, v in seen.items()}
    logger.info("Org units seeded", extra=summary)
    return summary


def resync_profiles(directory: DirectoryStore | None = None, *, canonicalize: bool = False) -> dict:
    """Recompute every profile's team/coordination/division cache from its team.

    With ``canonicalize`` legacy codes (``LEGACY_CODE_ALIASES``) are rewritten
    first. Returns ``{"scanned": n, "updated": m}``.
    """
    directory = directory or DirectoryStore()
    scanned = updated = 0
    for profile in directory.list_profiles():
        scanned += 1
        raw = profile.team_id or profile.sigla_area or profile.operational_base
        if not raw:
            continue
        code = canonicalize_code(raw) if canonicalize else normalize_code(raw)
        before = (profile.sigla_area, profile.team_id, profile.coord_id, profile.division_id)
        assign_profile_team(profile, code, directory)
        if (profile.sigla_area, profile.team_id, profile.coord_id, profile.division_id) != before:
            updated += 1
    logger.info("Profiles resynced", extra={"scanned": scanned, "updated": updated})
    return {"scanned": scanned, "updated": updated}

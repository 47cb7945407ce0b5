"""Tests for area-code normalization and org chain resolution."""

import pytest

from portal.models import db
from portal.models.org import GUEST_TEAM_ID, Team
from portal.services.org_hierarchy import (
    OrgChain,
    assign_profile_team,
    build_org_units,
    canonicalize_code,
    derive_org,
    ensure_team,
    is_guest_code,
    normalize_code,
    resync_profiles,
    seed_org_units,
)
from portal.stores import DirectoryStore


# ── normalize_code ──────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("djtb cub", "DJTB-CUB"),
        ("DJTB-CUB", "DJTB-CUB"),
        (" djtb__cub ", "DJTB-CUB"),
        ("--djt--plan--", "DJT-PLAN"),
        ("djtv/itá", "DJTV-IT"),
        (None, ""),
        ("", ""),
        ("   ", ""),
    ],
)
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected


@pytest.mark.parametrize("raw", ["djtb cub", "a" * 31 + "-bcd", "x" * 40, "--é--", "A-" * 20])
def test_normalize_code_is_idempotent(raw):
    once = normalize_code(raw)
    assert normalize_code(once) == once
    assert len(once) <= 32
    assert not once.endswith("-")


def test_canonicalize_rewrites_legacy_codes():
    assert canonicalize_code("djt pla") == "DJT-PLAN"
    assert canonicalize_code("DJTB-STO") == "DJTB-SAN"
    assert canonicalize_code("DJTB-CUB") == "DJTB-CUB"


def test_guest_codes():
    assert is_guest_code("externo")
    assert is_guest_code("Convidados")
    assert not is_guest_code("DJTB-CUB")


# ── derive_org ──────────────────────────────────────────────────────────


def test_derive_known_team_follows_its_coordination(seed_org):
    seed_org()
    chain = derive_org("djtb cub", DirectoryStore())
    assert chain == OrgChain("DJTB", "DJTB-CUB", "DJTB-CUB")


def test_derive_unknown_team_reads_code_textually(seed_org):
    seed_org()
    assert derive_org("DJTB-XYZ") == OrgChain("DJTB", "DJTB-XYZ", None)


def test_derive_uses_first_two_parts_of_long_codes(seed_org):
    seed_org()
    assert derive_org("DJTB-CUB-STO") == OrgChain("DJTB", "DJTB-CUB", None)


def test_derive_picks_up_legacy_tag_team():
    directory = DirectoryStore()
    directory.upsert_team("CUB", "Cubatão")
    db.session.commit()
    assert derive_org("DJTB-CUB", directory) == OrgChain("DJTB", "DJTB-CUB", "CUB")


def test_derive_bare_unknown_code_is_none():
    assert derive_org("XYZ") is None
    assert derive_org("") is None
    assert derive_org(None) is None


def test_derive_bare_team_without_coordination():
    DirectoryStore().upsert_team("DJT", "DJT")
    db.session.commit()
    assert derive_org("djt") == OrgChain(None, None, "DJT")


# ── provisioning ────────────────────────────────────────────────────────


def test_build_org_units_defaults_coordination_tag():
    units = build_org_units("djtv")
    assert units.division_id == "DJTV"
    assert units.coord_id == "DJTV-SEDE"
    assert units.team_id == "DJTV"
    assert units.division_name == "Divisão DJTV"
    assert build_org_units("EXTERNO") is None
    assert build_org_units("") is None


def test_seed_org_units_is_idempotent(seed_org):
    first = seed_org()
    second = seed_org()
    assert first == second == {"divisions": 3, "coordinations": 5, "teams": 5}
    assert db.session.query(Team).count() == 5


def test_seed_keeps_curated_team_names(seed_org):
    seed_org()
    team = db.session.get(Team, "DJTB-CUB")
    team.name = "Cubatão"
    db.session.commit()
    seed_org()
    assert db.session.get(Team, "DJTB-CUB").name == "Cubatão"


def test_ensure_team_links_existing_coordination(seed_org):
    seed_org()
    team = ensure_team("djtb-cub-sto")
    assert team.id == "DJTB-CUB-STO"
    assert team.coord_id == "DJTB-CUB"
    assert derive_org("DJTB-CUB-STO") == OrgChain("DJTB", "DJTB-CUB", "DJTB-CUB-STO")


def test_ensure_team_maps_external_codes_to_guest_team():
    team = ensure_team("externo")
    assert team.id == GUEST_TEAM_ID
    assert team.name == "Convidados (externo)"
    assert team.coord_id is None


def test_assign_profile_team_guest_clears_ancestry(make_profile, seed_org):
    seed_org()
    profile = make_profile(sigla_area="DJTB-CUB", team_id="DJTB-CUB", coord_id="DJTB-CUB", division_id="DJTB")
    chain = assign_profile_team(profile, "Convidados")
    assert chain == OrgChain(None, None, GUEST_TEAM_ID)
    assert profile.team_id == profile.sigla_area == profile.operational_base == GUEST_TEAM_ID
    assert profile.coord_id is None and profile.division_id is None


def test_assign_profile_team_resolves_chain(make_profile, seed_org):
    seed_org()
    profile = make_profile()
    assign_profile_team(profile, "djtv vot")
    db.session.commit()
    assert (profile.sigla_area, profile.team_id, profile.coord_id, profile.division_id) == (
        "DJTV-VOT", "DJTV-VOT", "DJTV-VOT", "DJTV",
    )


def test_resync_profiles_canonicalizes_and_is_stable(make_profile, seed_org):
    seed_org()
    profile = make_profile(sigla_area="DJT-PLA")
    first = resync_profiles(DirectoryStore(), canonicalize=True)
    db.session.commit()
    assert first == {"scanned": 1, "updated": 1}
    assert (profile.team_id, profile.coord_id, profile.division_id) == ("DJT-PLAN", "DJT-PLAN", "DJT")

    second = resync_profiles(DirectoryStore(), canonicalize=True)
    assert second == {"scanned": 1, "updated": 0}

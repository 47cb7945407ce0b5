"""
Shared pytest fixtures for the DJT Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_profile / make_registration / seed_org: factories
    - auth_headers: bearer-token headers for a profile id
"""

from datetime import date

import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.auth import Profile
from portal.models.registration import PendingRegistration
from portal.services import side_effects
from portal.services.jwt_service import generate_access_token
from portal.services.org_hierarchy import seed_org_units
from portal.stores import DirectoryStore, RoleStore


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        side_effects.reset_side_effect_stats()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def seed_org():
    """Seed the standard DJT hierarchy and return the summary."""

    def _seed(codes=("DJT-PLAN", "DJTV-VOT", "DJTV-ITA", "DJTB-CUB", "DJTB-SAN")):
        summary = seed_org_units(codes, DirectoryStore())
        _db.session.commit()
        return summary

    return _seed


@pytest.fixture()
def make_profile():
    """Create a profile (optionally with roles) placed at ``sigla_area``."""
    counter = {"n": 0}

    def _make(
        name="Colaborador Teste",
        *,
        roles=(),
        sigla_area=None,
        team_id=None,
        coord_id=None,
        division_id=None,
        is_leader=False,
        studio_access=False,
        email=None,
        profile_id=None,
    ):
        counter["n"] += 1
        n = counter["n"]
        profile = Profile(
            id=profile_id or f"00000000-0000-0000-0000-{n:012d}",
            name=name,
            email=email or f"user{n}@cpfl.test",
            matricula=f"M{n:05d}",
            sigla_area=sigla_area,
            team_id=team_id,
            coord_id=coord_id,
            division_id=division_id,
            is_leader=is_leader,
            studio_access=studio_access,
        )
        _db.session.add(profile)
        _db.session.flush()
        store = RoleStore()
        for role in roles:
            store.grant_role(profile.id, role)
        _db.session.commit()
        return profile

    return _make


@pytest.fixture()
def make_registration():
    counter = {"n": 0}

    def _make(sigla_area="DJTB-CUB", *, email=None, date_of_birth=date(1990, 5, 17), **fields):
        counter["n"] += 1
        n = counter["n"]
        reg = PendingRegistration(
            name=fields.pop("name", f"Novo Colaborador {n}"),
            email=email or f"novo{n}@cpfl.test",
            matricula=fields.pop("matricula", f"N{n:05d}"),
            sigla_area=sigla_area,
            operational_base=fields.pop("operational_base", "Base Cubatão"),
            date_of_birth=date_of_birth,
            **fields,
        )
        _db.session.add(reg)
        _db.session.commit()
        return reg

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(profile_id):
        token = generate_access_token(profile_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers

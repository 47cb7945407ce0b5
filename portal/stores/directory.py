"""Directory store — read/upsert access to the Division → Coordination → Team tree."""

import logging

from sqlalchemy import select

from portal.models import db
from portal.models.auth import Profile
from portal.models.org import Coordination, Division, Team

logger = logging.getLogger(__name__)


class DirectoryStore:
    """Org hierarchy lookups. Upserts flush but never commit."""

    # ── Reads ────────────────────────────────────────────────────────────

    def get_team(self, team_id: str) -> Team | None:
        if not team_id:
            return None
        return db.session.get(Team, team_id)

    def get_coordination(self, coord_id: str) -> Coordination | None:
        if not coord_id:
            return None
        return db.session.get(Coordination, coord_id)

    def get_division(self, division_id: str) -> Division | None:
        if not division_id:
            return None
        return db.session.get(Division, division_id)

    def list_profiles(self) -> list[Profile]:
        return list(db.session.execute(select(Profile).order_by(Profile.id)).scalars())

    # ── Upserts ──────────────────────────────────────────────────────────

    def upsert_division(self, division_id: str, name: str) -> Division:
        row = self.get_division(division_id)
        if row is None:
            row = Division(id=division_id, name=name)
            db.session.add(row)
            logger.info("Division created", extra={"division_id": division_id})
        elif name and row.name != name:
            row.name = name
        db.session.flush()
        return row

    def upsert_coordination(self, coord_id: str, name: str, division_id: str) -> Coordination:
        row = self.get_coordination(coord_id)
        if row is None:
            row = Coordination(id=coord_id, name=name, division_id=division_id)
            db.session.add(row)
            logger.info("Coordination created", extra={"coord_id": coord_id, "division_id": division_id})
        else:
            if name and row.name != name:
                row.name = name
            if division_id and row.division_id != division_id:
                row.division_id = division_id
        db.session.flush()
        return row

    def upsert_team(self, team_id: str, name: str, coord_id: str | None = None) -> Team:
        """Create the team if missing; an existing ``coord_id`` is only overwritten by a non-empty one."""
        row = self.get_team(team_id)
        if row is None:
            row = Team(id=team_id, name=name or team_id, coord_id=coord_id or None)
            db.session.add(row)
            logger.info("Team created", extra={"team_id": team_id, "coord_id": coord_id})
        else:
            if name and row.name != name:
                row.name = name
            if coord_id and row.coord_id != coord_id:
                row.coord_id = coord_id
        db.session.flush()
        return row

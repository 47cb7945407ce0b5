"""
Organization hierarchy models — Division → Coordination → Team.

Ids are the normalized area codes themselves (``DJTB``, ``DJTB-CUB``,
``DJTB-CUB-STO``), so a profile's ``sigla_area`` can be matched directly
against them.

The guest team ``CONVIDADOS`` lives outside the hierarchy: it never has a
coordination and therefore never resolves to a division.
"""

from datetime import datetime, timezone

from portal.models import db

GUEST_TEAM_ID = "CONVIDADOS"
GUEST_TEAM_NAME = "Convidados (externo)"

# Area codes that mark an external person. Treated exactly like the guest team.
EXTERNAL_AREA_CODES = frozenset({"EXTERNO", GUEST_TEAM_ID})

ORG_CODE_MAX_LENGTH = 32


def _utcnow():
    return datetime.now(timezone.utc)


class Division(db.Model):
    __tablename__ = "divisions"

    id = db.Column(db.String(ORG_CODE_MAX_LENGTH), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    coordinations = db.relationship("Coordination", back_populates="division", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Division {self.id}>"


class Coordination(db.Model):
    __tablename__ = "coordinations"

    id = db.Column(db.String(ORG_CODE_MAX_LENGTH), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    division_id = db.Column(
        db.String(ORG_CODE_MAX_LENGTH),
        db.ForeignKey("divisions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=_utcnow)

    division = db.relationship("Division", back_populates="coordinations")
    teams = db.relationship("Team", back_populates="coordination", lazy="dynamic")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "division_id": self.division_id}

    def __repr__(self):
        return f"<Coordination {self.id} division={self.division_id}>"


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.String(ORG_CODE_MAX_LENGTH), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    # NULL only for the guest team and for bare codes provisioned before
    # their coordination is known.
    coord_id = db.Column(
        db.String(ORG_CODE_MAX_LENGTH),
        db.ForeignKey("coordinations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=_utcnow)

    coordination = db.relationship("Coordination", back_populates="teams")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "coord_id": self.coord_id}

    def __repr__(self):
        return f"<Team {self.id} coord={self.coord_id}>"

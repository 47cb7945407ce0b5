"""
Normalize the org hierarchy stored on profiles.

Usage:
    python scripts/normalize_org_hierarchy.py            # dry run
    python scripts/normalize_org_hierarchy.py --apply

What it does:
- Canonicalizes legacy area codes (DJT-PLA → DJT-PLAN, DJTV-ITP → DJTV-ITA, ...)
- Ensures the canonical division/coordination/team rows exist
- Recomputes every profile's team / coordination / division cache
- Rewrites pending registrations that still carry a legacy code

Idempotent: a second run reports zero updates.
"""

import argparse
import sys

from sqlalchemy import select

from portal import create_app
from portal.models import db
from portal.models.registration import PendingRegistration
from portal.services.org_hierarchy import (
    LEGACY_CODE_ALIASES,
    canonicalize_code,
    normalize_code,
    resync_profiles,
    seed_org_units,
)
from portal.stores import DirectoryStore

CANONICAL_CODES = (
    "DJT", "DJT-PLAN",
    "DJTV", "DJTV-VOT", "DJTV-JUN", "DJTV-PJU", "DJTV-ITA",
    "DJTB", "DJTB-CUB", "DJTB-SAN",
)


def canonicalize_registrations() -> int:
    legacy = [normalize_code(c) for c in LEGACY_CODE_ALIASES]
    rows = db.session.execute(
        select(PendingRegistration).where(PendingRegistration.sigla_area.in_(legacy))
    ).scalars()
    changed = 0
    for reg in rows:
        reg.sigla_area = canonicalize_code(reg.sigla_area)
        changed += 1
    db.session.flush()
    return changed


def normalize(*, apply: bool = False) -> dict:
    directory = DirectoryStore()
    seeded = seed_org_units(CANONICAL_CODES, directory)
    profiles = resync_profiles(directory, canonicalize=True)
    registrations = canonicalize_registrations()

    if apply:
        db.session.commit()
    else:
        db.session.rollback()

    summary = {"seeded": seeded, "profiles": profiles, "registrations_updated": registrations, "applied": apply}
    print(
        "[SUMMARY] "
        f"applied={apply} profiles_scanned={profiles['scanned']} "
        f"profiles_updated={profiles['updated']} registrations_updated={registrations}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Canonicalize org codes and resync profile org caches.")
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry run)")
    parser.add_argument("--env", default=None, help="Config name (development/production)")
    args = parser.parse_args()

    if not args.apply:
        print("[INFO] No --apply given; running as a dry run")

    app = create_app(args.env)
    with app.app_context():
        normalize(apply=args.apply)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Seed Org Structure — divisions, coordinations and teams from a roster CSV.

Usage:
    python scripts/seed_org_structure.py --csv roster.csv              # dry run
    python scripts/seed_org_structure.py --csv roster.csv --apply
    python scripts/seed_org_structure.py --codes DJTB-CUB DJTV-ITA --apply

The CSV needs ``email`` and ``sigla_area`` columns (``nome`` is ignored).
Every code gets its Division → Coordination → Team chain, and profiles whose
email appears in the CSV are pointed at their team.

Running it twice leaves the same rows.
"""

import argparse
import csv
import logging
import sys

from portal import create_app
from portal.models import db
from portal.services.org_hierarchy import assign_profile_team, seed_org_units
from portal.stores import DirectoryStore, RequestStore

logger = logging.getLogger(__name__)


def read_roster(path: str) -> list[dict]:
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        fields = {f.strip().lower() for f in reader.fieldnames or ()}
        if not {"email", "sigla_area"} <= fields:
            raise SystemExit("CSV needs the columns email and sigla_area")
        rows = []
        for raw in reader:
            row = {(k or "").strip().lower(): (v or "").strip() for k, v in raw.items()}
            rows.append({"email": row.get("email", "").lower(), "sigla_area": row.get("sigla_area", "")})
        return rows


def seed(roster: list[dict], extra_codes=(), *, apply: bool = False) -> dict:
    directory = DirectoryStore()
    requests = RequestStore()

    codes = [r["sigla_area"] for r in roster] + list(extra_codes)
    summary = seed_org_units(codes, directory)

    profiles_updated = 0
    missing = 0
    for row in roster:
        if not row["email"] or not row["sigla_area"]:
            continue
        profile = requests.find_profile_by_email(row["email"])
        if profile is None:
            missing += 1
            continue
        assign_profile_team(profile, row["sigla_area"], directory)
        profiles_updated += 1

    summary.update({"profiles_updated": profiles_updated, "profiles_missing": missing, "applied": apply})
    if apply:
        db.session.commit()
    else:
        db.session.rollback()
    print(
        "[SUMMARY] "
        f"applied={apply} divisions={summary['divisions']} coordinations={summary['coordinations']} "
        f"teams={summary['teams']} profiles_updated={profiles_updated} profiles_missing={missing}"
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the org hierarchy from area codes (idempotent).")
    parser.add_argument("--csv", help="Roster CSV with email and sigla_area columns")
    parser.add_argument("--codes", nargs="*", default=[], help="Additional area codes to seed")
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry run)")
    parser.add_argument("--env", default=None, help="Config name (development/production)")
    args = parser.parse_args()

    if not args.csv and not args.codes:
        parser.error("pass --csv and/or --codes")

    roster = read_roster(args.csv) if args.csv else []
    app = create_app(args.env)
    with app.app_context():
        seed(roster, args.codes, apply=args.apply)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
CLI helper to load roasteries and coffees from a JSON file into the database.

Expected file shape::

    [
      {"name": "Kawa Łódź", "city": "Łódź", "coffees": ["Kenia AA", "Brazylia"]},
      ...
    ]

Entries that already exist (after name normalization) are skipped.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coffeerate.config import get_settings
from coffeerate.db import DbClient, PostgresDbClient, RoasteryRecord, UniqueViolation
from coffeerate.normalization import normalize_for_search

logger = logging.getLogger(__name__)


def _find_roastery(db: DbClient, name: str, city: str) -> Optional[RoasteryRecord]:
    name_norm = normalize_for_search(name)
    items, _ = db.list_roasteries(
        q_norm=name_norm, city_norm=normalize_for_search(city), limit=100
    )
    for item in items:
        if normalize_for_search(item.name) == name_norm:
            return item
    return None


def seed_catalog(db: DbClient, entries: list[dict]) -> tuple[int, int]:
    """Create missing roasteries and coffees. Returns (roasteries, coffees) created."""
    roasteries_created = 0
    coffees_created = 0
    for entry in entries:
        name = str(entry["name"]).strip()
        city = str(entry["city"]).strip()
        try:
            roastery = db.create_roastery(name, city)
            roasteries_created += 1
            logger.info("Created roastery %s (%s)", name, city)
        except UniqueViolation:
            roastery = _find_roastery(db, name, city)
            if roastery is None:
                raise
            logger.info("Roastery %s (%s) already exists", name, city)

        for coffee_name in entry.get("coffees", []):
            coffee_name = str(coffee_name).strip()
            try:
                db.create_coffee(roastery.id, coffee_name)
                coffees_created += 1
            except UniqueViolation:
                logger.info("Coffee %s already exists in %s", coffee_name, name)
    return roasteries_created, coffees_created


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed roasteries and coffees")
    parser.add_argument(
        "path",
        type=Path,
        help="JSON file with roasteries and their coffees",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not configured")
        return 1

    entries = json.loads(args.path.read_text(encoding="utf-8"))
    if not isinstance(entries, list):
        logger.error("Expected a JSON list of roasteries in %s", args.path)
        return 1

    db = PostgresDbClient(database_url)
    roasteries, coffees = seed_catalog(db, entries)
    logger.info("Created %d roasteries and %d coffees", roasteries, coffees)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
CLI helper to create the SQLite schema and seed the voting and config rows.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventboard.config import get_settings
from eventboard.db import SqlDbClient

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the event board database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )

    settings = get_settings()
    database_url = args.database_url or settings.database_url
    db = SqlDbClient(database_url, default_auto_reply=settings.default_auto_reply)
    state = db.get_voting_state()
    logger.info("Database ready at %s", database_url)
    logger.info(
        "Current submissions: %d, voting round %d (%s)",
        len(db.list_submissions()),
        state.current_round,
        state.status,
    )
    logger.info("Storage backend: %s", settings.storage_type)
    return 0


if __name__ == "__main__":
    sys.exit(main())

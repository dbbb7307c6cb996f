"""
Database initialization script.

Creates all tables defined in the SQLAlchemy models and, optionally,
seeds the plans table from src/config/plans.yml.

Usage:
    python -m scripts.init_db [--seed] [--database-url URL]

Environment variables:
    DATABASE_URL: PostgreSQL connection string
    PLAN_CATALOG_PATH: Alternative plan catalog file
"""

import os
import sys
import logging
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from src.config.plan_catalog import seed_plans
from src.database.session import get_db_session_sync, init_db, reset_engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Initialize database tables")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed plans from the plan catalog"
    )
    parser.add_argument(
        "--database-url",
        type=str,
        help="Database URL (overrides DATABASE_URL env var)"
    )

    args = parser.parse_args()

    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url
        reset_engine()
    if not os.getenv("DATABASE_URL"):
        parser.error("DATABASE_URL environment variable or --database-url is required")

    logger.info("Starting database initialization...")
    init_db()

    if args.seed:
        for session in get_db_session_sync():
            plans = seed_plans(session)
        logger.info(f"Seeded {len(plans)} plans")

    logger.info("Database initialization complete!")


if __name__ == "__main__":
    main()

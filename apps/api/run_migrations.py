#!/usr/bin/env python3
"""Database bootstrap: wait for the database, then run Alembic migrations.

Always runs `alembic upgrade head` on startup. If migrations fail, exit
non-zero rather than start with an unknown schema.
"""

import logging
import os
import sys
import time

from dotenv import load_dotenv

load_dotenv()

from core.database import check_db_connection  # noqa: E402
from core.logging import setup_logging  # noqa: E402

logger = logging.getLogger("run_migrations")

MAX_DB_WAIT_ATTEMPTS = 30


def _get_alembic_config():
    """Load Alembic config for programmatic migrations."""
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    return Config(os.path.join(here, "alembic.ini"))


def alembic_upgrade_head() -> None:
    """Apply all pending migrations."""
    from alembic import command

    command.upgrade(_get_alembic_config(), "head")


def wait_for_database(max_attempts: int = MAX_DB_WAIT_ATTEMPTS) -> bool:
    for attempt in range(1, max_attempts + 1):
        if check_db_connection():
            return True
        logger.info(f"Database is unavailable - sleeping (attempt {attempt}/{max_attempts})")
        time.sleep(1)
    return False


def main() -> None:
    setup_logging()
    if not wait_for_database():
        logger.error("Database is not ready after maximum retries")
        sys.exit(1)

    try:
        alembic_upgrade_head()
    except Exception as e:
        logger.error(f"Alembic upgrade failed: {e}")
        sys.exit(1)
    logger.info("Migrations completed successfully")


if __name__ == '__main__':
    main()

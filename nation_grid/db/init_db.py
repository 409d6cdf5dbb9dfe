#!/usr/bin/env python3
"""Initialize the database for nation-grid."""

import structlog

from ..config.config import settings
from .connection import db

logger = structlog.get_logger()


def main():
    """Initialize the database."""
    try:
        logger.info("Initializing database", driver=settings.db_driver, name=settings.db_name)
        db.initialize()
        logger.info("Database initialized successfully")

    except Exception as e:
        logger.error("Database initialization failed", error=str(e))
        raise

    return True


if __name__ == "__main__":
    main()

"""
Database initialization script.
"""
from tripsplit.core.config import settings
from tripsplit.core.logging import init_logging
from tripsplit.db.session import init_db
import logging

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    init_logging(debug=settings.DEBUG, level_name=settings.LOG_LEVEL)
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized successfully!")

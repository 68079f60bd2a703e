"""
Database initialization and table creation script.
Run this once to set up the database schema.
"""
import logging

from perfmon.core.database import engine, Base
from perfmon.models.usage_log import APIUsageLog, PerformanceMetric  # noqa: F401  (registers tables)

logger = logging.getLogger(__name__)


def init_db():
    """Create the usage log and custom metric tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created successfully")


def drop_all():
    """Drop all tables (use with caution)."""
    Base.metadata.drop_all(bind=engine)
    logger.info("All tables dropped")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    print("Database initialized successfully!")

"""
Alembic migration runner for application startup.
"""
import logging
from pathlib import Path

from sqlalchemy.exc import OperationalError
from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext

from database import DATABASE_URL, engine

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"


def _alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    return alembic_cfg


def run_migrations() -> None:
    """
    Upgrade the database to head. Connection failures are raised so the caller
    can decide whether to keep serving; anything else is logged.
    """
    try:
        logger.info("Running Alembic migrations...")
        command.upgrade(_alembic_config(), "head")
        logger.info("Alembic migrations completed successfully")
    except OperationalError as e:
        logger.error(f"Failed to connect to database during migrations: {e}")
        raise
    except Exception as e:
        logger.error(f"Unexpected error during Alembic migrations: {e}", exc_info=True)


def get_current_revision() -> str:
    """Current database revision, 'None' before the first migration."""
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(connection)
            current_rev = context.get_current_revision()
            return current_rev if current_rev else 'None'
    except Exception as e:
        logger.error(f"Failed to get current revision: {e}")
        return 'Unknown'

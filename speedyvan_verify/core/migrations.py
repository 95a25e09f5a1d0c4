"""Database migration utilities."""

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text

from speedyvan_verify.database import get_engine

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_alembic_config() -> Config:
    """Build the Alembic config from ``alembic.ini`` at the project root."""
    alembic_ini = PROJECT_ROOT / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    return config


def run_migrations() -> None:
    """Upgrade the database to the latest revision."""
    logger.info("Running database migrations...")

    try:
        command.upgrade(get_alembic_config(), "head")
        logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Database migration failed: {e}")
        raise


async def get_database_revision() -> str | None:
    """Revision currently recorded in ``alembic_version``, if any."""
    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(
                text("SELECT version_num FROM alembic_version LIMIT 1")
            )
            row = result.fetchone()
            return row[0] if row else None
    except Exception:
        return None


def get_head_revision() -> str | None:
    """Latest revision available in the migrations directory."""
    try:
        return ScriptDirectory.from_config(get_alembic_config()).get_current_head()
    except Exception:
        return None


async def check_migrations_current() -> bool:
    """True when the database is at the head revision."""
    head = get_head_revision()
    return head is not None and await get_database_revision() == head


if __name__ == "__main__":
    run_migrations()

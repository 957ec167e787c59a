"""Run Alembic migrations from application code."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from identity.core.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _alembic_config() -> Config:
    """Build an Alembic config wired to the runtime settings."""

    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def _current_revision() -> Optional[str]:
    from identity.db.session import engine

    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def run_migrations() -> None:
    """Upgrade the schema to the latest revision unless it is already there.

    Pooled application connections are released first so the upgrade does not
    wait on locks they hold.
    """

    from identity.db.session import engine

    engine.dispose()
    cfg = _alembic_config()

    try:
        heads = list(ScriptDirectory.from_config(cfg).get_heads() or [])
        current = _current_revision()
        logger.info("Schema revision %s, heads %s", current, ",".join(heads))
        if current and current in heads:
            logger.info("Database is already at head revision, skipping migrations")
            return
    except Exception as exc:
        logger.warning("Unable to check migration status: %s, proceeding with upgrade", exc)

    logger.info("Applying database migrations")
    try:
        command.upgrade(cfg, "heads")
    except Exception:
        logger.exception("Alembic upgrade failed")
        raise
    logger.info("Database migrations applied")


__all__ = ["run_migrations"]

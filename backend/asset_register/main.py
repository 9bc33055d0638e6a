"""
Process bootstrap for the asset register backend.

Importing ``asset_register.core.config`` loads the .env files; ``startup()``
then applies the log level and, when ``AUTO_CREATE_TABLES`` is on, creates
any missing tables (production databases are migrated with Alembic instead).
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import make_url

from asset_register.core import database
from asset_register.core.config import configure_logging, get_settings

logger = logging.getLogger(__name__)


def startup() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    url = make_url(settings.database_url)
    logger.info("asset register using %s", url.render_as_string(hide_password=True))
    if settings.auto_create_tables:
        database.init_db()
        logger.info("tables ensured (AUTO_CREATE_TABLES on)")


def health() -> dict:
    """``{"status": "ok"}`` once the database answers a trivial query."""
    with database.engine.connect() as conn:
        conn.exec_driver_sql("SELECT 1")
    return {"status": "ok"}

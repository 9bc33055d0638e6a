"""
Runtime configuration for the asset register backend.

Values come from environment variables.  ``.env.local`` / ``.env`` files next
to ``backend/`` and at the repo root are loaded first (never overriding
variables that are already set), in this priority order:

    backend/.env.local
    backend/.env
    <repo>/.env.local
    <repo>/.env

Recognised variables
--------------------
DATABASE_URL          SQLAlchemy URL (default: sqlite:///./asset_register.db)
SQL_ECHO              echo SQL statements (default: false)
AUTO_CREATE_TABLES    create missing tables on startup (default: true)
LOG_LEVEL             root log level for ``configure_logging`` (default: INFO)
VALUE_DECIMAL_PLACES  rounding of reported monetary values (default: 2)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---- load .env files (backend/.env then repo .env) ----------------------
CURRENT_FILE = Path(__file__).resolve()
BACKEND_DIR = CURRENT_FILE.parents[2]
REPO_ROOT = CURRENT_FILE.parents[3]

_env_candidates = [
    BACKEND_DIR / ".env.local",
    BACKEND_DIR / ".env",
    REPO_ROOT / ".env.local",
    REPO_ROOT / ".env",
]

_TRUTHY = ("1", "true", "yes", "on", "y", "t")


def load_env_files() -> list[str]:
    """Load every existing candidate .env file; return the paths loaded."""
    loaded = []
    for env_path in _env_candidates:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            loaded.append(str(env_path))
    return loaded


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./asset_register.db"
    sql_echo: bool = False
    auto_create_tables: bool = True
    log_level: str = "INFO"
    value_decimal_places: int = 2


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    loaded = load_env_files()
    if loaded:
        logger.info("Loaded env files: %s", ", ".join(loaded))

    url = os.getenv("DATABASE_URL") or Settings.database_url
    # the engine is synchronous; drop an async driver suffix if present
    url = url.replace("+asyncpg", "").replace("+aiosqlite", "")

    try:
        places = int(os.getenv("VALUE_DECIMAL_PLACES", "2"))
    except ValueError:
        logger.warning("VALUE_DECIMAL_PLACES is not an integer; using 2")
        places = 2

    return Settings(
        database_url=url,
        sql_echo=_flag("SQL_ECHO", "false"),
        auto_create_tables=_flag("AUTO_CREATE_TABLES", "true"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        value_decimal_places=places,
    )


_logging_configured = False


def configure_logging(level: str | None = None) -> None:
    """Apply ``LOG_LEVEL`` to the root logger once per process."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _logging_configured = True

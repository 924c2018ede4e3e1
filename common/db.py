from __future__ import annotations

import logging
import threading
from typing import Optional
from urllib.parse import quote_plus

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def build_sqlalchemy_url(settings: Settings) -> str:
    if settings.database_url:
        return settings.database_url

    # Use the recommended odbc_connect form.
    # This handles:
    # - passwords with special characters
    # - driver names with spaces
    odbc_str = (
        f"DRIVER={{{settings.odbc_driver}}};"
        f"SERVER={settings.db_host};"
        f"PORT={settings.db_port};"
        f"DATABASE={settings.db_name};"
        f"UID={settings.db_user};"
        f"PWD={settings.db_password};"
        "CHARSET=utf8mb4;"
    )

    return f"mysql+pyodbc:///?odbc_connect={quote_plus(odbc_str)}"


def create_db_engine(settings: Settings) -> Engine:
    url = build_sqlalchemy_url(settings)

    # Connection parameters without the password
    logger.info(
        "[DB] create engine host=%s port=%s db=%s user=%s driver=%s url_override=%s",
        settings.db_host,
        settings.db_port,
        settings.db_name,
        settings.db_user,
        settings.odbc_driver,
        settings.database_url is not None,
    )

    engine = create_engine(url, pool_pre_ping=True, future=True)

    # Connectivity probe: shows in logs whether the service actually reaches the DB
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] connection test OK")
    except Exception:
        logger.exception("[DB] connection test FAILED")

    return engine


def get_engine() -> Engine:
    """Process-wide engine (lazy singleton)."""
    global _engine

    if _engine is not None:
        return _engine
    with _engine_lock:
        if _engine is None:
            _engine = create_db_engine(get_settings())
    return _engine

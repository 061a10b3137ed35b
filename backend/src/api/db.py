"""
Database utilities (SQLAlchemy engine/session) for the import backend.

Connection settings come from the environment:
- DATABASE_URL: full SQLAlchemy URL; wins when set (e.g. sqlite:///./import.db)
- MYSQL_URL, MYSQL_USER, MYSQL_PASSWORD, MYSQL_DB, MYSQL_PORT: MySQL container settings

Do not hardcode credentials in code. Configure these via .env in the runtime environment.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Generator, Optional
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _build_mysql_url() -> str:
    """
    Build a MySQL SQLAlchemy URL (mysql+pymysql) from MYSQL_* variables.

    MYSQL_URL may be a bare host ("localhost", "localhost:5001") or a full DSN
    ("mysql://user:pw@host:5001/db"). DSN parts win over the separate variables;
    MYSQL_PORT/MYSQL_DB fill in whatever the DSN leaves out.
    """
    raw = os.getenv("MYSQL_URL", "localhost")
    user = os.getenv("MYSQL_USER", "")
    password = os.getenv("MYSQL_PASSWORD", "")
    db = os.getenv("MYSQL_DB", "")
    port = os.getenv("MYSQL_PORT", "")

    if "://" in raw:
        parsed = urlparse(raw)
        host = parsed.hostname or "localhost"
        resolved_port = parsed.port
        if resolved_port is None and port.isdigit():
            resolved_port = int(port)

        hostport = f"{host}:{resolved_port}" if resolved_port is not None else host
        dsn_db = (parsed.path or "").lstrip("/") or db
        return (
            f"mysql+pymysql://{parsed.username or user}:{parsed.password or password}"
            f"@{hostport}/{dsn_db}?charset=utf8mb4"
        )

    host = raw
    if port and ":" not in host:
        host = f"{host}:{port}"
    return f"mysql+pymysql://{user}:{password}@{host}/{db}?charset=utf8mb4"


def database_url() -> str:
    return os.getenv("DATABASE_URL", "").strip() or _build_mysql_url()


_ENGINE: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


# PUBLIC_INTERFACE
def get_engine() -> Engine:
    """Return the process-wide Engine, creating it on first use."""
    global _ENGINE, _SessionLocal
    if _ENGINE is None:
        url = database_url()
        kwargs: Dict[str, Any] = {"pool_pre_ping": True, "future": True}
        if url.startswith("sqlite"):
            # Sessions are used from FastAPI's threadpool.
            kwargs["connect_args"] = {"check_same_thread": False}
        _ENGINE = create_engine(url, **kwargs)
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE, future=True)
        logger.info("Database engine created for %s", _ENGINE.url.render_as_string(hide_password=True))
    return _ENGINE


def reset_engine() -> None:
    """Dispose the cached engine so the next get_engine() re-reads the environment."""
    global _ENGINE, _SessionLocal
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SessionLocal = None


# PUBLIC_INTERFACE
def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a SQLAlchemy session and closes it afterward."""
    if _SessionLocal is None:
        get_engine()
    assert _SessionLocal is not None
    db = _SessionLocal()
    try:
        yield db
    finally:
        db.close()

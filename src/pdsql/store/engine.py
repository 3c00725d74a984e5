"""Database engine setup for the record store.

Any SQLAlchemy URL is accepted (``sqlite:///pdns.db``,
``mysql+pymysql://user:pw@host/pdns``, ``postgresql://...``), which mirrors the
dialect + DSN pair the PowerDNS generic backends are configured with. The
matching DBAPI driver must be installed separately for non-SQLite dialects.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from pdsql.store.repository import RepositoryError
from pdsql.store.schema import metadata

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return False
    return parsed.database in (None, "", ":memory:")


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Brief: Create an engine for the configured record store.

    Inputs:
      - url: SQLAlchemy database URL.
      - echo: When True, SQLAlchemy logs every emitted statement.

    Outputs:
      - Engine: pooled engine shared by all query threads.

    Raises:
      - ValueError: When the URL cannot be parsed.

    Notes:
      - In-memory SQLite databases use a single shared connection so every
        listener thread sees the same tables.
    """
    kwargs: Dict[str, Any] = {"echo": bool(echo)}
    try:
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_pre_ping"] = True
        return create_engine(url, **kwargs)
    except ArgumentError as exc:
        raise ValueError(f"Invalid database url {url!r}: {exc}") from exc


def init_schema(engine: Engine) -> None:
    """Create the ``domains`` and ``records`` tables when they are missing.

    Idempotent, safe to call against a populated PowerDNS database.
    """
    try:
        metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise RepositoryError(f"schema creation failed: {exc}") from exc
    logger.info("Record store schema ready on %s", engine.url.render_as_string())

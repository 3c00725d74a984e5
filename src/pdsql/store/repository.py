"""Read-only repository over the PowerDNS ``domains`` and ``records`` tables."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import false, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pdsql.store.models import Domain, Record
from pdsql.store.schema import domains, records

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when the record store cannot answer a lookup."""


class RecordRepository(Protocol):
    """Brief: Lookups the resolver needs from a record store.

    Every method excludes disabled records and raises RepositoryError when
    the store fails. An empty result is never an error.
    """

    def find_records(
        self, name: str, types: Optional[Sequence[str]] = None
    ) -> List[Record]: ...

    def find_domains(self, names: Iterable[str]) -> List[Domain]: ...

    def find_wildcard_records(
        self, domain_id: int, types: Optional[Sequence[str]] = None
    ) -> List[Record]: ...


class SQLRecordRepository:
    """Brief: RecordRepository backed by SQLAlchemy Core.

    Inputs:
      - engine: Engine bound to a database carrying the PowerDNS schema.

    Outputs:
      - Repository whose methods each run one SELECT on a pooled connection.

    Example:
      >>> repo = SQLRecordRepository(engine)
      >>> repo.find_records("example.org", ["CNAME", "A"])
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _fetch(self, stmt) -> List[dict]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            logger.error("record store query failed: %s", exc)
            raise RepositoryError(str(exc)) from exc
        return [dict(row) for row in rows]

    def find_records(
        self, name: str, types: Optional[Sequence[str]] = None
    ) -> List[Record]:
        """Fetch enabled records owned by ``name``, optionally limited to ``types``."""
        stmt = select(records).where(
            records.c.name == name, records.c.disabled == false()
        )
        if types is not None:
            stmt = stmt.where(records.c.type.in_(list(types)))
        stmt = stmt.order_by(records.c.id)
        return [Record.from_row(row) for row in self._fetch(stmt)]

    def find_domains(self, names: Iterable[str]) -> List[Domain]:
        """Fetch the domains whose name is one of ``names``."""
        candidates = list(dict.fromkeys(names))
        if not candidates:
            return []
        stmt = select(domains).where(domains.c.name.in_(candidates))
        return [Domain.from_row(row) for row in self._fetch(stmt)]

    def find_wildcard_records(
        self, domain_id: int, types: Optional[Sequence[str]] = None
    ) -> List[Record]:
        """Fetch enabled records of a zone whose owner starts with a ``*`` label."""
        stmt = select(records).where(
            records.c.domain_id == domain_id,
            records.c.name.like("*.%"),
            records.c.disabled == false(),
        )
        if types is not None:
            stmt = stmt.where(records.c.type.in_(list(types)))
        stmt = stmt.order_by(records.c.id)
        return [Record.from_row(row) for row in self._fetch(stmt)]

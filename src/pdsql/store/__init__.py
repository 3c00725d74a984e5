"""Record store access for the PowerDNS generic SQL schema."""

from pdsql.store.engine import create_db_engine, init_schema
from pdsql.store.models import Domain, Record
from pdsql.store.repository import RecordRepository, RepositoryError, SQLRecordRepository

__all__ = [
    "Domain",
    "Record",
    "RecordRepository",
    "RepositoryError",
    "SQLRecordRepository",
    "create_db_engine",
    "init_schema",
]

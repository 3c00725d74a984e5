"""SQLAlchemy Core table definitions for the PowerDNS generic SQL schema.

Only the ``domains`` and ``records`` tables are modelled; the remaining
PowerDNS tables (supermasters, comments, domainmetadata, cryptokeys, tsigkeys)
are not read by the resolver.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    false,
    true,
)

metadata = MetaData()

domains = Table(
    "domains",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("master", String(128)),
    Column("last_check", Integer),
    Column("type", String(6), nullable=False),
    Column("notified_serial", Integer),
    Column("account", String(40)),
)

records = Table(
    "records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("domain_id", Integer, ForeignKey("domains.id", ondelete="CASCADE")),
    Column("name", String(255)),
    Column("type", String(10)),
    Column("content", Text),
    Column("ttl", Integer),
    Column("prio", Integer),
    Column("change_date", Integer),
    Column("disabled", Boolean, nullable=False, default=False, server_default=false()),
    Column("ordername", String(255)),
    Column("auth", Boolean, default=True, server_default=true()),
    Index("nametype_index", "name", "type"),
    Index("rec_domain_id_index", "domain_id"),
)

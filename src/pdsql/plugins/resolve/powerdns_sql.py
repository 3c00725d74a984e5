from __future__ import annotations

import logging
from typing import Optional

from dnslib import DNSRecord
from pydantic import BaseModel, Field

from pdsql.plugins.resolve.base import (
    BasePlugin,
    PluginContext,
    PluginDecision,
    plugin_aliases,
)
from pdsql.query import answer_query, qtype_mnemonic
from pdsql.resolver import DEFAULT_MAX_CNAME_DEPTH, Resolver
from pdsql.store import SQLRecordRepository, create_db_engine, init_schema

logger = logging.getLogger(__name__)


class PowerDNSGenericSQLConfig(BaseModel):
    """Brief: Typed configuration model for PowerDNSGenericSQL.

    Inputs:
      - url: SQLAlchemy database URL (for example "sqlite:///pdns.db" or
        "postgresql+psycopg://user:pw@host/pdns").
      - auto_migrate: Create the domains/records tables at setup when absent.
      - debug: Log every query and its outcome at info level.
      - debug_db: Echo every SQL statement through the sqlalchemy logger.
      - max_cname_depth: CNAME hops followed before the query fails.

    Outputs:
      - PowerDNSGenericSQLConfig instance with normalized field types.
    """

    url: str = Field(min_length=1)
    auto_migrate: bool = False
    debug: bool = False
    debug_db: bool = False
    max_cname_depth: int = Field(default=DEFAULT_MAX_CNAME_DEPTH, ge=1, le=64)

    class Config:
        extra = "forbid"


@plugin_aliases("pdsql", "powerdns", "generic_sql", "gsql")
class PowerDNSGenericSQL(BasePlugin):
    """
    Brief: Answer queries from a PowerDNS generic-SQL database.

    Direct matches (with CNAME chains expanded) win; otherwise wildcard
    records of the owning zone are tried. When nothing matches the query is
    handed to the next plugin, with the exact-name SOA (if any) queued for the
    additional section of the final response.

    Example use:
        In config.yaml:
        plugins:
          - module: pdsql
            config:
              url: sqlite:///pdns.db
              auto_migrate: true
    """

    @classmethod
    def get_config_model(cls):
        return PowerDNSGenericSQLConfig

    def setup(self) -> None:
        """
        Brief: Open the database engine, optionally create the schema, and
        build the resolver.

        Outputs:
          - None

        Raises:
          - ValueError: When the URL cannot be parsed.
          - RepositoryError: When auto_migrate fails.
        """
        self.debug = bool(self.config.get("debug", False))
        self.engine = create_db_engine(
            str(self.config["url"]), echo=bool(self.config.get("debug_db", False))
        )
        if self.config.get("auto_migrate", False):
            init_schema(self.engine)
        self.resolver = Resolver(
            SQLRecordRepository(self.engine),
            max_cname_depth=int(
                self.config.get("max_cname_depth", DEFAULT_MAX_CNAME_DEPTH)
            ),
        )
        self.logger.info(
            "%s: serving records from %s", self.name, self.engine.url.render_as_string()
        )

    def pre_resolve(
        self, qname: str, qtype: int, req: bytes, ctx: PluginContext
    ) -> Optional[PluginDecision]:
        """
        Brief: Answer from the database or delegate to the next plugin.

        Inputs:
            qname: Queried domain name (any case, trailing dot optional).
            qtype: DNS record type code.
            req: Raw DNS request bytes.
            ctx: Plugin context; receives the negative SOA on delegation.
        Outputs:
            PluginDecision("override") carrying the packed answer, or None.

        Raises:
            RepositoryError, ResolutionError: Fail the query (SERVFAIL).
        """
        resolver = getattr(self, "resolver", None)
        if resolver is None:
            raise RuntimeError(f"plugin {self.name} used before setup()")

        request = DNSRecord.parse(req)
        outcome = answer_query(resolver, qname, qtype, request.q.qclass)

        if getattr(self, "debug", False):
            self.logger.info(
                "%s %s: %d answers, %d additional",
                qname,
                qtype_mnemonic(qtype),
                len(outcome.answers),
                len(outcome.additional),
            )

        if not outcome.answered:
            ctx.additional.extend(outcome.additional)
            return None

        reply = request.reply(ra=0, aa=1)
        for rr in outcome.answers:
            reply.add_answer(rr)
        return PluginDecision(
            action="override", response=reply.pack(), plugin_label=self.name
        )

    def close(self) -> None:
        engine = getattr(self, "engine", None)
        if engine is not None:
            engine.dispose()

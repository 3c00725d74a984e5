"""
Brief: Shared pytest configuration and record-store fixtures.

Inputs:
  - None

Outputs:
  - engine: empty in-memory SQLite engine with the PowerDNS schema.
  - seed: callable that loads the example.org data set into an engine.
  - seeded_engine / resolver: engine and Resolver over the seeded data.
"""

import logging
import os
import sys

import pytest

# Ensure 'src' is on sys.path so the 'pdsql' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from pdsql.resolver import Resolver  # noqa: E402
from pdsql.servers.udp_server import DNSUDPHandler  # noqa: E402
from pdsql.store import SQLRecordRepository, create_db_engine, init_schema  # noqa: E402
from pdsql.store.schema import domains, records  # noqa: E402

EXAMPLE_SOA = "ns1.example.org hostmaster.example.org 2024010101 7200 3600 1209600 300"

EXAMPLE_DOMAINS = [
    {"id": 1, "name": "example.org", "type": "NATIVE"},
    {"id": 2, "name": "sub.example.org", "type": "NATIVE"},
]

EXAMPLE_RECORDS = [
    {"id": 1, "name": "example.org", "type": "A", "content": "192.168.1.1"},
    {"id": 2, "name": "example.org", "type": "AAAA", "content": "::ffff:c0a8:101"},
    {"id": 3, "name": "*.example.org", "type": "CNAME", "content": "example.org"},
    {"id": 4, "name": "cname1.example.org", "type": "CNAME", "content": "cname2.example.org"},
    {"id": 5, "name": "cname2.example.org", "type": "CNAME", "content": "example.org"},
    {"id": 6, "name": "nocase.example.org", "type": "CNAME", "content": "example.org"},
    {"id": 7, "name": "example.org", "type": "TXT", "content": "Example Response Text"},
    {"id": 8, "name": "multi.example.org", "type": "A", "content": "192.168.1.2", "ttl": 7200},
    {"id": 9, "name": "multi.example.org", "type": "A", "content": "192.168.1.3", "ttl": 7200},
    {"id": 10, "name": "example.org", "type": "MX", "content": "10 mail.example.org"},
    {"id": 11, "name": "example.org", "type": "MX", "content": "20 mail2.example.org"},
    {"id": 12, "name": "example.org", "type": "MX", "content": "mail3.example.org", "prio": 30},
    {"id": 13, "name": "_xmpp._tcp.example.org", "type": "SRV", "content": "10 10 5269 example.org."},
    {"id": 14, "name": "example.org", "type": "SOA", "content": EXAMPLE_SOA},
    {"id": 15, "name": "disabled.example.org", "type": "A", "content": "192.0.2.99", "disabled": True},
    {"id": 16, "name": "sub.example.org", "type": "SOA", "content": EXAMPLE_SOA, "domain_id": 2},
    {"id": 17, "name": "*.sub.example.org", "type": "TXT", "content": "sub wildcard", "domain_id": 2},
    {"id": 18, "name": "*.sub.example.org", "type": "A", "content": "192.0.2.50", "domain_id": 2, "disabled": True},
    {"id": 19, "name": "nosoa.example.org", "type": "SOA", "content": EXAMPLE_SOA, "disabled": True},
    {"id": 20, "name": "hop.example.org", "type": "CNAME", "content": "hidden.example.org"},
    {"id": 21, "name": "hidden.example.org", "type": "A", "content": "192.0.2.51", "disabled": True},
    {"id": 22, "name": "example.org", "type": "NS", "content": "ns-off.example.org", "disabled": True},
]


def _record_row(row):
    full = {"domain_id": 1, "ttl": 3600, "prio": 0, "disabled": False}
    full.update(row)
    return full


def seed_example_data(engine) -> None:
    """Insert the example.org data set into ``engine``."""
    with engine.begin() as conn:
        conn.execute(domains.insert(), EXAMPLE_DOMAINS)
        conn.execute(records.insert(), [_record_row(r) for r in EXAMPLE_RECORDS])


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seed():
    return seed_example_data


@pytest.fixture
def seeded_engine(engine):
    seed_example_data(engine)
    return engine


@pytest.fixture
def resolver(seeded_engine):
    return Resolver(SQLRecordRepository(seeded_engine))


@pytest.fixture(autouse=True)
def reset_handler_state():
    """
    Brief: Restore DNSUDPHandler class-level configuration after each test.

    Outputs:
      - None
    """
    plugins = DNSUDPHandler.plugins
    fallback = DNSUDPHandler.fallback_rcode
    yield
    DNSUDPHandler.plugins = plugins
    DNSUDPHandler.fallback_rcode = fallback


@pytest.fixture
def restore_root_logging():
    """Snapshot and restore root logger handlers and level around a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)

"""
Brief: End-to-end UDP tests for DNSServer with the SQL plugin.

Inputs:
  - None

Outputs:
  - None
"""

import threading

import pytest
from dnslib import QTYPE, RCODE, DNSRecord

from pdsql.plugins.resolve.powerdns_sql import PowerDNSGenericSQL
from pdsql.servers.server import DNSServer
from pdsql.servers.udp_server import DNSUDPHandler


@pytest.fixture
def running_server(seed):
    plugin = PowerDNSGenericSQL(name="pdsql", url="sqlite://", auto_migrate=True)
    plugin.setup()
    seed(plugin.engine)
    server = DNSServer("127.0.0.1", 0, [plugin])
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.stop()
    thread.join(timeout=5)
    plugin.close()


def _query(server, name, qtype):
    host, port = server.address[:2]
    q = DNSRecord.question(name, qtype)
    return q, DNSRecord.parse(q.send(host, port, timeout=2))


def test_dns_server_installs_handler_config(running_server):
    assert DNSUDPHandler.fallback_rcode == RCODE.SERVFAIL
    assert [p.name for p in DNSUDPHandler.plugins] == ["pdsql"]


def test_udp_answers_from_database(running_server):
    """
    Brief: A UDP query is answered with stored records.

    Inputs:
      - multi.example.org A over UDP

    Outputs:
      - None: Asserts both A records with TTL 7200
    """
    q, resp = _query(running_server, "multi.example.org", "A")
    assert resp.header.id == q.header.id
    assert resp.header.rcode == RCODE.NOERROR
    assert [str(rr.rdata) for rr in resp.rr] == ["192.168.1.2", "192.168.1.3"]
    assert {rr.ttl for rr in resp.rr} == {7200}


def test_udp_case_insensitive_query(running_server):
    _, resp = _query(running_server, "NoCase.Example.ORG", "A")
    assert [QTYPE.get(rr.rtype) for rr in resp.rr] == ["CNAME", "A"]
    assert str(resp.rr[0].rname).lower() == "nocase.example.org."


def test_udp_miss_falls_back_with_soa(running_server):
    _, resp = _query(running_server, "example.org", "PTR")
    assert resp.header.rcode == RCODE.SERVFAIL
    assert resp.rr == []
    assert [QTYPE.get(rr.rtype) for rr in resp.ar] == ["SOA"]


def test_dns_server_custom_fallback():
    server = DNSServer("127.0.0.1", 0, [], fallback_rcode="NXDOMAIN")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        _, resp = _query(server, "anything.example", "A")
        assert resp.header.rcode == RCODE.NXDOMAIN
    finally:
        server.stop()
        thread.join(timeout=5)

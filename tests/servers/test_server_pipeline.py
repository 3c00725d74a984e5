"""
Brief: Tests for the resolve_query_bytes pipeline in pdsql.servers.server.

Inputs:
  - None

Outputs:
  - None
"""

import struct

import pytest
from dnslib import QTYPE, RCODE, RR, SOA, A, DNSRecord

from pdsql.plugins.resolve.base import BasePlugin, PluginContext, PluginDecision
from pdsql.resolver import ResolutionError
from pdsql.servers import server as server_mod
from pdsql.servers.server import DNSUDPHandler, parse_rcode, resolve_query_bytes
from pdsql.store import RepositoryError

_SOA_RR = RR(
    rname="example.org.",
    rtype=QTYPE.SOA,
    rclass=1,
    ttl=3600,
    rdata=SOA("ns1.example.org.", "hostmaster.example.org.", (1, 2, 3, 4, 5)),
)


class _OverridePlugin(BasePlugin):
    def pre_resolve(self, qname, qtype, data, ctx: PluginContext):
        r = DNSRecord.parse(data).reply()
        r.add_answer(RR(rname=qname, rtype=QTYPE.A, rclass=1, ttl=60, rdata=A("192.0.2.7")))
        return PluginDecision(action="override", response=r.pack())


class _DelegatingPlugin(BasePlugin):
    def pre_resolve(self, qname, qtype, data, ctx: PluginContext):
        ctx.additional.append(_SOA_RR)
        return None


class _RaisingPlugin(BasePlugin):
    exc: Exception = ResolutionError("boom")

    def pre_resolve(self, qname, qtype, data, ctx: PluginContext):
        raise self.exc


class _RecordingPlugin(BasePlugin):
    def setup(self):
        self.seen = []

    def pre_resolve(self, qname, qtype, data, ctx: PluginContext):
        self.seen.append((qname, qtype))
        return None


def test_override_answers_with_request_id():
    DNSUDPHandler.plugins = [_OverridePlugin()]
    q = DNSRecord.question("override.example", "A")
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.id == q.header.id
    assert resp.header.rcode == RCODE.NOERROR
    assert [str(rr.rdata) for rr in resp.rr] == ["192.0.2.7"]


def test_no_plugins_uses_fallback_rcode():
    """
    Brief: With nobody answering, the reply carries the fallback rcode.

    Inputs:
      - Empty plugin list; default then NXDOMAIN fallback

    Outputs:
      - None: Asserts SERVFAIL then NXDOMAIN
    """
    DNSUDPHandler.plugins = []
    q = DNSRecord.question("nobody.example", "A")
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.rcode == RCODE.SERVFAIL
    assert resp.rr == []

    DNSUDPHandler.fallback_rcode = RCODE.NXDOMAIN
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.rcode == RCODE.NXDOMAIN


def test_delegated_soa_attached_to_fallback_reply():
    DNSUDPHandler.plugins = [_DelegatingPlugin()]
    q = DNSRecord.question("example.org", "PTR")
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.rcode == RCODE.SERVFAIL
    assert [QTYPE.get(rr.rtype) for rr in resp.ar] == ["SOA"]


def test_delegated_soa_attached_to_later_answer():
    DNSUDPHandler.plugins = [
        _DelegatingPlugin(pre_priority=10),
        _OverridePlugin(pre_priority=20),
    ]
    q = DNSRecord.question("example.org", "A")
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.rcode == RCODE.NOERROR
    assert len(resp.rr) == 1
    assert [QTYPE.get(rr.rtype) for rr in resp.ar] == ["SOA"]


def test_plugins_run_in_priority_order():
    late = _OverridePlugin(name="late", pre_priority=50)
    early = _RecordingPlugin(name="early", pre_priority=5)
    early.setup()
    DNSUDPHandler.plugins = [late, early]
    q = DNSRecord.question("Order.Example.", "MX")
    resolve_query_bytes(q.pack(), "127.0.0.1")
    assert early.seen == [("Order.Example.", QTYPE.MX)]


def test_target_qtypes_skip_plugin():
    rec = _RecordingPlugin(target_qtypes=["AAAA"])
    rec.setup()
    DNSUDPHandler.plugins = [rec]
    resolve_query_bytes(DNSRecord.question("x.example", "A").pack(), "127.0.0.1")
    assert rec.seen == []
    resolve_query_bytes(DNSRecord.question("x.example", "AAAA").pack(), "127.0.0.1")
    assert rec.seen == [("x.example.", QTYPE.AAAA)]


@pytest.mark.parametrize(
    "exc",
    [ResolutionError("bad content"), RepositoryError("db down"), RuntimeError("bug")],
)
def test_plugin_exception_becomes_servfail(exc):
    """
    Brief: Any exception from a plugin yields SERVFAIL with no partial answer.

    Inputs:
      - Resolution, repository and unexpected errors

    Outputs:
      - None: Asserts SERVFAIL, empty answer and additional sections
    """
    plugin = _RaisingPlugin()
    plugin.exc = exc
    DNSUDPHandler.plugins = [_DelegatingPlugin(pre_priority=1), plugin]
    q = DNSRecord.question("fail.example", "A")
    resp = DNSRecord.parse(resolve_query_bytes(q.pack(), "127.0.0.1"))
    assert resp.header.id == q.header.id
    assert resp.header.rcode == RCODE.SERVFAIL
    assert resp.rr == []
    assert resp.ar == []


def test_malformed_packet_gets_formerr():
    DNSUDPHandler.plugins = [_OverridePlugin()]
    # Header claims one question but carries none.
    data = struct.pack("!HHHHHH", 0x1234, 0x0100, 1, 0, 0, 0)
    resp = DNSRecord.parse(resolve_query_bytes(data, "127.0.0.1"))
    assert resp.header.id == 0x1234
    assert resp.header.qr == 1
    assert resp.header.rcode == RCODE.FORMERR
    assert resp.header.rd == 1


def test_question_less_packet_gets_formerr():
    data = struct.pack("!HHHHHH", 0x0042, 0x0000, 0, 0, 0, 0)
    resp = DNSRecord.parse(resolve_query_bytes(data, "127.0.0.1"))
    assert resp.header.id == 0x0042
    assert resp.header.rcode == RCODE.FORMERR


def test_truncated_packet_gets_no_reply():
    assert resolve_query_bytes(b"\x01\x02\x03", "127.0.0.1") == b""


def test_response_packets_are_not_answered():
    data = struct.pack("!HHHHHH", 0x0001, 0x8000, 1, 0, 0, 0)
    assert resolve_query_bytes(data, "127.0.0.1") == b""


def test_set_response_id():
    assert server_mod._set_response_id(b"\x00\x00rest", 0xABCD) == b"\xab\xcdrest"
    assert server_mod._set_response_id(b"\x00", 1) == b"\x00"


def test_parse_rcode():
    assert parse_rcode("servfail") == RCODE.SERVFAIL
    assert parse_rcode("NXDOMAIN") == RCODE.NXDOMAIN
    assert parse_rcode(5) == 5
    assert parse_rcode(None) == RCODE.SERVFAIL
    with pytest.raises(ValueError):
        parse_rcode("NOPE")

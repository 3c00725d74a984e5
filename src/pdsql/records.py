"""Conversion of stored records into dnslib resource records.

Brief:
  Each supported record type has exactly one builder that parses the
  PowerDNS text content into dnslib rdata. Types without a builder are
  dropped. Builders raise ContentFormatError for content that would produce a
  wrong answer, which fails the whole query.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Callable, Dict, List, Optional

from dnslib import AAAA, CNAME, MX, NS, PTR, QTYPE, RD, RR, SOA, SRV, TXT, A

from pdsql.resolver import ResolutionError, parse_soa
from pdsql.store.models import Record

logger = logging.getLogger(__name__)

_UINT16_MAX = 0xFFFF
_TXT_CHUNK = 255


class ContentFormatError(ResolutionError):
    """Raised when record content cannot be parsed for its type."""


def fqdn(name: str) -> str:
    """Return ``name`` with exactly one trailing dot.

    Example:
      >>> fqdn("mail.example.org")
      'mail.example.org.'
    """
    text = str(name)
    if text.endswith("."):
        return text
    return text + "."


def _parse_uint16(text: str, field: str, record: Record) -> int:
    if text.isascii() and text.isdigit():
        value = int(text)
        if value <= _UINT16_MAX:
            return value
    raise ContentFormatError(
        "invalid %s %s: %r (record %s %s)"
        % (record.type, field, text, record.name, record.content)
    )


def _build_a(record: Record) -> Optional[RD]:
    try:
        addr = ipaddress.IPv4Address(record.content.strip())
    except ValueError as exc:
        raise ContentFormatError(
            "invalid A address %r for %s" % (record.content, record.name)
        ) from exc
    return A(tuple(addr.packed))


def _build_aaaa(record: Record) -> Optional[RD]:
    try:
        addr = ipaddress.IPv6Address(record.content.strip())
    except ValueError as exc:
        raise ContentFormatError(
            "invalid AAAA address %r for %s" % (record.content, record.name)
        ) from exc
    return AAAA(tuple(addr.packed))


def _build_txt(record: Record) -> Optional[RD]:
    raw = record.content.encode("utf-8")
    if len(raw) <= _TXT_CHUNK:
        return TXT([raw])
    chunks: List[bytes] = [
        raw[i : i + _TXT_CHUNK] for i in range(0, len(raw), _TXT_CHUNK)
    ]
    return TXT(chunks)


def _build_ns(record: Record) -> Optional[RD]:
    return NS(fqdn(record.content.strip()))


def _build_ptr(record: Record) -> Optional[RD]:
    # PowerDNS stores targets without the trailing dot.
    return PTR(fqdn(record.content.strip()))


def _build_cname(record: Record) -> Optional[RD]:
    return CNAME(fqdn(record.content.strip()))


def _build_mx(record: Record) -> Optional[RD]:
    if record.prio:
        preference = _parse_uint16(str(record.prio), "priority", record)
        return MX(fqdn(record.content.strip()), preference=preference)
    parts = record.content.split()
    if len(parts) != 2:
        raise ContentFormatError(
            "malformed MX record content: %r" % record.content
        )
    preference = _parse_uint16(parts[0], "preference", record)
    return MX(fqdn(parts[1]), preference=preference)


def _build_srv(record: Record) -> Optional[RD]:
    parts = record.content.split()
    if len(parts) != 4:
        raise ContentFormatError(
            "malformed SRV record content: %r - parts=%d" % (record.content, len(parts))
        )
    priority = _parse_uint16(parts[0], "priority", record)
    weight = _parse_uint16(parts[1], "weight", record)
    port = _parse_uint16(parts[2], "port", record)
    return SRV(priority, weight, port, fqdn(parts[3]))


def _build_soa(record: Record) -> Optional[RD]:
    fields = parse_soa(record.content)
    if fields is None:
        logger.warning(
            "dropping SOA for %s with malformed content %r", record.name, record.content
        )
        return None
    return SOA(fqdn(fields.mname), fqdn(fields.rname), fields.times)


# Closed mapping of supported types; anything absent is dropped.
BUILDERS: Dict[str, Callable[[Record], Optional[RD]]] = {
    "A": _build_a,
    "AAAA": _build_aaaa,
    "TXT": _build_txt,
    "NS": _build_ns,
    "PTR": _build_ptr,
    "CNAME": _build_cname,
    "MX": _build_mx,
    "SRV": _build_srv,
    "SOA": _build_soa,
}

SUPPORTED_TYPES = frozenset(BUILDERS)


def materialize(
    record: Record, qclass: int = 1, owner: Optional[str] = None
) -> Optional[RR]:
    """Brief: Build a dnslib RR from a stored record.

    Inputs:
      - record: Stored record to convert.
      - qclass: Class copied from the question (1 == IN).
      - owner: Optional owner name overriding record.name.

    Outputs:
      - RR with a fully-qualified owner name and the record TTL, or None when
        the type is unsupported or SOA content is malformed.

    Raises:
      - ContentFormatError: For malformed A, AAAA, MX or SRV content.

    Example:
      >>> rr = materialize(Record(id=1, name="example.org", type="MX",
      ...                         content="10 mail.example.org", ttl=3600))
      >>> str(rr.rdata)
      '10 mail.example.org.'
    """
    rtype = record.type.upper()
    builder = BUILDERS.get(rtype)
    if builder is None:
        logger.debug("dropping unsupported %s record for %s", rtype, record.name)
        return None

    rdata = builder(record)
    if rdata is None:
        return None

    return RR(
        rname=fqdn(owner if owner is not None else record.name),
        rtype=getattr(QTYPE, rtype),
        rclass=int(qclass),
        ttl=int(record.ttl),
        rdata=rdata,
    )

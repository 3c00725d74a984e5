"""Name resolution against the record store.

Brief:
  Implements the lookup half of the backend: name normalization, direct
  lookups with CNAME chain expansion, wildcard search inside the owning zone,
  and SOA retrieval/parsing for negative answers. Everything here works on
  store.Record values; turning them into wire RRs is handled by
  pdsql.records.

Inputs:
  - A RecordRepository implementation (dependency-injected).

Outputs:
  - Ordered lists of Record instances, or None for SOA misses.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from pdsql.store.models import Record
from pdsql.store.repository import RecordRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_CNAME_DEPTH = 16

_UINT32_MAX = 0xFFFFFFFF


class ResolutionError(Exception):
    """Base class for errors that fail a whole query."""


class CNAMELoopError(ResolutionError):
    """Raised when a CNAME chain revisits a name or grows past the depth limit."""


class SOAFields(NamedTuple):
    """Parsed SOA content."""

    mname: str
    rname: str
    serial: int
    refresh: int
    retry: int
    expire: int
    minimum: int

    @property
    def times(self) -> Tuple[int, int, int, int, int]:
        return (self.serial, self.refresh, self.retry, self.expire, self.minimum)


def normalize_name(name: object) -> str:
    """Brief: Canonicalize a query name into a lookup key.

    Inputs:
      - name: Domain name as received (str or dnslib DNSLabel), possibly with a
        trailing root dot and mixed case.

    Outputs:
      - str: Lower-cased name without the trailing dot. The root name "." is
        returned unchanged.

    Example:
      >>> normalize_name("WWW.Example.ORG.")
      'www.example.org'
      >>> normalize_name(".")
      '.'
    """
    text = str(name).lower()
    if text == ".":
        return text
    if text.endswith("."):
        text = text[:-1]
    return text


def _labels(name: str) -> List[str]:
    if name in ("", "."):
        return []
    return name.split(".")


def wildcard_match(name: str, pattern: str) -> bool:
    """Brief: Compare a name against a wildcard owner label by label.

    Inputs:
      - name: Query name (trailing dot optional).
      - pattern: Record owner name that may contain "*" labels.

    Outputs:
      - bool: True when both names have the same number of labels and every
        position is equal (case-insensitive) or holds a "*" on either side.

    Example:
      >>> wildcard_match("a.example.org", "*.example.org")
      True
      >>> wildcard_match("x.y.example.org", "*.example.org")
      False
    """
    left = _labels(normalize_name(name))
    right = _labels(normalize_name(pattern))
    if len(left) != len(right):
        return False
    for a, b in zip(left, right):
        if a == "*" or b == "*":
            continue
        if a != b:
            return False
    return True


def _parse_uint32(text: str) -> Optional[int]:
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    if value > _UINT32_MAX:
        return None
    return value


def parse_soa(content: str) -> Optional[SOAFields]:
    """Brief: Parse PowerDNS SOA content into its seven fields.

    Inputs:
      - content: "<mname> <rname> <serial> <refresh> <retry> <expire> <minimum>".

    Outputs:
      - SOAFields on success; None when the field count is not 7 or any timer
        is not an unsigned 32-bit decimal integer.

    Example:
      >>> parse_soa("ns1.example.org hostmaster.example.org 1 7200 3600 1209600 300").serial
      1
      >>> parse_soa("ns1.example.org hostmaster.example.org 1") is None
      True
    """
    fields = str(content).split()
    if len(fields) != 7:
        return None
    numbers: List[int] = []
    for raw in fields[2:]:
        value = _parse_uint32(raw)
        if value is None:
            return None
        numbers.append(value)
    return SOAFields(fields[0], fields[1], *numbers)


def _type_filter(qtype_name: str) -> Optional[List[str]]:
    """Record types to fetch for a query type; None means no filter (ANY)."""
    qtype_name = qtype_name.upper()
    if qtype_name == "ANY":
        return None
    if qtype_name == "CNAME":
        return ["CNAME"]
    return ["CNAME", qtype_name]


class Resolver:
    """Brief: Resolve names against a RecordRepository.

    Inputs:
      - repository: RecordRepository used for every lookup.
      - max_cname_depth: Maximum number of CNAME hops followed from one name
        before the query is failed with CNAMELoopError.

    Outputs:
      - Resolver instance. It keeps no per-query state and is safe to share
        between threads.

    Example:
      >>> resolver = Resolver(SQLRecordRepository(engine))
      >>> [r.type for r in resolver.resolve("cname1.example.org.", "A")]
      ['CNAME', 'CNAME', 'A']
    """

    def __init__(
        self,
        repository: RecordRepository,
        max_cname_depth: int = DEFAULT_MAX_CNAME_DEPTH,
    ) -> None:
        self.repository = repository
        self.max_cname_depth = max(1, int(max_cname_depth))

    def resolve(self, name: str, qtype: str) -> List[Record]:
        """Brief: Direct lookup with CNAME chain expansion.

        Inputs:
          - name: Query name in any case, trailing dot optional.
          - qtype: Query type mnemonic ("A", "MX", "ANY", ...).

        Outputs:
          - list[Record]: Matches in store order; each CNAME is followed by
            the records its target resolves to (not for ANY). Empty when the
            name has no matching records.

        Raises:
          - CNAMELoopError: On a repeated name or an over-long chain.
          - RepositoryError: When a lookup fails.
        """
        return self._resolve(normalize_name(name), qtype.upper(), ())

    def _resolve(self, name: str, qtype: str, chain: Tuple[str, ...]) -> List[Record]:
        if name in chain:
            raise CNAMELoopError(
                "CNAME loop: %s -> %s" % (" -> ".join(chain), name)
            )
        if len(chain) > self.max_cname_depth:
            raise CNAMELoopError(
                "CNAME chain from %s exceeds %d hops" % (chain[0], self.max_cname_depth)
            )

        found = self.repository.find_records(name, _type_filter(qtype))
        resolved: List[Record] = []
        for record in found:
            resolved.append(record)
            if record.type == "CNAME" and qtype != "ANY":
                resolved.extend(self._follow_cname(record, qtype, chain + (name,)))
        return resolved

    def _follow_cname(
        self, record: Record, qtype: str, chain: Tuple[str, ...]
    ) -> List[Record]:
        target = normalize_name(record.content)
        if not target or target == ".":
            return []
        logger.debug("following CNAME %s -> %s", record.name, target)
        return self._resolve(target, qtype, chain)

    def _find_zone(self, name: str):
        """Return the most specific domain that strictly encloses ``name``."""
        labels = _labels(name)
        candidates = [".".join(labels[i:]) for i in range(1, len(labels))]
        if not candidates:
            return None
        best = None
        for domain in self.repository.find_domains(candidates):
            zone = normalize_name(domain.name)
            if zone not in candidates:
                continue
            if best is None or len(_labels(zone)) > len(_labels(normalize_name(best.name))):
                best = domain
        return best

    def search_wildcard(self, name: str, qtype: str) -> List[Record]:
        """Brief: Answer a name from wildcard records of its owning zone.

        Inputs:
          - name: Query name in any case, trailing dot optional.
          - qtype: Query type mnemonic.

        Outputs:
          - list[Record]: Matching wildcard records with their owner rewritten
            to the normalized query name, each CNAME followed by its
            expansion (not for ANY). Empty when no zone or wildcard applies.

        Notes:
          - The owning zone is the longest proper suffix of the name present
            in the domains table.
          - Wildcards are matched against the query name first, then against
            its parent (the name minus its leftmost label) while that parent
            is still below the zone apex. "*.b.example.org" beats
            "*.example.org" for "a.b.example.org"; "*.example.org" answers
            "not.exists.example.org" but never "deep.not.exists.example.org".
        """
        qname = normalize_name(name)
        qtype = qtype.upper()
        domain = self._find_zone(qname)
        if domain is None:
            return []

        candidates = self.repository.find_wildcard_records(domain.id, _type_filter(qtype))
        if not candidates:
            return []

        labels = _labels(qname)
        probes = [qname]
        if len(labels) - 1 > len(_labels(normalize_name(domain.name))):
            probes.append(".".join(labels[1:]))
        matched: List[Record] = []
        for probe in probes:
            matched = [r for r in candidates if wildcard_match(probe, r.name)]
            if matched:
                break

        resolved: List[Record] = []
        for record in matched:
            answer = dataclasses.replace(record, name=qname)
            resolved.append(answer)
            if answer.type == "CNAME" and qtype != "ANY":
                resolved.extend(self._follow_cname(answer, qtype, (qname,)))
        return resolved

    def resolve_soa(self, name: str) -> Optional[Record]:
        """Return the first enabled SOA record owned by exactly ``name``, or None."""
        found = self.repository.find_records(normalize_name(name), ["SOA"])
        for record in found:
            if record.type == "SOA":
                return record
        return None

    def lookup(self, name: str, qtype: str) -> Sequence[Record]:
        """Direct lookup, falling back to wildcard search when it finds nothing."""
        found = self.resolve(name, qtype)
        if found:
            return found
        return self.search_wildcard(name, qtype)

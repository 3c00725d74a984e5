"""Per-query orchestration: lookup, negative SOA and materialization."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Union

from dnslib import QTYPE, RR

from pdsql.records import materialize
from pdsql.resolver import Resolver, normalize_name

logger = logging.getLogger(__name__)


@dataclass
class QueryOutcome:
    """Brief: Result of answering one question from the record store.

    Inputs (constructor fields):
      - answers: RRs for the answer section, in lookup order.
      - additional: Supplementary RRs (the negative SOA) to attach to whatever
        response is finally sent.

    Outputs:
      - QueryOutcome instance; ``answered`` is True when answers is non-empty.
    """

    answers: List[RR] = field(default_factory=list)
    additional: List[RR] = field(default_factory=list)

    @property
    def answered(self) -> bool:
        return bool(self.answers)


def qtype_mnemonic(qtype: Union[int, str]) -> str:
    """Return the upper-case mnemonic for a numeric or textual qtype."""
    if isinstance(qtype, int):
        return str(QTYPE.get(qtype, str(qtype))).upper()
    return str(qtype).upper()


def answer_query(
    resolver: Resolver,
    qname: str,
    qtype: Union[int, str],
    qclass: int = 1,
) -> QueryOutcome:
    """Brief: Answer a single question or report that it has no answer.

    Inputs:
      - resolver: Resolver bound to the record store.
      - qname: Question name as received.
      - qtype: Question type code or mnemonic.
      - qclass: Question class, copied onto every RR.

    Outputs:
      - QueryOutcome. When no record matched, the zone SOA for the exact name
        (if any) is returned in ``additional`` and ``answers`` is empty.

    Raises:
      - RepositoryError, ResolutionError: Fatal for the query.

    Example:
      >>> outcome = answer_query(resolver, "example.org.", QTYPE.A)
      >>> outcome.answered
      True
    """
    name = normalize_name(qname)
    rtype = qtype_mnemonic(qtype)

    found = resolver.lookup(name, rtype)
    if found:
        answers = [rr for rr in (materialize(r, qclass) for r in found) if rr is not None]
        if not answers:
            logger.debug("%s %s: %d records, none materialized", name, rtype, len(found))
        return QueryOutcome(answers=answers)

    outcome = QueryOutcome()
    soa = resolver.resolve_soa(name)
    if soa is not None:
        rr = materialize(soa, qclass, owner=name)
        if rr is not None:
            outcome.additional.append(rr)
    return outcome

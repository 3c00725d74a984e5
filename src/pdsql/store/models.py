"""Immutable row snapshots handed from the repository to the resolver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Domain:
    """Brief: One row of the ``domains`` table.

    Inputs (constructor fields):
      - id: Primary key.
      - name: Zone apex without trailing dot, lower-case.
      - type: NATIVE, MASTER or SLAVE; not interpreted by resolution.
      - master: Optional primary server address for slave zones.
      - last_check, notified_serial, account: Bookkeeping columns.

    Outputs:
      - Domain instance.
    """

    id: int
    name: str
    type: str = "NATIVE"
    master: Optional[str] = None
    last_check: Optional[int] = None
    notified_serial: Optional[int] = None
    account: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Domain":
        return cls(
            id=int(row["id"]),
            name=str(row["name"]),
            type=str(row.get("type") or ""),
            master=row.get("master"),
            last_check=row.get("last_check"),
            notified_serial=row.get("notified_serial"),
            account=row.get("account"),
        )


@dataclass(frozen=True)
class Record:
    """Brief: One row of the ``records`` table.

    Inputs (constructor fields):
      - id: Primary key (0 for records built in memory).
      - name: Owner name without trailing dot.
      - type: Record type mnemonic such as "A" or "MX".
      - content: Type-specific text encoding of the rdata.
      - ttl: TTL in seconds.
      - prio: MX preference when the content carries none.
      - domain_id: Owning zone, when the schema variant links one.
      - disabled: Disabled records are never served.

    Outputs:
      - Record instance.

    Example:
      >>> Record(id=1, name="example.org", type="A", content="192.0.2.1").ttl
      0
    """

    id: int
    name: str
    type: str
    content: str
    ttl: int = 0
    prio: int = 0
    domain_id: Optional[int] = None
    disabled: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Record":
        domain_id = row.get("domain_id")
        return cls(
            id=int(row["id"]),
            name=str(row.get("name") or ""),
            type=str(row.get("type") or "").upper(),
            content=str(row.get("content") or ""),
            ttl=int(row.get("ttl") or 0),
            prio=int(row.get("prio") or 0),
            domain_id=int(domain_id) if domain_id is not None else None,
            disabled=bool(row.get("disabled") or False),
        )

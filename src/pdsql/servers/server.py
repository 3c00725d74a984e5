import logging
import socketserver
import struct
from typing import List, NamedTuple, Optional, Union

from dnslib import QTYPE, RCODE, DNSError, DNSHeader, DNSRecord

from pdsql.plugins.resolve.base import BasePlugin, PluginContext, PluginDecision
from pdsql.resolver import ResolutionError
from pdsql.store.repository import RepositoryError
from .udp_server import DNSUDPHandler

logger = logging.getLogger("pdsql.server")

_HEADER_LEN = 12


class _ResolveCoreResult(NamedTuple):
    """Internal result for the shared resolve pipeline.

    Outputs:
      - wire: Final DNS response bytes with ID fixed; b"" when no response
        should be sent.
      - rcode_name: Textual rcode name.
    """

    wire: bytes
    rcode_name: str


def parse_rcode(value: Union[int, str, None], default: int = RCODE.SERVFAIL) -> int:
    """Brief: Map an rcode mnemonic ("SERVFAIL") or number to its code.

    Raises:
      - ValueError: For an unknown mnemonic.
    """
    if value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        return int(getattr(RCODE, str(value).strip().upper()))
    except (AttributeError, DNSError) as exc:
        raise ValueError(f"Unknown rcode {value!r}") from exc


def _set_response_id(wire: bytes, req_id: int) -> bytes:
    """Ensure the response DNS ID matches the request ID.

    Inputs:
      - wire: DNS response bytes.
      - req_id: int request ID to set in the first two bytes.
    Outputs:
      - bytes: response with corrected ID.
    """
    bwire = bytes(wire)
    if len(bwire) < 2:
        return bwire
    return struct.pack("!H", int(req_id) & 0xFFFF) + bwire[2:]


def _formerr_from_header(data: bytes) -> bytes:
    """Build a bare FORMERR reply from a request header, or b"" if none."""
    if len(data) < _HEADER_LEN:
        return b""
    req_id, flags = struct.unpack("!HH", data[:4])
    if flags & 0x8000:
        # Never answer a response packet.
        return b""
    header = DNSHeader(id=req_id, qr=1, rcode=RCODE.FORMERR)
    header.opcode = (flags >> 11) & 0xF
    header.rd = (flags >> 8) & 0x1
    return DNSRecord(header).pack()


def _reply_with_rcode(req: DNSRecord, rcode: int, ctx: Optional[PluginContext]) -> bytes:
    r = req.reply(ra=0, aa=0)
    r.header.rcode = rcode
    if ctx is not None:
        for rr in ctx.additional:
            r.add_ar(rr)
    return _set_response_id(r.pack(), req.header.id)


def _with_additional(wire: bytes, ctx: PluginContext) -> bytes:
    """Append ctx.additional to an already packed response."""
    if not ctx.additional:
        return wire
    resp = DNSRecord.parse(wire)
    for rr in ctx.additional:
        resp.add_ar(rr)
    return resp.pack()


def _resolve_core(data: bytes, client_ip: str) -> _ResolveCoreResult:
    """Shared resolution pipeline used by every listener.

    Inputs:
      - data: Wire-format DNS query bytes.
      - client_ip: Client IP string for the plugin context and logs.
    Outputs:
      - _ResolveCoreResult with final wire bytes and the rcode name.

    Flow:
      - Unparseable packets get FORMERR when a header is recoverable and no
        reply otherwise.
      - Plugins run in ascending pre_priority order; the first "override"
        decision answers the query.
      - When every plugin delegates, the reply carries
        DNSUDPHandler.fallback_rcode.
      - Any exception raised by a plugin becomes SERVFAIL with no answers.
      - RRs queued in ctx.additional are attached to the final reply.
    """
    try:
        req = DNSRecord.parse(data)
    except Exception as e:
        logger.warning("Malformed DNS packet from %s: %s", client_ip, e)
        wire = _formerr_from_header(data)
        return _ResolveCoreResult(wire=wire, rcode_name="FORMERR" if wire else "DROP")

    if not req.questions:
        logger.warning("DNS packet from %s carries no question", client_ip)
        wire = _formerr_from_header(data)
        return _ResolveCoreResult(wire=wire, rcode_name="FORMERR" if wire else "DROP")

    q = req.questions[0]
    qname = str(q.qname)
    qtype = q.qtype
    qtype_name = QTYPE.get(qtype, str(qtype))

    ctx = PluginContext(client_ip=client_ip)
    ctx.qname = qname

    try:
        for p in sorted(DNSUDPHandler.plugins, key=lambda p: p.pre_priority):
            if not p.targets_qtype(qtype):
                continue
            decision = p.pre_resolve(qname, qtype, data, ctx)
            if not isinstance(decision, PluginDecision):
                continue
            if decision.action == "override" and decision.response:
                logger.debug(
                    "%s %s from %s answered by %s",
                    qname,
                    qtype_name,
                    client_ip,
                    decision.plugin_label or p.name,
                )
                wire = _with_additional(decision.response, ctx)
                rcode = DNSRecord.parse(wire).header.rcode
                return _ResolveCoreResult(
                    wire=_set_response_id(wire, req.header.id),
                    rcode_name=str(RCODE.get(rcode, rcode)),
                )
            logger.warning(
                "Ignoring unsupported decision %r from plugin %s", decision.action, p.name
            )
    except (ResolutionError, RepositoryError) as e:
        logger.error("Failed to resolve %s %s for %s: %s", qname, qtype_name, client_ip, e)
        return _ResolveCoreResult(
            wire=_reply_with_rcode(req, RCODE.SERVFAIL, None), rcode_name="SERVFAIL"
        )
    except Exception:
        logger.exception("Unhandled error resolving %s %s for %s", qname, qtype_name, client_ip)
        return _ResolveCoreResult(
            wire=_reply_with_rcode(req, RCODE.SERVFAIL, None), rcode_name="SERVFAIL"
        )

    rcode = DNSUDPHandler.fallback_rcode
    logger.debug("%s %s from %s: no plugin answered", qname, qtype_name, client_ip)
    return _ResolveCoreResult(
        wire=_reply_with_rcode(req, rcode, ctx), rcode_name=str(RCODE.get(rcode, rcode))
    )


def resolve_query_bytes(data: bytes, client_ip: str) -> bytes:
    """Resolve a single DNS wire query and return the wire response.

    Inputs:
      - data: Wire-format DNS query bytes.
      - client_ip: String client IP for plugin context and logging.
    Outputs:
      - bytes: Wire-format DNS response, or b"" when nothing should be sent.

    Example:
      >>> resp = resolve_query_bytes(DNSRecord.question("example.org", "A").pack(), "127.0.0.1")
    """
    return _resolve_core(data, client_ip).wire


class DNSServer:
    """A threaded UDP DNS server wrapper.

    Example use:
        >>> server = DNSServer("127.0.0.1", 5355, plugins)
        >>> threading.Thread(target=server.serve_forever, daemon=True).start()
        >>> server.stop()
    """

    def __init__(
        self,
        host: str,
        port: int,
        plugins: List[BasePlugin],
        *,
        fallback_rcode: Union[int, str] = "SERVFAIL",
    ) -> None:
        """Bind the UDP socket and install the plugin chain.

        Inputs:
            host: The host to listen on.
            port: The port to listen on (0 picks a free port).
            plugins: Initialized, set-up plugins.
            fallback_rcode: Rcode sent when no plugin answers.
        """
        DNSUDPHandler.plugins = list(plugins)
        DNSUDPHandler.fallback_rcode = parse_rcode(fallback_rcode)
        try:
            self.server = socketserver.ThreadingUDPServer((host, port), DNSUDPHandler)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise

        # Request handler threads must not block shutdown
        self.server.daemon_threads = True
        logger.debug("DNS UDP server bound to %s:%d", *self.server.server_address[:2])

    @property
    def address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Run the UDP server loop until shutdown is requested."""
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:  # pragma: no cover - interactive only
            pass

    def stop(self) -> None:
        """Request shutdown and close the underlying UDP socket."""
        try:
            self.server.shutdown()
        finally:
            self.server.server_close()

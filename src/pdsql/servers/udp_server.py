import logging
import socketserver
from typing import List

from dnslib import RCODE

from ..plugins.resolve.base import BasePlugin

logger = logging.getLogger("pdsql.server")


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """Brief: Handles one DNS datagram by running it through the plugin chain.

    Class-level configuration (set by DNSServer, read by the shared
    pipeline in pdsql.servers.server):
      - plugins: Plugins to consult, ordered by pre_priority at query time.
      - fallback_rcode: Response code used when no plugin answers.
    """

    plugins: List[BasePlugin] = []
    fallback_rcode: int = RCODE.SERVFAIL

    def handle(self):
        """Resolve the datagram and send the reply, if any, to the client."""
        data, sock = self.request
        client_ip = self.client_address[0]

        from . import server as _server_mod

        # The pipeline converts resolution failures to SERVFAIL itself. An
        # empty result means the packet was too broken to answer.
        wire = _server_mod.resolve_query_bytes(data, client_ip)
        if not wire:
            logger.debug("Dropping unanswerable packet from %s", client_ip)
            return
        sock.sendto(wire, self.client_address)

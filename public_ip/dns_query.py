from __future__ import annotations
import logging
from typing import Optional

import dns.asyncquery
import dns.message
import dns.rcode

from .cancellation import CancelSignal
from .config import DNS_QUERY_TIMEOUT

logger = logging.getLogger(__name__)


class DnsQueryError(RuntimeError):
    pass


async def query_dns(server: str, name: str, record_type: str, signal: Optional[CancelSignal] = None) -> str:
    """Send one UDP query to ``server`` and return the first answer as text.

    dnspython opens a socket for this single query and closes it when the
    query completes, fails or is cancelled.
    """
    if signal is not None:
        signal.raise_if_cancelled()
    query = dns.message.make_query(name, record_type)
    logger.debug("DNS %s %s -> %s", record_type, name, server)
    response = await dns.asyncquery.udp(query, server, timeout=DNS_QUERY_TIMEOUT, port=53)
    rcode = response.rcode()
    if rcode != dns.rcode.NOERROR:
        raise DnsQueryError(f"{server}: {dns.rcode.to_text(rcode)} for {name} {record_type}")
    if not response.answer or len(response.answer[0]) == 0:
        raise DnsQueryError(f"{server}: no answer for {name} {record_type}")
    return response.answer[0][0].to_text().strip()

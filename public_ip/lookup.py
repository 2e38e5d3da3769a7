"""Public entry points: per-family pipelines and the dual-family combinator."""
from __future__ import annotations
import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from . import dns_query, https_query
from .cancellation import CancelSignal, run_cancellable
from .config import AddressFamily, DnsTarget, HttpsTarget, Options, dns_targets, https_targets, merge_options
from .race import IpNotFoundError, first_valid

logger = logging.getLogger(__name__)


class Stage(Enum):
    TRY_PRIMARY = "dns"
    TRY_FALLBACK = "https"
    DONE = "done"


async def _race_dns(family: AddressFamily, signal: Optional[CancelSignal]) -> str:
    async def query(target: DnsTarget) -> str:
        # module attribute lookup so tests can patch public_ip.dns_query.query_dns
        response = await dns_query.query_dns(target.server, target.name, target.record_type, signal)
        return target.transform(response) if target.transform else response

    return await first_valid(dns_targets(family), query, family, signal)


async def _race_https(family: AddressFamily, options: Options, signal: Optional[CancelSignal]) -> str:
    async def query(target: HttpsTarget) -> str:
        return await https_query.query_https(target.url, signal)

    return await first_valid(https_targets(family, options), query, family, signal)


async def _resolve(family: AddressFamily, options: Options, signal: Optional[CancelSignal]) -> str:
    """DNS first, then HTTPS once the whole DNS race is exhausted.

    Only the HTTPS race's failure reaches the caller.
    """
    stage = Stage.TRY_FALLBACK if options.only_https else Stage.TRY_PRIMARY
    ip = ""
    while stage is not Stage.DONE:
        if stage is Stage.TRY_PRIMARY:
            try:
                ip = await _race_dns(family, signal)
                stage = Stage.DONE
            except IpNotFoundError as e:
                logger.debug("DNS lookup for %s exhausted (%r), falling back to HTTPS", family.value, e.cause)
                stage = Stage.TRY_FALLBACK
        else:
            ip = await _race_https(family, options, signal)
            stage = Stage.DONE
    return ip


async def _lookup(family: AddressFamily, options: Options) -> str:
    return await run_cancellable(lambda signal: _resolve(family, options, signal), options.timeout, options.signal)


async def lookup_v4(options: Options | None = None, **overrides: Any) -> str:
    """Return this host's public IPv4 address.

    Keyword overrides: timeout (ms), signal (CancelSignal), only_https,
    fallback_urls. Raises IpNotFoundError when every candidate fails, or
    the cancellation reason when the timeout or signal fires first.
    """
    return await _lookup(AddressFamily.V4, merge_options(options, **overrides))


async def lookup_v6(options: Options | None = None, **overrides: Any) -> str:
    """Return this host's public IPv6 address. See lookup_v4."""
    return await _lookup(AddressFamily.V6, merge_options(options, **overrides))


async def _either(options: Options, signal: Optional[CancelSignal]) -> str:
    tasks = [asyncio.ensure_future(_resolve(family, options, signal)) for family in AddressFamily]
    first_error: Optional[BaseException] = None
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                error = task.exception()
                if error is None:
                    return task.result()
                if not isinstance(error, IpNotFoundError):
                    raise error
                if first_error is None:
                    first_error = error
    finally:
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    raise first_error


async def lookup_any(options: Options | None = None, **overrides: Any) -> str:
    """Return whichever of the IPv4 or IPv6 address is found first.

    Both pipelines share one timeout/signal. If both fail, the first
    IpNotFoundError observed is raised.
    """
    merged = merge_options(options, **overrides)
    return await run_cancellable(lambda signal: _either(merged, signal), merged.timeout, merged.signal)

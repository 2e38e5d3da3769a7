from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from .cancellation import CancelSignal
from .config import AddressFamily
from .ip import ensure_valid_ip

logger = logging.getLogger(__name__)

Target = TypeVar("Target")


class IpNotFoundError(RuntimeError):
    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("Could not get the public IP address")
        self.cause = cause


async def _checked(query: Callable[[Target], Awaitable[str]], target: Target, family: AddressFamily) -> str:
    return ensure_valid_ip(await query(target), family)


async def first_valid(
    targets: Sequence[Target],
    query: Callable[[Target], Awaitable[str]],
    family: AddressFamily,
    signal: Optional[CancelSignal] = None,
) -> str:
    """Query every target concurrently and return the first valid address.

    A transport success that is not a literal of ``family`` counts as a
    failure. Losers still pending when a winner appears are cancelled and
    awaited. If nothing validates, IpNotFoundError carries the last failure
    observed. A candidate failing with ``signal``'s reason ends the race
    with that reason.
    """
    pending = {asyncio.ensure_future(_checked(query, target, family)): target for target in targets}
    last_error: Optional[BaseException] = None
    try:
        while pending:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                target = pending.pop(task)
                error = task.exception()
                if error is None:
                    return task.result()
                if signal is not None and error is signal.reason:
                    raise error
                logger.debug("Candidate %s failed: %r", target, error)
                last_error = error
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    logger.debug("All %d %s candidates failed", len(targets), family.value)
    raise IpNotFoundError(cause=last_error) from last_error

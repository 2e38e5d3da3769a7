from __future__ import annotations
import logging
from typing import Optional

import httpx

from .cancellation import CancelSignal
from .config import HTTPS_QUERY_TIMEOUT

logger = logging.getLogger(__name__)


async def query_https(url: str, signal: Optional[CancelSignal] = None) -> str:
    """GET ``url`` with a client owned by this call and return the body, stripped."""
    if signal is not None:
        signal.raise_if_cancelled()
    logger.debug("GET %s", url)
    async with httpx.AsyncClient(timeout=HTTPS_QUERY_TIMEOUT, follow_redirects=True) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text.strip()

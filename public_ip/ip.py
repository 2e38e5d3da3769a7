from __future__ import annotations
import ipaddress

from .config import AddressFamily


class InvalidIpError(ValueError):
    pass


def is_valid_ip(candidate: str | None, family: AddressFamily | str) -> bool:
    """Return True when ``candidate`` is an IP literal of ``family``.

    No resolution or normalisation happens here; surrounding whitespace
    makes the literal invalid.
    """
    if not candidate:
        return False
    address_class = ipaddress.IPv6Address if AddressFamily(family) is AddressFamily.V6 else ipaddress.IPv4Address
    try:
        address_class(candidate)
    except ValueError:
        return False
    return True


def ensure_valid_ip(candidate: str, family: AddressFamily | str) -> str:
    if not is_valid_ip(candidate, family):
        raise InvalidIpError(f"Invalid IP{AddressFamily(family).value} address: {candidate!r}")
    return candidate

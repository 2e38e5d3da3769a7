from .cancellation import CancelSignal, LookupAbortedError, LookupTimeoutError
from .config import AddressFamily, Options
from .ip import InvalidIpError, is_valid_ip
from .lookup import lookup_any, lookup_v4, lookup_v6
from .race import IpNotFoundError

__all__ = [
    "AddressFamily",
    "CancelSignal",
    "InvalidIpError",
    "IpNotFoundError",
    "LookupAbortedError",
    "LookupTimeoutError",
    "Options",
    "is_valid_ip",
    "lookup_any",
    "lookup_v4",
    "lookup_v6",
]

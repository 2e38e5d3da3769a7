from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from dotenv import load_dotenv

ENV_LOADED = False

DNS_QUERY_TIMEOUT = 30.0  # seconds, per resolver
HTTPS_QUERY_TIMEOUT = 30.0  # seconds, per URL


class AddressFamily(str, Enum):
    V4 = "v4"
    V6 = "v6"


@dataclass(frozen=True)
class DnsTarget:
    server: str
    name: str
    record_type: str
    transform: Optional[Callable[[str], str]] = None


@dataclass(frozen=True)
class HttpsTarget:
    url: str


def _strip_quotes(value: str) -> str:
    return value.replace('"', "")


# Resolver groups; each contributes one candidate per server.
DNS_SERVERS: list[dict[AddressFamily, dict[str, Any]]] = [
    {
        AddressFamily.V4: {
            "servers": ["208.67.222.222", "208.67.220.220", "208.67.222.220", "208.67.220.222"],
            "name": "myip.opendns.com",
            "type": "A",
        },
        AddressFamily.V6: {
            "servers": ["2620:0:ccc::2", "2620:0:ccd::2"],
            "name": "myip.opendns.com",
            "type": "AAAA",
        },
    },
    {
        AddressFamily.V4: {
            "servers": ["216.239.32.10", "216.239.34.10", "216.239.36.10", "216.239.38.10"],
            "name": "o-o.myaddr.l.google.com",
            "type": "TXT",
            "transform": _strip_quotes,
        },
        AddressFamily.V6: {
            "servers": [
                "2001:4860:4802:32::a",
                "2001:4860:4802:34::a",
                "2001:4860:4802:36::a",
                "2001:4860:4802:38::a",
            ],
            "name": "o-o.myaddr.l.google.com",
            "type": "TXT",
            "transform": _strip_quotes,
        },
    },
]

HTTPS_URLS: dict[AddressFamily, list[str]] = {
    AddressFamily.V4: ["https://icanhazip.com/", "https://api.ipify.org/"],
    AddressFamily.V6: ["https://icanhazip.com/", "https://api6.ipify.org/"],
}


@dataclass(frozen=True)
class Options:
    timeout: float | None = None  # milliseconds; None or 0 disables the overall timeout
    signal: Any = None  # CancelSignal
    only_https: bool | None = None
    fallback_urls: Sequence[str] | None = None


DEFAULTS = Options(timeout=None, signal=None, only_https=False, fallback_urls=())


def merge_options(options: Options | None = None, **overrides: Any) -> Options:
    """Shallow-merge caller options over DEFAULTS.

    Fields left as None keep the default. Keyword overrides win over
    ``options``; an unknown keyword raises TypeError.
    """
    merged = DEFAULTS
    if options is not None:
        merged = replace(merged, **{f.name: getattr(options, f.name) for f in fields(options) if getattr(options, f.name) is not None})
    given = {k: v for k, v in overrides.items() if v is not None}
    if given:
        merged = replace(merged, **given)
    return replace(merged, fallback_urls=tuple(merged.fallback_urls or ()))


def dns_targets(family: AddressFamily) -> list[DnsTarget]:
    targets: list[DnsTarget] = []
    for group in DNS_SERVERS:
        question = group[family]
        for server in question["servers"]:
            targets.append(DnsTarget(server, question["name"], question["type"], question.get("transform")))
    return targets


def https_targets(family: AddressFamily, options: Options) -> list[HttpsTarget]:
    urls = [*HTTPS_URLS[family], *(options.fallback_urls or ())]
    return [HttpsTarget(url) for url in urls]


def load_env(path: str | None = None) -> None:
    global ENV_LOADED
    if ENV_LOADED:
        return
    load_dotenv(dotenv_path=path)  # will silently ignore if not exists
    ENV_LOADED = True


def _parse_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def load_options(env_path: str | None = None) -> Options:
    """Build Options from the environment (and an optional .env file).

    Recognised variables:
    - PUBLIC_IP_TIMEOUT: overall timeout in milliseconds
    - PUBLIC_IP_ONLY_HTTPS: skip DNS lookups when truthy
    - PUBLIC_IP_FALLBACK_URLS: comma-separated extra HTTPS endpoints
    """
    load_env(env_path)
    timeout_env = os.getenv("PUBLIC_IP_TIMEOUT") or None
    try:
        timeout = int(timeout_env) if timeout_env else None
    except ValueError:
        raise ValueError(f"PUBLIC_IP_TIMEOUT must be an integer number of milliseconds, got {timeout_env!r}") from None
    if timeout is not None and timeout < 0:
        raise ValueError("PUBLIC_IP_TIMEOUT must not be negative")

    return Options(
        timeout=timeout,
        only_https=_parse_bool(os.getenv("PUBLIC_IP_ONLY_HTTPS")),
        fallback_urls=tuple(_split_csv(os.getenv("PUBLIC_IP_FALLBACK_URLS"))),
    )

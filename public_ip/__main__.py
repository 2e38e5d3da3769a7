from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from .cancellation import LookupAbortedError
from .config import Options, load_options
from .lookup import lookup_any, lookup_v4, lookup_v6
from .race import IpNotFoundError

LOOKUPS = {"v4": lookup_v4, "v6": lookup_v6, "any": lookup_any}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Print this host's public IP address")
    p.add_argument("--env", dest="env_path", help="Path to .env file", default=None)
    p.add_argument("--family", choices=sorted(LOOKUPS), default="any", help="Address family to look up (default: any)")
    p.add_argument("--timeout", dest="timeout", type=int, help="Overall timeout in milliseconds")
    p.add_argument("--https-only", dest="only_https", action="store_true", default=None, help="Skip DNS lookups")
    p.add_argument("--fallback-url", dest="fallback_urls", action="append", default=[], help="Extra HTTPS endpoint (repeatable)")
    p.add_argument("--verbose", action="store_true", help="Verbose output")
    return p


def _apply_overrides(options: Options, args: argparse.Namespace) -> Options:
    return replace(
        options,
        timeout=options.timeout if args.timeout is None else args.timeout,
        only_https=options.only_https if args.only_https is None else args.only_https,
        fallback_urls=(*(options.fallback_urls or ()), *args.fallback_urls),
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        options = _apply_overrides(load_options(args.env_path), args)
    except ValueError as e:  # configuration error
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    if options.timeout is not None and options.timeout < 0:
        print("--timeout must not be negative", file=sys.stderr)
        return 2

    if args.verbose:
        print(f"Looking up public IP: family={args.family} timeout={options.timeout} only_https={options.only_https} fallback_urls={list(options.fallback_urls or ())}", file=sys.stderr)

    try:
        ip = asyncio.run(LOOKUPS[args.family](options))
    except KeyboardInterrupt:
        if args.verbose:
            print("Interrupted", file=sys.stderr)
        return 130
    except IpNotFoundError as e:
        print(f"Error: {e} (last error: {e.cause!r})", file=sys.stderr)
        return 1
    except (TimeoutError, LookupAbortedError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(ip)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

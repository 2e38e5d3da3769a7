import asyncio
import time

import pytest

from public_ip import CancelSignal, IpNotFoundError, LookupAbortedError, LookupTimeoutError, lookup_any, lookup_v4, lookup_v6
from public_ip.dns_query import DnsQueryError
from public_ip.ip import InvalidIpError, is_valid_ip

DNS_RECORDS = {
    ("myip.opendns.com", "A"): "203.0.113.10",
    ("myip.opendns.com", "AAAA"): "2001:db8::1",
    ("o-o.myaddr.l.google.com", "TXT"): '"203.0.113.20"',
}

HTTPS_RESPONSES = {
    "https://icanhazip.com/": "203.0.113.10",
    "https://api.ipify.org/": "203.0.113.11",
    "https://api6.ipify.org/": "2001:db8::2",
    "https://ifconfig.co/ip": "198.51.100.1",
}


class FakeNetwork:
    """Stands in for both transports; records calls and cancellations."""

    def __init__(self):
        self.dns_records = dict(DNS_RECORDS)
        self.https_responses = dict(HTTPS_RESPONSES)
        self.stall_dns = False
        self.stall_https = False
        self.dns_calls = []
        self.https_calls = []
        self.cancelled = 0

    async def _stall(self):
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise

    async def query_dns(self, server, name, record_type, signal=None):
        if signal is not None:
            signal.raise_if_cancelled()
        self.dns_calls.append((server, name, record_type))
        await asyncio.sleep(0)
        if self.stall_dns:
            await self._stall()
        try:
            return self.dns_records[(name, record_type)]
        except KeyError:
            raise DnsQueryError("DNS record not found") from None

    async def query_https(self, url, signal=None):
        if signal is not None:
            signal.raise_if_cancelled()
        self.https_calls.append(url)
        await asyncio.sleep(0)
        if self.stall_https:
            await self._stall()
        try:
            return self.https_responses[url]
        except KeyError:
            raise RuntimeError("Mocked network error") from None


@pytest.fixture
def net(monkeypatch):
    fake = FakeNetwork()
    monkeypatch.setattr("public_ip.dns_query.query_dns", fake.query_dns)
    monkeypatch.setattr("public_ip.https_query.query_https", fake.query_https)
    return fake


def test_v4_from_dns(net):
    ip = asyncio.run(lookup_v4())
    assert ip in {"203.0.113.10", "203.0.113.20"}
    assert net.dns_calls
    assert net.https_calls == []


def test_v6_skips_candidates_that_are_not_v6(net):
    # the TXT record holds a v4 literal, so only the AAAA answers may win
    ip = asyncio.run(lookup_v6())
    assert ip == "2001:db8::1"


def test_dns_wins_while_other_candidates_fail(net):
    net.dns_records = {("myip.opendns.com", "A"): "203.0.113.10"}
    net.https_responses = {}
    assert asyncio.run(lookup_v4()) == "203.0.113.10"


def test_falls_back_to_https_when_dns_exhausted(net):
    net.dns_records = {}
    ip = asyncio.run(lookup_v4())
    assert ip in {"203.0.113.10", "203.0.113.11"}
    assert len(net.dns_calls) == 8
    assert net.https_calls


def test_falls_back_when_dns_returns_garbage(net):
    net.dns_records = {key: "invalid-ip-address" for key in DNS_RECORDS}
    net.https_responses = {"https://api6.ipify.org/": "2001:db8::2"}
    assert asyncio.run(lookup_v6()) == "2001:db8::2"


def test_only_https_never_queries_dns(net):
    net.https_responses = {"https://icanhazip.com/": "203.0.113.10"}
    assert asyncio.run(lookup_v4(only_https=True)) == "203.0.113.10"
    assert net.dns_calls == []


def test_only_https_failure_still_skips_dns(net):
    net.https_responses = {}
    with pytest.raises(IpNotFoundError):
        asyncio.run(lookup_v4(only_https=True))
    assert net.dns_calls == []


def test_fallback_urls(net):
    net.https_responses = {"https://ifconfig.co/ip": "192.168.1.1"}
    ip = asyncio.run(lookup_v4(only_https=True, fallback_urls=["https://ifconfig.co/ip"]))
    assert ip == "192.168.1.1"
    assert net.https_calls[-1] == "https://ifconfig.co/ip"


def test_invalid_everywhere_raises_not_found(net):
    net.dns_records = {key: "invalid-ip-address" for key in DNS_RECORDS}
    net.https_responses = {url: "invalid-ip-address" for url in HTTPS_RESPONSES}
    with pytest.raises(IpNotFoundError) as exc:
        asyncio.run(lookup_v4())
    assert str(exc.value) == "Could not get the public IP address"
    # the reported cause comes from the HTTPS race
    assert isinstance(exc.value.cause, InvalidIpError)
    assert exc.value.__cause__ is exc.value.cause


def test_pre_cancelled_signal_issues_no_requests(net):
    signal = CancelSignal()
    signal.cancel()
    with pytest.raises(LookupAbortedError):
        asyncio.run(lookup_v4(signal=signal))
    assert net.dns_calls == []
    assert net.https_calls == []


def test_pre_cancelled_signal_raises_its_reason(net):
    signal = CancelSignal()
    reason = RuntimeError("stop")
    signal.cancel(reason)
    with pytest.raises(RuntimeError) as exc:
        asyncio.run(lookup_any(signal=signal))
    assert exc.value is reason


def test_timeout_applies_to_whole_operation(net):
    net.stall_https = True
    start = time.monotonic()
    with pytest.raises(LookupTimeoutError) as exc:
        asyncio.run(lookup_v4(timeout=5, only_https=True))
    assert time.monotonic() - start < 0.2
    assert isinstance(exc.value, TimeoutError)
    assert not isinstance(exc.value, IpNotFoundError)
    assert net.cancelled == len(net.https_calls) == 2


def test_timeout_during_dns_stage(net):
    net.stall_dns = True
    with pytest.raises(LookupTimeoutError):
        asyncio.run(lookup_v6(timeout=5))
    assert net.https_calls == []
    assert net.cancelled == len(net.dns_calls)


def test_signal_fired_mid_flight(net):
    net.stall_dns = True
    signal = CancelSignal()
    reason = RuntimeError("user aborted")

    async def run():
        asyncio.get_running_loop().call_later(0.01, signal.cancel, reason)
        return await lookup_v4(signal=signal)

    with pytest.raises(RuntimeError) as exc:
        asyncio.run(run())
    assert exc.value is reason
    assert net.cancelled == len(net.dns_calls)


def test_timeout_during_https_fallback(net):
    net.dns_records = {}
    net.stall_https = True
    start = time.monotonic()
    with pytest.raises(LookupTimeoutError):
        asyncio.run(lookup_v4(timeout=5))
    assert time.monotonic() - start < 0.2
    assert len(net.dns_calls) == 8
    assert net.https_calls
    assert net.cancelled == len(net.https_calls)


def test_signal_fired_during_https_fallback(net):
    net.dns_records = {}
    net.stall_https = True
    signal = CancelSignal()
    reason = RuntimeError("user aborted")

    async def run():
        asyncio.get_running_loop().call_later(0.01, signal.cancel, reason)
        return await lookup_v4(signal=signal)

    with pytest.raises(RuntimeError) as exc:
        asyncio.run(run())
    assert exc.value is reason
    assert net.https_calls
    assert net.cancelled == len(net.https_calls)


def test_cancel_reason_is_never_wrapped_in_not_found(net):
    # every candidate fails quickly, so the races can finish in the same
    # few loop iterations in which the signal fires
    net.dns_records = {}
    net.https_responses = {}
    reason = RuntimeError("user abort")

    async def run(ticks):
        signal = CancelSignal()

        async def fire():
            for _ in range(ticks):
                await asyncio.sleep(0)
            signal.cancel(reason)

        firing = asyncio.ensure_future(fire())
        try:
            await lookup_v4(signal=signal)
        except Exception as e:
            return e
        finally:
            await firing

    outcomes = [asyncio.run(run(ticks)) for ticks in range(12)]
    for outcome in outcomes:
        assert outcome is reason or isinstance(outcome, IpNotFoundError)
        if isinstance(outcome, IpNotFoundError):
            assert outcome.cause is not reason
    assert outcomes[0] is reason


def test_earliest_of_timeout_and_signal_wins(net):
    net.stall_dns = True
    signal = CancelSignal()

    async def run():
        asyncio.get_running_loop().call_later(1, signal.cancel)
        return await lookup_v4(timeout=5, signal=signal)

    with pytest.raises(LookupTimeoutError):
        asyncio.run(run())
    assert not signal.cancelled


def test_fast_lookup_beats_timeout(net):
    assert asyncio.run(lookup_v4(timeout=5000)) in {"203.0.113.10", "203.0.113.20"}


def test_any_returns_v6_when_v4_fails(net):
    net.dns_records = {("myip.opendns.com", "AAAA"): "2001:db8::1"}
    net.https_responses = {}
    assert asyncio.run(lookup_any()) == "2001:db8::1"


def test_any_returns_v4_when_v6_fails(net):
    net.dns_records = {("myip.opendns.com", "A"): "203.0.113.10"}
    net.https_responses = {}
    assert asyncio.run(lookup_any()) == "203.0.113.10"


def test_any_returns_a_valid_address(net):
    ip = asyncio.run(lookup_any(timeout=10_000))
    assert is_valid_ip(ip, "v4") or is_valid_ip(ip, "v6")


def test_any_both_fail(net):
    net.dns_records = {}
    net.https_responses = {}
    with pytest.raises(IpNotFoundError) as exc:
        asyncio.run(lookup_any())
    assert exc.value.cause is not None


def test_any_shares_one_timeout(net):
    net.stall_dns = True
    start = time.monotonic()
    with pytest.raises(LookupTimeoutError):
        asyncio.run(lookup_any(timeout=5))
    assert time.monotonic() - start < 0.2
    assert net.cancelled == len(net.dns_calls) == 14

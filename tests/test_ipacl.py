import pytest

from ipgate.ipacl import (
    AddressMatcher,
    ExactAddress,
    MalformedEntry,
    Subnet,
    is_allowed,
    is_in_subnet,
    parse_allowlist,
    parse_entry,
)
from ipgate.resolve import UnresolvableAddress


def make_matcher(reports=None, resolver=None):
    def sink(entry, reason):
        if reports is not None:
            reports.append((entry, reason))

    return AddressMatcher(resolver=resolver, diagnostics=sink)


def test_parse_entry_variants():
    assert parse_entry("10.0.0.1") == ExactAddress("10.0.0.1")
    assert parse_entry("10.0.0.0/8") == Subnet("10.0.0.0", 8)
    assert isinstance(parse_entry("10.0.0.0/xx"), MalformedEntry)
    assert isinstance(parse_entry("10.0.0.0/"), MalformedEntry)
    assert isinstance(parse_entry("/8"), MalformedEntry)
    assert isinstance(parse_entry("10.0.0.0/8/9"), MalformedEntry)
    assert isinstance(parse_entry("10.0.0.0/-1"), MalformedEntry)


def test_parse_entry_rejects_lenient_prefix_forms():
    assert isinstance(parse_entry("10.0.0.0/+8"), MalformedEntry)
    assert isinstance(parse_entry("10.0.0.0/8/"), MalformedEntry)
    assert isinstance(parse_entry("10.0.0.0/8//"), MalformedEntry)
    assert not is_allowed("10.1.2.3", "10.0.0.0/8/")


def test_parse_allowlist_trims_and_skips_empty_tokens():
    entries = parse_allowlist(" 10.0.0.1 ,, 192.168.0.0/16 , ")
    assert entries == [ExactAddress("10.0.0.1"), Subnet("192.168.0.0", 16)]


def test_exact_match_is_textual():
    assert is_allowed("192.168.1.1", "10.0.0.1, 192.168.1.1")
    assert not is_allowed("2001:db8::1", "2001:0db8:0000::1")


def test_empty_allowlist_denies():
    assert not is_allowed("1.2.3.4", "")
    assert not is_allowed("1.2.3.4", " , ")


@pytest.mark.parametrize(
    "base,prefix",
    [("192.168.10.20", 32), ("2001:db8::7", 128)],
)
def test_full_prefix_matches_base(base, prefix):
    assert is_allowed(base, f"{base}/{prefix}")


@pytest.mark.parametrize("ip", ["0.0.0.0", "8.8.8.8", "255.255.255.255", "10.1.2.3"])
def test_zero_prefix_matches_any_ipv4(ip):
    assert is_allowed(ip, "0.0.0.0/0")


def test_families_never_mix():
    assert not is_allowed("::1", "192.168.0.0/16")
    assert not is_allowed("10.0.0.1", "::/0")
    assert not is_allowed("::ffff:10.0.0.1", "10.0.0.0/8")


def test_malformed_entry_does_not_abort_scan():
    reports = []
    matcher = make_matcher(reports)
    assert matcher.is_allowed("10.0.0.5", "not-a-cidr/xx, 10.0.0.0/8")
    assert reports and reports[0][0] == "not-a-cidr/xx"


def test_bit_boundary_inside_octet():
    assert is_allowed("192.168.0.5", "192.168.1.0/23")
    assert is_allowed("192.168.1.200", "192.168.1.0/23")
    assert not is_allowed("192.168.2.5", "192.168.1.0/23")


def test_ipv6_subnet():
    assert is_allowed("2001:db8:abcd::42", "2001:db8::/32")
    assert not is_allowed("2001:db9::1", "2001:db8::/32")
    assert is_in_subnet("fe80::1234", "fe80::/10")
    assert not is_in_subnet("fec0::1", "fe80::/10")


def test_prefix_out_of_range_is_reported_not_matched():
    reports = []
    matcher = make_matcher(reports)
    assert not matcher.is_allowed("10.0.0.1", "10.0.0.0/33")
    assert not matcher.is_allowed("::1", "::/129")
    assert len(reports) == 2
    assert "exceeds 32 bits" in reports[0][1]


def test_unresolvable_addresses_are_reported():
    reports = []
    matcher = make_matcher(reports)
    assert not matcher.is_allowed("10.0.0.1", "example.invalid/24")
    assert not matcher.is_allowed("garbage", "10.0.0.0/8")
    assert [entry for entry, _ in reports] == ["example.invalid/24", "10.0.0.0/8"]


def test_family_mismatch_is_silent():
    reports = []
    matcher = make_matcher(reports)
    assert not matcher.is_allowed("::1", "10.0.0.0/8")
    assert reports == []


def test_is_in_subnet_without_slash_is_malformed():
    reports = []
    matcher = make_matcher(reports)
    assert not matcher.is_in_subnet("10.0.0.1", "10.0.0.1")
    assert reports


def test_failing_diagnostic_sink_does_not_change_result():
    def sink(entry, reason):
        raise RuntimeError("sink down")

    matcher = AddressMatcher(diagnostics=sink)
    assert matcher.is_allowed("10.0.0.5", "bad/xx, 10.0.0.0/8")
    assert not matcher.is_allowed("10.0.0.5", "bad/xx")


def test_custom_resolver_is_used():
    table = {"gateway.lan": bytes([192, 168, 1, 1])}

    def resolver(text):
        if text in table:
            return table[text]
        raise UnresolvableAddress(text)

    matcher = make_matcher(resolver=resolver)
    assert matcher.is_allowed("gateway.lan", "gateway.lan/32")
    assert not matcher.is_allowed("10.0.0.1", "gateway.lan/24")


def test_resolver_errors_never_escape():
    def resolver(text):
        raise ValueError("boom")

    matcher = make_matcher(resolver=resolver)
    assert not matcher.is_allowed("10.0.0.1", "10.0.0.0/8")


def test_repeated_calls_are_stable():
    results = {is_allowed("172.16.5.4", "172.16.0.0/12, bad/1/2") for _ in range(5)}
    assert results == {True}

"""Tests for certwright.models.identifier."""

from __future__ import annotations

import pytest

from certwright.core.errors import InvalidIdentifierError
from certwright.core.types import IdentifierType, ProtocolIdentifierType
from certwright.models.identifier import (
    DnsIdentifier,
    EmailIdentifier,
    Identifier,
    IpIdentifier,
    UnknownIdentifier,
    UpnIdentifier,
)
from certwright.models.protocol import ProtocolIdentifier

# ---------------------------------------------------------------------------
# Equality and de-duplication
# ---------------------------------------------------------------------------


class TestEquality:
    @pytest.mark.parametrize("value", ["Example.COM", "EXAMPLE.com", "example.com", "eXaMpLe.CoM"])
    def test_case_insensitive(self, value):
        assert Identifier.parse(value) == Identifier.parse(value.lower())

    def test_distinct_collapses_casings(self):
        assert len({Identifier.parse("a.com"), Identifier.parse("A.COM")}) == 1

    def test_type_is_part_of_identity(self):
        assert DnsIdentifier("a.com") != UpnIdentifier("a.com")

    def test_not_equal_to_plain_string(self):
        assert DnsIdentifier("a.com") != "a.com"

    def test_ordering_is_case_insensitive(self):
        items = [DnsIdentifier("b.com"), DnsIdentifier("A.com"), DnsIdentifier("c.com")]
        assert [i.value for i in sorted(items)] == ["A.com", "b.com", "c.com"]

    def test_str(self):
        assert str(DnsIdentifier("a.com")) == "DnsName: a.com"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParse:
    def test_dns(self):
        ident = Identifier.parse("www.example.com")
        assert isinstance(ident, DnsIdentifier)
        assert ident.type == IdentifierType.DNS_NAME

    def test_ipv4(self):
        ident = Identifier.parse("192.0.2.1")
        assert isinstance(ident, IpIdentifier)
        assert ident.value == "192.0.2.1"

    def test_ipv6_is_normalized(self):
        assert Identifier.parse("2001:DB8:0:0::1").value == "2001:db8::1"

    def test_hex_ipv4(self):
        assert IpIdentifier("#7f000001").value == "127.0.0.1"

    def test_hex_ipv6(self):
        assert IpIdentifier("#" + "00" * 15 + "01").value == "::1"

    def test_invalid_hex(self):
        with pytest.raises(InvalidIdentifierError):
            IpIdentifier("#zz")

    def test_invalid_ip(self):
        with pytest.raises(InvalidIdentifierError):
            IpIdentifier("not-an-ip")

    def test_invalid_identifier_is_value_error(self):
        with pytest.raises(ValueError):
            IpIdentifier("300.1.1.1")

    def test_empty_dns_rejected(self):
        with pytest.raises(InvalidIdentifierError):
            DnsIdentifier("   ")

    def test_dns_is_stripped(self):
        assert DnsIdentifier("  a.com ").value == "a.com"

    def test_email(self):
        assert EmailIdentifier("user@example.com").value == "user@example.com"

    @pytest.mark.parametrize("value", ["no-at-sign", "John <john@example.com>", "@example.com"])
    def test_invalid_email(self, value):
        with pytest.raises(InvalidIdentifierError):
            EmailIdentifier(value)


class TestParseProtocol:
    def test_dns(self):
        ident = Identifier.parse_protocol(ProtocolIdentifier(ProtocolIdentifierType.DNS, "a.com"))
        assert ident == DnsIdentifier("a.com")

    def test_wildcard_prefix_added(self):
        ident = Identifier.parse_protocol(ProtocolIdentifier("dns", "a.com"), wildcard=True)
        assert ident.value == "*.a.com"
        assert ident.wildcard

    def test_wildcard_not_doubled(self):
        ident = Identifier.parse_protocol(ProtocolIdentifier("dns", "*.a.com"), wildcard=True)
        assert ident.value == "*.a.com"

    def test_ip(self):
        ident = Identifier.parse_protocol(ProtocolIdentifier("ip", "10.0.0.1"))
        assert isinstance(ident, IpIdentifier)

    def test_unknown(self):
        ident = Identifier.parse_protocol(ProtocolIdentifier("permanent-identifier", "abc"))
        assert isinstance(ident, UnknownIdentifier)


# ---------------------------------------------------------------------------
# Unicode / IDNA
# ---------------------------------------------------------------------------


class TestUnicode:
    def test_to_unicode(self):
        assert DnsIdentifier("xn--bcher-kva.example").unicode(True).value == "bücher.example"

    def test_to_ascii(self):
        assert DnsIdentifier("bücher.example").unicode(False).value == "xn--bcher-kva.example"

    def test_wildcard_label_preserved(self):
        assert DnsIdentifier("*.bücher.example").unicode(False).value == "*.xn--bcher-kva.example"

    def test_invalid_punycode_kept(self):
        assert DnsIdentifier("xn--invalid-.example").unicode(True).value == "xn--invalid-.example"

    def test_other_types_return_self(self):
        ip = IpIdentifier("10.0.0.1")
        assert ip.unicode(True) is ip


class TestSerialization:
    @pytest.mark.parametrize(
        "ident",
        [DnsIdentifier("a.com"), IpIdentifier("10.0.0.1"), EmailIdentifier("a@b.com"), UpnIdentifier("u@corp")],
    )
    def test_round_trip_keeps_type(self, ident):
        restored = Identifier.from_dict(ident.to_dict())
        assert type(restored) is type(ident)
        assert restored == ident

    def test_to_dict_shape(self):
        assert IpIdentifier("10.0.0.1").to_dict() == {"type": "IpAddress", "value": "10.0.0.1"}

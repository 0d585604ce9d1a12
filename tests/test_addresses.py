from unittest.mock import patch

import pytest

from mailcomposer.addresses import (
    Address,
    format_address,
    normalize_addresses,
    parse_addresses,
    split_field,
    to_punycode,
)
from mailcomposer.exceptions import InvalidAddressSyntaxError


class TestPunycode:

    def test_unicode_domain(self):
        assert to_punycode("andris@äge.ee") == "andris@xn--ge-uia.ee"

    def test_ascii_unchanged(self):
        assert to_punycode("andris@age.ee") == "andris@age.ee"

    def test_local_part_kept(self):
        assert to_punycode("jõgeva@äge.ee") == "jõgeva@xn--ge-uia.ee"

    def test_no_domain(self):
        assert to_punycode("postmaster") == "postmaster"


class TestParseAddresses:

    def test_name_and_address(self):
        assert parse_addresses("aavik <aavik@node.ee>") == [Address("aavik", "aavik@node.ee")]

    def test_multiple(self):
        assert parse_addresses("a@node.ee, b <b@node.ee>") == [
            Address("", "a@node.ee"),
            Address("b", "b@node.ee"),
        ]

    def test_empty_address_rejected(self):
        with pytest.raises(InvalidAddressSyntaxError):
            parse_addresses("<>")


class TestFormatAddress:

    def test_ascii_name_quoted(self):
        assert format_address(Address("aavik", "aavik@node.ee")) == '"aavik" <aavik@node.ee>'

    def test_quotes_in_name_escaped(self):
        assert format_address(Address('say "hi"', "x@node.ee")) == '"say \\"hi\\"" <x@node.ee>'

    def test_non_ascii_name_encoded(self):
        assert (
            format_address(Address("Jõgeva", "a@node.ee"))
            == "=?UTF-8?Q?J=C3=B5geva?= <a@node.ee>"
        )

    def test_non_ascii_local_part_encoded(self):
        assert format_address(Address("", "jõgeva@äge.ee")) == "=?UTF-8?Q?j=C3=B5geva?=@xn--ge-uia.ee"

    def test_encoded_name_left_unquoted(self):
        assert (
            format_address(Address("=?UTF-8?Q?J=C3=B5geva?=", "a@node.ee"))
            == "=?UTF-8?Q?J=C3=B5geva?= <a@node.ee>"
        )

    def test_name_resembling_encoded_word_quoted(self):
        assert format_address(Address("=?bad", "a@node.ee")) == '"=?bad" <a@node.ee>'


class TestNormalizeAddresses:

    def test_name_is_quoted(self):
        assert normalize_addresses("aavik <aavik@node.ee>").header == '"aavik" <aavik@node.ee>'

    def test_bare_angle_address(self):
        result = normalize_addresses("<aavik@node.ee>")
        assert result.header == "aavik@node.ee"
        assert result.envelope == ("aavik@node.ee",)

    def test_list_input(self):
        result = normalize_addresses(["a@node.ee", "c <c@node.ee>, d@node.ee"])
        assert result.header == 'a@node.ee, "c" <c@node.ee>, d@node.ee'
        assert result.envelope == ("a@node.ee", "c@node.ee", "d@node.ee")

    def test_unicode_domain_in_header_and_envelope(self):
        result = normalize_addresses("andris@äge.ee")
        assert result.header == "andris@xn--ge-uia.ee"
        assert result.envelope == ("andris@xn--ge-uia.ee",)

    def test_canonical_address_is_unchanged(self):
        for value in ("andris@node.ee", '"aavik" <aavik@node.ee>'):
            assert normalize_addresses(value).header == value

    def test_normalized_header_is_stable(self):
        for value in ("Jõgeva <a@node.ee>", "aavik <aavik@node.ee>", "andris@äge.ee"):
            header = normalize_addresses(value).header
            assert normalize_addresses(header).header == header

    def test_long_encoded_name_is_stable(self):
        header = normalize_addresses("Jõgeva Jõgeva Jõgeva Jõgeva Jõgeva Jõgeva <a@node.ee>").header
        assert header.count("=?UTF-8?Q?") > 1
        assert normalize_addresses(header).header == header

    def test_line_breaks_removed(self):
        assert split_field("a@node.ee,\r\nb@node.ee") == ["a@node.ee, b@node.ee"]
        assert normalize_addresses("a@node.ee,\nb@node.ee").header == "a@node.ee, b@node.ee"

    def test_empty_field(self):
        result = normalize_addresses(None)
        assert result.header == ""
        assert result.envelope == ()

    def test_unparseable_passes_through(self, caplog):
        with patch(
            "mailcomposer.addresses.parse_addresses",
            side_effect=InvalidAddressSyntaxError("broken"),
        ):
            result = normalize_addresses(["not really an address"])
        assert result.header == "not really an address"
        assert result.envelope == ()
        assert "unparsed" in caplog.text

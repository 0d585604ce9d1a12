"""
Address Normalizer

Turns human-entered address fields into header display form and bare
envelope addresses. Domains are converted to punycode, non-ASCII display
names and local parts become RFC 2047 encoded words.
"""

import logging
import re
from dataclasses import dataclass
from email.utils import getaddresses
from typing import List, Optional, Tuple, Union

from .config import Settings, settings as default_settings
from .encoding import encode_mime_word, has_non_ascii
from .exceptions import InvalidAddressSyntaxError

logger = logging.getLogger(__name__)

_ADDR_SPEC = re.compile(r"^[^\s<>,;]+$")
_LINE_BREAKS = re.compile(r"\r\n|\r|\n")
_ENCODED_WORDS = re.compile(r"^=\?[^?\s]+\?[QqBb]\?[^?\s]*\?=(?:\s+=\?[^?\s]+\?[QqBb]\?[^?\s]*\?=)*$")


@dataclass(frozen=True)
class Address:
    name: str
    address: str


@dataclass(frozen=True)
class NormalizedAddresses:
    """
    Normalized address field.

    Attributes:
        header: Comma separated display form for the header block
        envelope: Bare addresses with punycode domains, in input order
        addresses: Parsed entries that made it into ``envelope``
    """
    header: str
    envelope: Tuple[str, ...]
    addresses: Tuple[Address, ...]


def split_field(value: Optional[Union[str, List[str]]]) -> List[str]:
    """Flatten an address field into non-empty strings, line breaks removed."""
    if not value:
        return []
    items = [value] if isinstance(value, str) else list(value)
    cleaned = [_LINE_BREAKS.sub(" ", item).strip() for item in items if item]
    return [item for item in cleaned if item]


def parse_addresses(value: str) -> List[Address]:
    """
    Parse one address string which may hold several comma separated entries.

    Raises:
        InvalidAddressSyntaxError: If any entry has no usable address
    """
    parsed = getaddresses([value])
    if not parsed:
        raise InvalidAddressSyntaxError(f"No address found in {value!r}")

    result = []
    for name, address in parsed:
        address = address.strip()
        if not address or not _ADDR_SPEC.match(address):
            raise InvalidAddressSyntaxError(f"Cannot parse address {value!r}")
        result.append(Address(name=name.strip(), address=address))
    return result


def to_punycode(address: str) -> str:
    """
    Convert the domain of ``address`` to its IDNA form.

    The local part is left as is. Addresses without a domain, or with a
    domain the codec rejects, are returned unchanged.
    """
    local, sep, domain = address.rpartition("@")
    if not sep or not has_non_ascii(domain):
        return address
    try:
        domain = domain.encode("idna").decode("ascii")
    except UnicodeError as e:
        logger.warning("Cannot convert domain %s to punycode: %s", domain, e)
        return address
    return f"{local}@{domain}"


def _quote_name(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_address(entry: Address, settings: Optional[Settings] = None) -> str:
    """Render a single parsed address for a header."""
    settings = settings or default_settings
    address = to_punycode(entry.address)

    local, sep, domain = address.rpartition("@")
    if sep and has_non_ascii(local):
        address = f"{encode_mime_word(local, 'Q', settings.mime_word_max_length)}@{domain}"

    if not entry.name:
        return address
    if has_non_ascii(entry.name):
        name = encode_mime_word(entry.name, "Q", settings.mime_word_max_length)
    elif _ENCODED_WORDS.match(entry.name):
        # encoded words are only decoded outside quoted strings
        name = entry.name
    else:
        name = _quote_name(entry.name)
    return f"{name} <{address}>"


def normalize_addresses(
    value: Optional[Union[str, List[str]]],
    settings: Optional[Settings] = None,
) -> NormalizedAddresses:
    """
    Normalize an address field.

    Unparseable entries are passed through to the header unchanged and left
    out of the envelope.

    Args:
        value: Single address string (may be comma separated) or a list of them
        settings: Settings holding the encoded-word limit

    Returns:
        NormalizedAddresses with header and envelope forms
    """
    settings = settings or default_settings
    display = []
    envelope = []
    entries = []

    for item in split_field(value):
        try:
            parsed = parse_addresses(item)
        except InvalidAddressSyntaxError as e:
            logger.warning("Passing address through unparsed: %s", e)
            display.append(item)
            continue

        for entry in parsed:
            display.append(format_address(entry, settings))
            envelope.append(to_punycode(entry.address))
            entries.append(entry)

    return NormalizedAddresses(
        header=", ".join(display),
        envelope=tuple(envelope),
        addresses=tuple(entries),
    )

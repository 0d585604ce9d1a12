"""
Header Formatter

Canonical header names, ordered multi-value header lists and the
rendering of header blocks: sanitising, RFC 2047 word encoding of
non-ASCII values and folding of long lines.
"""

import re
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .config import Settings, settings as default_settings
from .encoding import encode_mime_word, has_non_ascii
from .models import PreparedHeader

HeaderPair = Tuple[str, Union[str, PreparedHeader]]

_WORD_START = re.compile(r"^\S|[-\s]\S")
_MIME_PREFIX = re.compile(r"^mime-", re.IGNORECASE)
_LINE_BREAKS = re.compile(r"\r\n|\r|\n")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_FOLD_TOKENS = re.compile(r"\s*\S+")


def normalize_key(key: str) -> str:
    """
    Capitalize every dash separated word of a header name.

    ``x-mailer`` becomes ``X-Mailer``; a leading ``MIME-`` keeps its case.
    """
    key = _WORD_START.sub(lambda m: m.group(0).upper(), (key or "").strip().lower())
    return _MIME_PREFIX.sub("MIME-", key)


def sanitize_value(value: str) -> str:
    """Replace line breaks with spaces and drop other control characters."""
    return _CONTROL_CHARS.sub("", _LINE_BREAKS.sub(" ", value)).strip()


class HeaderList:
    """Ordered header collection that keeps every value of repeated names."""

    def __init__(self, pairs: Optional[Iterable[HeaderPair]] = None):
        self._pairs: List[HeaderPair] = []
        for name, value in pairs or ():
            self.add(name, value)

    def add(self, name: str, value) -> None:
        """Append a value; lists add one line per item, empty values are ignored."""
        key = normalize_key(name)
        if not key or value is None:
            return

        if isinstance(value, (list, tuple)):
            for item in value:
                self.add(key, item)
            return

        if isinstance(value, PreparedHeader):
            if value.value:
                self._pairs.append((key, value))
            return

        value = str(value).strip()
        if value:
            self._pairs.append((key, value))

    def remove(self, name: str) -> None:
        key = normalize_key(name)
        self._pairs = [pair for pair in self._pairs if pair[0] != key]

    def get(self, name: str) -> Union[str, List[str]]:
        key = normalize_key(name)
        values = [
            value.value if isinstance(value, PreparedHeader) else value
            for header_name, value in self._pairs
            if header_name == key
        ]
        if not values:
            return ""
        return values[0] if len(values) == 1 else values

    def items(self) -> List[HeaderPair]:
        return list(self._pairs)

    def __contains__(self, name: str) -> bool:
        key = normalize_key(name)
        return any(header_name == key for header_name, _ in self._pairs)

    def __iter__(self) -> Iterator[HeaderPair]:
        return iter(list(self._pairs))

    def __len__(self) -> int:
        return len(self._pairs)


def fold_header(name: str, value: str, max_length: int = 76) -> str:
    """
    Render ``Name: value`` folded at whitespace.

    Continuation lines begin with the whitespace that preceded the token
    moved to them, so unfolding restores the original value. A single
    token longer than the limit stays on its own line unbroken.

    Returns:
        The folded header without a trailing line break
    """
    tokens = _FOLD_TOKENS.findall(value)
    if not tokens:
        return f"{name}: "

    lines = []
    current = f"{name}: {tokens[0].lstrip()}"
    for token in tokens[1:]:
        if len(current) + len(token) > max_length:
            lines.append(current)
            current = token
        else:
            current += token
    lines.append(current)
    return "\r\n".join(lines)


def render_value(value: str, max_word_length: int = 75) -> str:
    """Sanitise a header value and word-encode it when it is not ASCII."""
    value = sanitize_value(value)
    if has_non_ascii(value):
        value = encode_mime_word(value, "Q", max_word_length)
    return value


def format_header_lines(
    pairs: Iterable[HeaderPair], settings: Optional[Settings] = None
) -> List[str]:
    settings = settings or default_settings
    lines = []
    for name, value in pairs:
        if isinstance(value, PreparedHeader):
            lines.append(f"{name}: {value.value}")
            continue
        # the first encoded word shares its line with "Name: "
        word_length = min(settings.mime_word_max_length, settings.header_fold_length - len(name) - 2)
        value = render_value(value, word_length)
        lines.append(fold_header(name, value, settings.header_fold_length))
    return lines


def format_headers(pairs: Iterable[HeaderPair], settings: Optional[Settings] = None) -> bytes:
    """
    Render a complete header block.

    Args:
        pairs: Ordered (name, value) pairs, names already normalised
        settings: Settings holding fold and encoded-word limits

    Returns:
        CRLF separated header lines terminated by an empty line
    """
    lines = format_header_lines(pairs, settings)
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def merge_root_headers(
    node_headers: Sequence[HeaderPair], top_headers: Sequence[HeaderPair]
) -> List[HeaderPair]:
    """
    Combine the root part's headers with the message headers.

    Content-Type leads, the message headers follow, then the rest of the
    part headers and finally MIME-Version.
    """
    content_type = [pair for pair in node_headers if pair[0] == "Content-Type"]
    rest = [pair for pair in node_headers if pair[0] != "Content-Type"]
    return content_type + list(top_headers) + rest + [("MIME-Version", "1.0")]

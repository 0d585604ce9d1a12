"""
Transfer Encoding

Selects and applies the Content-Transfer-Encoding of a part body and
produces RFC 2047 encoded words for header values.

Selection policy when no encoding is requested:
- 7bit when every byte is ASCII and no line exceeds max_line_length
- base64 when the share of non-text bytes exceeds binary_ratio_threshold
- quoted-printable otherwise
"""

import base64
import binascii
import logging
import re
from email.charset import ALIASES as CHARSET_ALIASES
from typing import Callable, Dict, Optional, Tuple, Union

from .config import Settings, settings as default_settings
from .exceptions import UnsupportedEncodingError

logger = logging.getLogger(__name__)

SEVEN_BIT = "7bit"
QUOTED_PRINTABLE = "quoted-printable"
BASE64 = "base64"

SUPPORTED_ENCODINGS = (SEVEN_BIT, QUOTED_PRINTABLE, BASE64)

_BASE64_LINE = 76
_LINE_BREAK = re.compile(rb"\r?\n")
_TEXT_CONTROLS = frozenset(b"\t\n\r\f")
_Q_SAFE = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!*+-/"
)


def has_non_ascii(value: Union[str, bytes]) -> bool:
    """Check for characters outside 7-bit ASCII."""
    if isinstance(value, bytes):
        return any(b > 0x7F for b in value)
    return any(ord(c) > 0x7F for c in value)


def normalize_encoding(name: str) -> str:
    """
    Validate a requested transfer encoding.

    Raises:
        UnsupportedEncodingError: If the name is not 7bit, quoted-printable or base64
    """
    normalized = (name or "").strip().lower()
    if normalized not in SUPPORTED_ENCODINGS:
        raise UnsupportedEncodingError(
            f"Unsupported transfer encoding: {name!r}. "
            f"Use one of: {', '.join(SUPPORTED_ENCODINGS)}"
        )
    return normalized


def is_seven_bit(data: bytes, max_line_length: int = 998) -> bool:
    """True when ``data`` can travel unencoded in a 7bit body."""
    if any(b > 0x7F or b == 0 for b in data):
        return False
    return all(len(line) <= max_line_length for line in _LINE_BREAK.split(data))


def binary_ratio(data: bytes) -> float:
    """Share of bytes that do not belong in text."""
    if not data:
        return 0.0
    try:
        data.decode("utf-8")
        utf8 = True
    except UnicodeDecodeError:
        utf8 = False

    suspicious = 0
    for b in data:
        if (b < 0x20 and b not in _TEXT_CONTROLS) or b == 0x7F:
            suspicious += 1
        elif b > 0x7F and not utf8:
            suspicious += 1
    return suspicious / len(data)


def detect_transfer_encoding(data: bytes, settings: Optional[Settings] = None) -> str:
    settings = settings or default_settings
    if is_seven_bit(data, settings.max_line_length):
        return SEVEN_BIT
    if binary_ratio(data) > settings.binary_ratio_threshold:
        return BASE64
    return QUOTED_PRINTABLE


def encode_seven_bit(data: bytes) -> bytes:
    return _LINE_BREAK.sub(b"\r\n", data)


def encode_quoted_printable(data: bytes) -> bytes:
    """RFC 2045 quoted-printable with CRLF hard and soft line breaks."""
    lines = _LINE_BREAK.split(data)
    encoded = [binascii.b2a_qp(line, quotetabs=False, istext=False) for line in lines]
    # b2a_qp emits bare LF soft breaks for input without line endings
    return b"\r\n".join(line.replace(b"\n", b"\r\n") for line in encoded)


def encode_base64(data: bytes) -> bytes:
    encoded = base64.b64encode(data)
    return b"\r\n".join(
        encoded[i:i + _BASE64_LINE] for i in range(0, len(encoded), _BASE64_LINE)
    )


_ENCODERS: Dict[str, Callable[[bytes], bytes]] = {
    SEVEN_BIT: encode_seven_bit,
    QUOTED_PRINTABLE: encode_quoted_printable,
    BASE64: encode_base64,
}


def encode_body(
    content: Union[str, bytes],
    requested: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Tuple[str, bytes]:
    """
    Encode a part body for transport.

    Args:
        content: Text (encoded as UTF-8) or raw bytes
        requested: Explicit transfer encoding, or None to auto-detect
        settings: Settings holding the detection thresholds

    Returns:
        Tuple of (transfer encoding name, encoded body)

    Raises:
        UnsupportedEncodingError: If ``requested`` is not a supported encoding
    """
    settings = settings or default_settings
    data = content.encode("utf-8") if isinstance(content, str) else bytes(content)

    if requested:
        encoding = normalize_encoding(requested)
        if encoding == SEVEN_BIT and not is_seven_bit(data, settings.max_line_length):
            logger.warning("7bit requested for 8-bit content, using quoted-printable instead")
            encoding = QUOTED_PRINTABLE
    else:
        encoding = detect_transfer_encoding(data, settings)

    return encoding, _ENCODERS[encoding](data)


def decode_source(content: Union[str, bytes], encoding: Optional[str] = None) -> bytes:
    """
    Turn declared content into bytes.

    String content may be base64, hex or any Python text codec. Content that
    fails to decode is used as UTF-8 text instead.
    """
    if isinstance(content, bytes):
        return content

    name = (encoding or "utf-8").strip().lower().replace("_", "-")
    try:
        if name == "base64":
            return base64.b64decode(content, validate=False)
        if name == "hex":
            return bytes.fromhex(content)
        return content.encode(name)
    except (LookupError, ValueError, binascii.Error) as e:
        logger.warning("Cannot decode content declared as %s, using UTF-8: %s", encoding, e)
        return content.encode("utf-8")


def source_charset(content: Union[str, bytes], encoding: Optional[str], data: bytes) -> Optional[str]:
    """
    Charset of ``data`` as produced by decode_source, when the declaration names one.

    None means the declaration says nothing about the charset (bytes content,
    base64, hex, no codec) or decoding fell back to UTF-8.
    """
    if isinstance(content, bytes) or not encoding:
        return None
    name = encoding.strip().lower().replace("_", "-")
    if name in ("base64", "hex") or data == content.encode("utf-8"):
        return None
    return CHARSET_ALIASES.get(name, name)


def _encode_word_text(data: bytes, encoding: str) -> str:
    if encoding == "B":
        return base64.b64encode(data).decode("ascii")

    out = []
    for b in data:
        if b == 0x20:
            out.append("_")
        elif b in _Q_SAFE:
            out.append(chr(b))
        else:
            out.append(f"={b:02X}")
    return "".join(out)


def encode_mime_word(
    value: str,
    encoding: str = "Q",
    max_length: Optional[int] = None,
    charset: str = "UTF-8",
) -> str:
    """
    Encode a header fragment as RFC 2047 encoded words.

    ASCII-only values are returned unchanged. With ``max_length`` the value
    is split into several space separated words, never inside a character.
    """
    if not has_non_ascii(value):
        return value

    encoding = (encoding or "Q").upper()
    if encoding not in ("Q", "B"):
        raise UnsupportedEncodingError(f"Unsupported encoded-word encoding: {encoding}")

    prefix = f"=?{charset}?{encoding}?"
    if max_length is None:
        return f"{prefix}{_encode_word_text(value.encode('utf-8'), encoding)}?="

    budget = max(max_length - len(prefix) - 2, 12)
    chunks = []
    current = ""
    for char in value:
        candidate = current + char
        if current and len(_encode_word_text(candidate.encode("utf-8"), encoding)) > budget:
            chunks.append(current)
            current = char
        else:
            current = candidate
    chunks.append(current)

    return " ".join(
        f"{prefix}{_encode_word_text(chunk.encode('utf-8'), encoding)}?=" for chunk in chunks
    )

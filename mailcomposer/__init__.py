"""
mailcomposer

Builds MIME e-mail messages from a declarative description and
serializes them in SMTP wire format.
"""

from .addresses import NormalizedAddresses, normalize_addresses, to_punycode
from .boundary import BoundaryGenerator
from .builder import MimeTreeBuilder
from .composer import MailComposer, compose
from .config import Settings, get_settings
from .content_types import detect_mime_type
from .encoding import detect_transfer_encoding, encode_body, encode_mime_word
from .exceptions import (
    AttachmentResolveError,
    InvalidAddressSyntaxError,
    MailComposerError,
    TransportError,
    TreeInvariantError,
    UnresolvedAttachmentError,
    UnsupportedEncodingError,
)
from .headers import HeaderList, fold_header, format_headers, normalize_key
from .models import Attachment, BodyPart, MessageDescription, PreparedHeader
from .nodes import CompiledMessage, ContentNode, Envelope, MultipartNode
from .resolver import resolve_attachments
from .serializer import MessageStream, StreamState, iter_message, serialize
from .transport import send_message

__version__ = "1.0.0"

__all__ = [
    "MailComposer",
    "compose",
    "MimeTreeBuilder",
    "MessageDescription",
    "BodyPart",
    "Attachment",
    "PreparedHeader",
    "CompiledMessage",
    "ContentNode",
    "MultipartNode",
    "Envelope",
    "MessageStream",
    "StreamState",
    "iter_message",
    "serialize",
    "HeaderList",
    "fold_header",
    "format_headers",
    "normalize_key",
    "encode_body",
    "detect_transfer_encoding",
    "encode_mime_word",
    "normalize_addresses",
    "NormalizedAddresses",
    "to_punycode",
    "BoundaryGenerator",
    "detect_mime_type",
    "resolve_attachments",
    "send_message",
    "Settings",
    "get_settings",
    "MailComposerError",
    "UnsupportedEncodingError",
    "InvalidAddressSyntaxError",
    "TreeInvariantError",
    "AttachmentResolveError",
    "UnresolvedAttachmentError",
    "TransportError",
]

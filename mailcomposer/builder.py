"""
MIME Tree Builder

Decides the multipart structure of a message and builds its node tree.

Structure rules:
- text, watch-html, html, calendar and extra alternatives form the
  alternative block (multipart/alternative when there is more than one)
- attachments with a Content-ID are related to the alternative block
  (multipart/related); without any alternative they become regular
  attachments
- regular attachments wrap everything in multipart/mixed
- a container is only created for two or more children
"""

import logging
import posixpath
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, List, Optional, Tuple, Union
from uuid import uuid4

from .addresses import NormalizedAddresses, normalize_addresses
from .boundary import BoundaryGenerator
from .config import Settings, settings as default_settings
from .content_types import detect_mime_type, is_text_type
from .encoding import BASE64, decode_source, encode_body, encode_mime_word, has_non_ascii, source_charset
from .exceptions import UnresolvedAttachmentError
from .headers import HeaderList, HeaderPair, normalize_key, sanitize_value
from .models import Attachment, BodyPart, MessageDescription, PreparedHeader
from .nodes import CompiledMessage, ContentNode, Envelope, MultipartNode, Node, walk

logger = logging.getLogger(__name__)

# (header name, description attribute)
ADDRESS_FIELDS = (
    ("From", "from_"),
    ("To", "to"),
    ("Cc", "cc"),
    ("Bcc", "bcc"),
    ("Reply-To", "reply_to"),
)

STRUCTURAL_HEADERS = ("Content-Type", "Content-Transfer-Encoding", "MIME-Version")
ATTACHMENT_HEADERS = ("Content-Type", "Content-Transfer-Encoding", "Content-Disposition", "Content-Id")


def format_message_id(value: str) -> str:
    value = sanitize_value(value)
    if value.startswith("<") and value.endswith(">"):
        return value
    return f"<{value}>"


def format_date(value: Union[datetime, str, None]) -> str:
    """RFC 2822 date; naive datetimes are taken as UTC."""
    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return format_datetime(value)
    return sanitize_value(value)


def _unwrap(value) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, PreparedHeader):
        return value.value
    return value


def _with_charset(content_type: str, data: bytes, charset: Optional[str] = None) -> str:
    if not is_text_type(content_type) or "charset=" in content_type.lower():
        return content_type
    if not has_non_ascii(data):
        return content_type
    if charset is None:
        try:
            data.decode("utf-8")
        except UnicodeDecodeError:
            return content_type
        charset = "utf-8"
    return f"{content_type}; charset={charset}"


def _has_content(part: Optional[BodyPart]) -> bool:
    return part is not None and len(part.content) > 0


class MimeTreeBuilder:
    """
    Builds one CompiledMessage from a MessageDescription.

    Every call to build() starts a fresh boundary sequence, so a fixed
    base_boundary yields byte-identical trees.
    """

    def __init__(
        self,
        description: MessageDescription,
        *,
        keep_bcc: bool = False,
        settings: Optional[Settings] = None,
    ):
        self.description = description
        self.keep_bcc = keep_bcc
        self.settings = settings or default_settings

    def build(self) -> CompiledMessage:
        """
        Build the node tree, top-level headers and envelope.

        Raises:
            UnsupportedEncodingError: If a part requests an unknown transfer encoding
            UnresolvedAttachmentError: If an attachment still points at a path or URL
        """
        addresses = {
            name: normalize_addresses(getattr(self.description, attr), self.settings)
            for name, attr in ADDRESS_FIELDS
        }
        envelope = self.build_envelope(addresses)

        boundaries = BoundaryGenerator(
            self.description.base_boundary, self.settings.boundary_prefix
        )
        root = self.build_tree(boundaries)
        message_id, headers = self.build_headers(addresses)

        logger.debug(
            "Built %s message with %d nodes for %d recipients",
            root.content_type,
            sum(1 for _ in walk(root)),
            len(envelope.to),
        )
        return CompiledMessage(
            root=root,
            headers=tuple(headers),
            envelope=envelope,
            message_id=message_id,
        )

    def build_envelope(self, addresses: Dict[str, NormalizedAddresses]) -> Envelope:
        senders = addresses["From"].envelope
        recipients = []
        for name in ("To", "Cc", "Bcc"):
            for address in addresses[name].envelope:
                if address not in recipients:
                    recipients.append(address)
        return Envelope(from_=senders[0] if senders else None, to=tuple(recipients))

    # Tree

    def build_tree(self, boundaries: BoundaryGenerator) -> Node:
        attachments: List[Tuple[ContentNode, bool]] = []
        for attachment in self.description.attachments:
            node = self.attachment_node(attachment)
            if node is not None:
                attachments.append((node, bool(attachment.cid)))

        alternatives = self.alternative_nodes()
        if len(alternatives) > 1:
            block: Optional[Node] = self.multipart("alternative", alternatives, boundaries)
        elif alternatives:
            block = alternatives[0]
        else:
            block = None

        related = [node for node, is_related in attachments if is_related]
        if block is not None:
            mixed = [node for node, is_related in attachments if not is_related]
            if related:
                block = self.multipart("related", [block] + related, boundaries)
        else:
            if related:
                logger.debug("No alternative block, %d related attachments become mixed", len(related))
            mixed = [node for node, _ in attachments]

        children = ([block] if block is not None else []) + mixed
        if not children:
            return self.empty_node()
        if len(children) == 1:
            return children[0]
        return self.multipart("mixed", children, boundaries)

    def alternative_nodes(self) -> List[ContentNode]:
        d = self.description
        nodes = []
        if _has_content(d.text):
            nodes.append(self.text_node(d.text, "text/plain", d.text_encoding))
        if _has_content(d.watch_html):
            nodes.append(self.text_node(d.watch_html, "text/watch-html", d.text_encoding))
        if _has_content(d.html):
            nodes.append(self.text_node(d.html, "text/html", d.text_encoding))
        if _has_content(d.ical_event):
            method = (d.ical_event.method or self.settings.default_calendar_method).strip().upper()
            content_type = f"text/calendar; charset=utf-8; method={method}"
            nodes.append(self.text_node(d.ical_event, content_type, None))
        for part in d.alternatives:
            if _has_content(part):
                nodes.append(self.text_node(part, part.content_type or "text/plain", None))
        return nodes

    def multipart(self, subtype: str, children: List[Node], boundaries: BoundaryGenerator) -> MultipartNode:
        boundary = boundaries.next()
        content_type = f"multipart/{subtype}"
        return MultipartNode(
            content_type=content_type,
            boundary=boundary,
            headers=(("Content-Type", f'{content_type}; boundary="{boundary}"'),),
            child_nodes=tuple(children),
        )

    def empty_node(self) -> ContentNode:
        return ContentNode(
            content_type="text/plain",
            transfer_encoding="7bit",
            headers=(("Content-Type", "text/plain"), ("Content-Transfer-Encoding", "7bit")),
            body=b"",
        )

    def raw_node(self, content: Union[str, bytes], encoding: Optional[str], content_type: str) -> ContentNode:
        return ContentNode(
            content_type=content_type,
            transfer_encoding=None,
            headers=(),
            body=decode_source(content, encoding),
            raw=True,
        )

    # Leaves

    def text_node(self, part: BodyPart, content_type: str, default_encoding: Optional[str]) -> ContentNode:
        if part.raw:
            return self.raw_node(part.content, part.encoding, content_type)

        data = decode_source(part.content, part.encoding)
        requested = part.content_transfer_encoding or default_encoding
        transfer_encoding, body = encode_body(data, requested, self.settings)
        content_type = _with_charset(
            content_type, data, source_charset(part.content, part.encoding, data)
        )

        return ContentNode(
            content_type=content_type,
            transfer_encoding=transfer_encoding,
            headers=(
                ("Content-Type", content_type),
                ("Content-Transfer-Encoding", transfer_encoding),
            ),
            body=body,
        )

    def attachment_node(self, attachment: Attachment) -> Optional[ContentNode]:
        if not attachment.is_resolved:
            if attachment.has_source:
                raise UnresolvedAttachmentError(
                    f"Attachment source was not resolved: {attachment.path or attachment.href}"
                )
            logger.warning("Skipping attachment without content")
            return None

        filename = attachment.filename
        if filename is None and attachment.path:
            filename = posixpath.basename(attachment.path)
        content_type = attachment.content_type or detect_mime_type(filename or None)

        if attachment.raw:
            return self.raw_node(attachment.content, attachment.encoding, content_type)

        data = decode_source(attachment.content, attachment.encoding)
        requested = attachment.content_transfer_encoding
        if not requested and not is_text_type(content_type):
            requested = BASE64
        transfer_encoding, body = encode_body(data, requested, self.settings)
        content_type = _with_charset(
            content_type, data, source_charset(attachment.content, attachment.encoding, data)
        )

        disposition = attachment.content_disposition or "attachment"
        if filename:
            disposition += f'; filename="{self.filename_param(filename)}"'

        headers = HeaderList()
        headers.add("Content-Type", content_type)
        headers.add("Content-Transfer-Encoding", transfer_encoding)
        headers.add("Content-Disposition", disposition)
        if attachment.cid:
            headers.add("Content-Id", format_message_id(attachment.cid))

        for name, value in attachment.headers.items():
            if normalize_key(name) in ATTACHMENT_HEADERS:
                logger.warning("Ignoring custom %s header on attachment", normalize_key(name))
                continue
            headers.add(name, value)

        return ContentNode(
            content_type=content_type,
            transfer_encoding=transfer_encoding,
            headers=tuple(headers.items()),
            body=body,
        )

    def filename_param(self, filename: str) -> str:
        filename = sanitize_value(filename)
        if has_non_ascii(filename):
            return encode_mime_word(filename, "Q", self.settings.mime_word_max_length)
        return filename.replace("\\", "\\\\").replace('"', '\\"')

    # Headers

    def build_headers(self, addresses: Dict[str, NormalizedAddresses]) -> Tuple[str, List[HeaderPair]]:
        """
        Top-level headers in their emission order.

        Returns:
            Tuple of (Message-ID, header pairs)
        """
        d = self.description
        custom = HeaderList()
        custom_message_id = None
        custom_date = None

        for name, value in d.headers.items():
            key = normalize_key(name)
            if key in STRUCTURAL_HEADERS:
                logger.warning("Ignoring custom %s header, it is set by the composer", key)
            elif key == "Message-Id":
                custom_message_id = _unwrap(value)
            elif key == "Date":
                custom_date = _unwrap(value)
            elif key == "Bcc" and not self.keep_bcc:
                logger.debug("Leaving custom Bcc header out of the header block")
            else:
                custom.add(key, value)

        headers = HeaderList()
        for name, _ in ADDRESS_FIELDS:
            if name == "Bcc" and not self.keep_bcc:
                continue
            headers.add(name, addresses[name].header)

        if d.subject:
            headers.add("Subject", sanitize_value(d.subject))

        message_id_value = d.message_id or custom_message_id
        if message_id_value:
            message_id = format_message_id(message_id_value)
        else:
            message_id = self.generate_message_id(addresses["From"])
        headers.add("Message-Id", message_id)
        headers.add("Date", format_date(d.date or custom_date))

        return message_id, headers.items() + custom.items()

    def generate_message_id(self, senders: NormalizedAddresses) -> str:
        domain = self.settings.message_id_domain
        if senders.envelope:
            sender_domain = senders.envelope[0].rpartition("@")[2]
            if sender_domain:
                domain = sender_domain
        return f"<{uuid4()}@{domain}>"

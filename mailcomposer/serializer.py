"""
Streaming Serializer

Walks a built node tree depth-first and emits the message as byte chunks.
Everything that can fail happens while building the tree, so emitting
chunks never raises for a well-formed tree.
"""

import enum
import logging
import re
from typing import Iterable, Iterator, List, Optional, Sequence

from .config import Settings, settings as default_settings
from .headers import HeaderPair, format_headers, merge_root_headers
from .nodes import CompiledMessage, ContentNode, MultipartNode, Node

logger = logging.getLogger(__name__)

_DOT_AFTER_NEWLINE = re.compile(rb"\n\.")


class StreamState(enum.Enum):
    INIT = "init"
    HEADERS_EMITTED = "headers_emitted"
    BODY_EMITTED = "body_emitted"
    CHILDREN_EMITTED = "children_emitted"
    CLOSED = "closed"


def root_header_block(root: Node, headers: Sequence[HeaderPair]) -> Optional[List[HeaderPair]]:
    """Merged header block of the root, or None when a raw root replaces the message."""
    if isinstance(root, ContentNode) and root.raw:
        if headers:
            logger.warning("Raw root part replaces the message, dropping %d headers", len(headers))
        return None
    return merge_root_headers(root.headers, headers)


def iter_node(node: Node, headers: Sequence[HeaderPair], settings: Settings) -> Iterator[bytes]:
    """Header block followed by the body of ``node``; raw parts are emitted as is."""
    if isinstance(node, ContentNode) and node.raw:
        yield node.body
        return
    yield format_headers(headers, settings)
    yield from iter_body(node, settings)


def iter_body(node: Node, settings: Settings) -> Iterator[bytes]:
    if isinstance(node, ContentNode):
        if node.body:
            yield node.body
        return

    for index, child in enumerate(node.child_nodes):
        if index == 0:
            yield f"--{node.boundary}\r\n".encode("ascii")
        else:
            yield f"\r\n--{node.boundary}\r\n".encode("ascii")
        yield from iter_node(child, child.headers, settings)
    yield f"\r\n--{node.boundary}--\r\n".encode("ascii")


def escape_dots(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Double every dot that starts a line, including lines split across chunks."""
    line_start = True
    for chunk in chunks:
        if not chunk:
            continue
        chunk = _DOT_AFTER_NEWLINE.sub(b"\n..", chunk)
        if line_start and chunk.startswith(b"."):
            chunk = b"." + chunk
        line_start = chunk.endswith(b"\n")
        yield chunk


def iter_message(
    root: Node,
    headers: Sequence[HeaderPair],
    *,
    escape_smtp: bool = False,
    settings: Optional[Settings] = None,
) -> Iterator[bytes]:
    """
    Serialize a message lazily.

    Args:
        root: Root node of the tree
        headers: Top-level message headers, merged into the root header block
        escape_smtp: Dot-stuff lines for writing straight into SMTP DATA
        settings: Settings holding header formatting limits

    Yields:
        Byte chunks in wire order
    """
    settings = settings or default_settings
    chunks = iter_node(root, root_header_block(root, headers) or (), settings)

    if escape_smtp:
        chunks = escape_dots(chunks)
    yield from chunks


def serialize(
    root: Node,
    headers: Sequence[HeaderPair],
    *,
    escape_smtp: bool = False,
    settings: Optional[Settings] = None,
) -> bytes:
    return b"".join(iter_message(root, headers, escape_smtp=escape_smtp, settings=settings))


class MessageStream:
    """
    Pull-based chunk iterator for a compiled message.

    ``state`` follows INIT -> HEADERS_EMITTED -> BODY_EMITTED or
    CHILDREN_EMITTED -> CLOSED. Stopping early is done by dropping the
    stream or calling close(); nothing needs cleaning up.
    """

    def __init__(
        self,
        compiled: CompiledMessage,
        *,
        escape_smtp: bool = False,
        settings: Optional[Settings] = None,
    ):
        self.compiled = compiled
        self.settings = settings or default_settings
        self.state = StreamState.INIT
        chunks = self._generate()
        self._chunks = escape_dots(chunks) if escape_smtp else chunks

    def _generate(self) -> Iterator[bytes]:
        root = self.compiled.root
        header_block = root_header_block(root, self.compiled.headers)
        if header_block is None:
            self.state = StreamState.BODY_EMITTED
            yield from iter_node(root, (), self.settings)
            return

        self.state = StreamState.HEADERS_EMITTED
        yield format_headers(header_block, self.settings)

        if isinstance(root, MultipartNode):
            yield from iter_body(root, self.settings)
            self.state = StreamState.CHILDREN_EMITTED
        else:
            self.state = StreamState.BODY_EMITTED
            yield from iter_body(root, self.settings)

    def __iter__(self) -> "MessageStream":
        return self

    def __next__(self) -> bytes:
        if self.state is StreamState.CLOSED:
            raise StopIteration
        try:
            return next(self._chunks)
        except StopIteration:
            self.state = StreamState.CLOSED
            raise

    def close(self) -> None:
        self.state = StreamState.CLOSED

    def read(self) -> bytes:
        """Drain the remaining chunks into one buffer."""
        return b"".join(self)

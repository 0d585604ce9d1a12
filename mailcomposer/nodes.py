"""
MIME Tree Nodes

Immutable records produced by the tree builder and consumed by the serializer.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .exceptions import TreeInvariantError
from .headers import HeaderPair, merge_root_headers, normalize_key


@dataclass(frozen=True)
class ContentNode:
    """Single leaf part: headers plus an already encoded body."""
    content_type: str
    transfer_encoding: Optional[str]
    headers: Tuple[HeaderPair, ...]
    body: bytes
    raw: bool = False


@dataclass(frozen=True)
class MultipartNode:
    """Container part whose children are separated by ``boundary``."""
    content_type: str
    boundary: str
    headers: Tuple[HeaderPair, ...]
    child_nodes: Tuple["Node", ...]

    def __post_init__(self) -> None:
        if not self.content_type.startswith("multipart/"):
            raise TreeInvariantError(f"Not a multipart content type: {self.content_type}")
        if len(self.child_nodes) < 2:
            raise TreeInvariantError(
                f"{self.content_type} needs at least 2 children, got {len(self.child_nodes)}"
            )


Node = Union[ContentNode, MultipartNode]


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants depth-first, preorder."""
    yield node
    if isinstance(node, MultipartNode):
        for child in node.child_nodes:
            yield from walk(child)


@dataclass(frozen=True)
class Envelope:
    """SMTP envelope; never serialized into the message itself."""
    from_: Optional[str] = None
    to: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, object]:
        return {"from": self.from_, "to": list(self.to)}


@dataclass(frozen=True)
class CompiledMessage:
    """Result of one tree build: the root node plus top-level headers."""
    root: Node
    headers: Tuple[HeaderPair, ...]
    envelope: Envelope
    message_id: str

    def header_block(self) -> List[HeaderPair]:
        """Headers of the root part exactly as they will be serialized."""
        if isinstance(self.root, ContentNode) and self.root.raw:
            return []
        return merge_root_headers(self.root.headers, self.headers)

    def get_header(self, name: str) -> Union[str, List[str]]:
        """
        Look up a root header.

        Returns "" when absent, the value when there is one, a list otherwise.
        """
        key = normalize_key(name)
        values = [
            getattr(value, "value", value)
            for header_name, value in self.header_block()
            if header_name == key
        ]
        if not values:
            return ""
        return values[0] if len(values) == 1 else values

"""
Mail Composer

Entry point tying the pieces together: validates the description, builds
the tree and serializes it.
"""

import logging
from typing import Any, Dict, Optional, Union

from .builder import MimeTreeBuilder
from .config import Settings, settings as default_settings
from .models import MessageDescription
from .nodes import CompiledMessage, Envelope
from .serializer import MessageStream, iter_message

logger = logging.getLogger(__name__)


class MailComposer:
    """
    Composes one message from a description.

    The description is never mutated. ``keep_bcc`` may be toggled between
    builds; each build compiles a fresh tree.

    Example:
        composer = MailComposer({"from": "a@example.com", "to": "b@example.com", "text": "Hi"})
        raw = composer.build()
    """

    def __init__(
        self,
        description: Union[MessageDescription, Dict[str, Any]],
        *,
        keep_bcc: bool = False,
        escape_smtp: bool = False,
        settings: Optional[Settings] = None,
    ):
        if not isinstance(description, MessageDescription):
            description = MessageDescription.model_validate(description)
        self.description = description
        self.keep_bcc = keep_bcc
        self.escape_smtp = escape_smtp
        self.settings = settings or default_settings
        self._compiled: Optional[CompiledMessage] = None

    def compile(self) -> CompiledMessage:
        compiled = MimeTreeBuilder(
            self.description, keep_bcc=self.keep_bcc, settings=self.settings
        ).build()
        self._compiled = compiled
        return compiled

    def build(self) -> bytes:
        """Compile and serialize the whole message into one buffer."""
        compiled = self.compile()
        message = b"".join(
            iter_message(
                compiled.root,
                compiled.headers,
                escape_smtp=self.escape_smtp,
                settings=self.settings,
            )
        )
        logger.info("Composed message %s (%d bytes)", compiled.message_id, len(message))
        return message

    def stream(self) -> MessageStream:
        """Compile now, then emit the message chunk by chunk as it is pulled."""
        return MessageStream(self.compile(), escape_smtp=self.escape_smtp, settings=self.settings)

    def _last_compiled(self) -> CompiledMessage:
        if self._compiled is None:
            return self.compile()
        return self._compiled

    @property
    def envelope(self) -> Envelope:
        return self._last_compiled().envelope

    @property
    def message_id(self) -> str:
        return self._last_compiled().message_id


def compose(description: Union[MessageDescription, Dict[str, Any]], **options) -> bytes:
    """Build a message in one call; options are passed to MailComposer."""
    return MailComposer(description, **options).build()

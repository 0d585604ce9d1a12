"""
mailcomposer Exceptions
"""


class MailComposerError(Exception):
    """Base exception for message composition failures."""
    pass


class UnsupportedEncodingError(MailComposerError):
    """Requested transfer encoding is not 7bit, quoted-printable or base64."""
    pass


class InvalidAddressSyntaxError(MailComposerError):
    """Address field could not be parsed at all."""
    pass


class TreeInvariantError(MailComposerError):
    """MIME tree was built in a shape the serializer cannot emit."""
    pass


class AttachmentResolveError(MailComposerError):
    """Attachment content could not be read from its source."""
    pass


class UnresolvedAttachmentError(AttachmentResolveError):
    """Attachment still points at a path or URL when the tree is built."""
    pass


class TransportError(MailComposerError):
    """Composed message could not be handed to the SMTP server."""
    pass

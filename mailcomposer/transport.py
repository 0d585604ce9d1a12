"""
SMTP Hand-off

Sends a composed message through an SMTP server with aiosmtplib.
The envelope comes from the composer, never from the header block.
"""

import logging
from typing import Optional

import aiosmtplib

from .composer import MailComposer
from .config import settings as default_settings
from .exceptions import TransportError
from .serializer import serialize

logger = logging.getLogger(__name__)


async def send_message(
    composer: MailComposer,
    *,
    hostname: Optional[str] = None,
    port: Optional[int] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    start_tls: Optional[bool] = None,
    use_tls: Optional[bool] = None,
) -> str:
    """
    Compose and send a message.

    Connection options default to the smtp_* settings.

    Args:
        composer: Composer holding the message description
        hostname: SMTP server host
        port: SMTP server port
        username: Login user; no AUTH is attempted without one
        password: Login password
        start_tls: Upgrade the connection with STARTTLS
        use_tls: Connect with implicit TLS

    Returns:
        Message-ID of the sent message

    Raises:
        TransportError: If the envelope is incomplete or the server rejects the message
    """
    settings = composer.settings or default_settings
    # aiosmtplib dot-stuffs DATA itself, so escape_smtp is not applied here
    compiled = composer.compile()
    message = serialize(compiled.root, compiled.headers, settings=settings)
    envelope = compiled.envelope

    if not envelope.from_:
        raise TransportError("Message has no envelope sender")
    if not envelope.to:
        raise TransportError("Message has no recipients")

    hostname = hostname or settings.smtp_host
    port = port or settings.smtp_port
    username = username if username is not None else settings.smtp_username
    password = password if password is not None else settings.smtp_password

    smtp = aiosmtplib.SMTP(
        hostname=hostname,
        port=port,
        start_tls=settings.smtp_start_tls if start_tls is None else start_tls,
        use_tls=settings.smtp_use_tls if use_tls is None else use_tls,
        timeout=settings.smtp_timeout,
    )

    try:
        await smtp.connect()
        if username:
            await smtp.login(username, password or "")
        await smtp.sendmail(envelope.from_, list(envelope.to), message)
        await smtp.quit()
    except aiosmtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed: %s", e)
        raise TransportError("SMTP authentication failed") from e
    except aiosmtplib.SMTPException as e:
        logger.error("Failed to send message %s: %s", compiled.message_id, e)
        raise TransportError(f"SMTP delivery to {hostname}:{port} failed: {e}") from e
    finally:
        if smtp.is_connected:
            smtp.close()

    logger.info(
        "Message sent: %s, recipients=%d, size=%d bytes",
        compiled.message_id, len(envelope.to), len(message),
    )
    return compiled.message_id

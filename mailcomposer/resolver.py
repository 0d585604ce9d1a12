"""
Attachment Source Resolver

Loads attachment content from files, data: URLs and http(s) URLs before
the message is built, so building itself never does I/O.
"""

import asyncio
import base64
import binascii
import logging
import posixpath
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import unquote, unquote_to_bytes, urlparse

import httpx

from .config import Settings, settings as default_settings
from .content_types import detect_mime_type
from .exceptions import AttachmentResolveError
from .models import Attachment, MessageDescription

logger = logging.getLogger(__name__)


def decode_data_url(url: str) -> Tuple[bytes, Optional[str]]:
    """
    Decode a ``data:`` URL.

    Returns:
        Tuple of (content, media type or None)

    Raises:
        AttachmentResolveError: If the URL is malformed
    """
    header, sep, data = url[len("data:"):].partition(",")
    if not sep:
        raise AttachmentResolveError("Malformed data URL: missing ','")

    params = [p.strip() for p in header.split(";")]
    media_type = params[0] or None

    if any(p.lower() == "base64" for p in params[1:]):
        try:
            return base64.b64decode(unquote(data), validate=False), media_type
        except (binascii.Error, ValueError) as e:
            raise AttachmentResolveError(f"Invalid base64 in data URL: {e}") from e
    return unquote_to_bytes(data), media_type


async def read_file(path: str) -> bytes:
    try:
        return await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        logger.error("Cannot read attachment %s: %s", path, e)
        raise AttachmentResolveError(f"Cannot read attachment file {path}") from e


async def download(url: str, client: httpx.AsyncClient) -> Tuple[bytes, Optional[str]]:
    """
    Fetch an attachment over http(s).

    Returns:
        Tuple of (content, response Content-Type or None)

    Raises:
        AttachmentResolveError: On connection errors, timeouts or non-200 responses
    """
    try:
        response = await client.get(url)
    except httpx.TimeoutException as e:
        logger.error("Attachment download timed out: %s", url)
        raise AttachmentResolveError(f"Timed out fetching {url}") from e
    except httpx.HTTPError as e:
        logger.error("Attachment download failed: %s: %s", url, e)
        raise AttachmentResolveError(f"Cannot fetch {url}") from e

    if response.status_code != 200:
        raise AttachmentResolveError(f"Fetching {url} failed: {response.status_code}")

    logger.debug("Downloaded %d bytes from %s", len(response.content), url)
    return response.content, response.headers.get("content-type")


async def resolve_attachment(attachment: Attachment, client: httpx.AsyncClient) -> Attachment:
    """Return ``attachment`` with its path or href replaced by content."""
    if attachment.is_resolved or not attachment.has_source:
        return attachment

    name = None
    if attachment.path:
        content = await read_file(attachment.path)
        name = posixpath.basename(attachment.path.replace("\\", "/"))
        media_type = None
    else:
        href = attachment.href
        scheme = urlparse(href).scheme.lower()
        if scheme == "data":
            content, media_type = decode_data_url(href)
        elif scheme in ("http", "https"):
            content, media_type = await download(href, client)
            name = posixpath.basename(urlparse(href).path) or None
        else:
            raise AttachmentResolveError(f"Unsupported attachment URL scheme: {scheme or href}")

    update = {"content": content, "encoding": None, "path": None, "href": None}
    if attachment.filename is None and name:
        update["filename"] = unquote(name)
    if attachment.content_type is None:
        filename = update.get("filename") or attachment.filename
        update["content_type"] = media_type or detect_mime_type(filename or None)

    return attachment.model_copy(update=update)


async def resolve_attachments(
    description: MessageDescription,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> MessageDescription:
    """
    Resolve every attachment source of a description.

    Args:
        description: Message description, left unchanged
        client: Optional HTTP client; one is created and closed when omitted
        settings: Settings holding the download timeout

    Returns:
        New MessageDescription whose attachments all carry content

    Raises:
        AttachmentResolveError: If any source cannot be loaded
    """
    settings = settings or default_settings
    pending = [a for a in description.attachments if not a.is_resolved and a.has_source]
    if not pending:
        return description

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.http_timeout, follow_redirects=True)

    try:
        attachments = [await resolve_attachment(a, client) for a in description.attachments]
    finally:
        if owns_client:
            await client.aclose()

    logger.info("Resolved %d attachment sources", len(pending))
    return description.model_copy(update={"attachments": attachments})

"""
Message Description Models

Declarative input accepted by the composer. Both snake_case and the
camelCase keys used by JSON descriptions are accepted.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class PreparedHeader(BaseModel):
    """Header value inserted verbatim, skipping encoding and folding."""
    model_config = ConfigDict(frozen=True)

    value: str
    prepared: bool = True


HeaderValue = Union[PreparedHeader, str, List[Union[PreparedHeader, str]]]
AddressValue = Union[str, List[str]]


class BodyPart(BaseModel):
    """A text, html, calendar or extra alternative body."""
    model_config = ConfigDict(frozen=True)

    content: Union[str, bytes] = ""
    encoding: Optional[str] = None
    content_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("content_type", "contentType")
    )
    content_transfer_encoding: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("content_transfer_encoding", "contentTransferEncoding"),
    )
    method: Optional[str] = None
    raw: bool = False


class Attachment(BaseModel):
    """
    A file attached to the message.

    Exactly one source is expected: inline ``content`` or a ``path``/``href``
    that must be resolved (see ``mailcomposer.resolver``) before building.
    ``filename=False`` suppresses the filename parameter entirely.
    """
    model_config = ConfigDict(frozen=True)

    content: Optional[Union[str, bytes]] = None
    encoding: Optional[str] = None
    path: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("path", "filePath", "file_path")
    )
    href: Optional[str] = None
    filename: Optional[Union[Literal[False], str]] = Field(
        default=None, validation_alias=AliasChoices("filename", "fileName")
    )
    content_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("content_type", "contentType")
    )
    content_disposition: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("content_disposition", "contentDisposition"),
    )
    content_transfer_encoding: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("content_transfer_encoding", "contentTransferEncoding"),
    )
    cid: Optional[str] = None
    headers: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    raw: bool = False

    @model_validator(mode="after")
    def check_single_source(self) -> "Attachment":
        if self.content is not None and (self.path or self.href):
            raise ValueError("attachment takes either content or a path/href source, not both")
        return self

    @property
    def is_resolved(self) -> bool:
        return self.content is not None

    @property
    def has_source(self) -> bool:
        return bool(self.path or self.href)


class MessageDescription(BaseModel):
    """Everything needed to compose one message."""
    model_config = ConfigDict(frozen=True)

    from_: Optional[AddressValue] = Field(
        default=None, validation_alias=AliasChoices("from_", "from", "sender")
    )
    to: Optional[AddressValue] = None
    cc: Optional[AddressValue] = None
    bcc: Optional[AddressValue] = None
    reply_to: Optional[AddressValue] = Field(
        default=None, validation_alias=AliasChoices("reply_to", "replyTo")
    )
    subject: Optional[str] = None

    text: Optional[BodyPart] = None
    html: Optional[BodyPart] = None
    watch_html: Optional[BodyPart] = Field(
        default=None, validation_alias=AliasChoices("watch_html", "watchHtml")
    )
    ical_event: Optional[BodyPart] = Field(
        default=None, validation_alias=AliasChoices("ical_event", "icalEvent")
    )
    alternatives: List[BodyPart] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    headers: Dict[str, HeaderValue] = Field(default_factory=dict)
    message_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("message_id", "messageId")
    )
    date: Optional[Union[datetime, str]] = None
    base_boundary: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("base_boundary", "baseBoundary")
    )
    text_encoding: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("text_encoding", "textEncoding")
    )

    @field_validator("text", "html", "watch_html", "ical_event", mode="before")
    @classmethod
    def wrap_body(cls, v):
        if isinstance(v, (str, bytes)):
            return {"content": v} if v else None
        return v

    @field_validator("alternatives", mode="before")
    @classmethod
    def wrap_alternatives(cls, v):
        if isinstance(v, list):
            return [{"content": item} if isinstance(item, (str, bytes)) else item for item in v]
        return v

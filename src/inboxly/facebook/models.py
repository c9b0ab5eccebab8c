"""Facebook Messenger sync models.

RemoteMessageRecord and AttachmentDescriptor are transient views of Graph API
payloads; they live only for one sync run. NormalizedMessage is the row shape
written to the messages table.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

AttachmentKind = Literal[
    "image",
    "animated_image",
    "video",
    "audio",
    "file",
    "template",
    "sticker",
    "unknown",
]

# Declared types we know how to render; anything else is "unknown"
KNOWN_ATTACHMENT_KINDS: frozenset[str] = frozenset(
    {"image", "animated_image", "video", "audio", "file", "template", "sticker"}
)

MessageType = Literal["TEXT", "IMAGE", "FILE"]


@dataclass(frozen=True)
class Button:
    """Template button (title + optional URL/payload)."""

    title: str | None = None
    url: str | None = None
    payload: str | None = None


@dataclass(frozen=True)
class AttachmentDescriptor:
    """First attachment of a message, tagged by kind.

    kind is always set: it is the declared wire type when present, otherwise
    the inferred one (see facebook.parsing.infer_attachment_kind).
    """

    kind: AttachmentKind
    declared_type: str | None = None
    attachment_id: str | None = None
    mime_type: str | None = None
    name: str | None = None
    url: str | None = None
    file_url: str | None = None
    payload_url: str | None = None
    image_data_url: str | None = None
    image_url: str | None = None
    template_text: str | None = None
    buttons: tuple[Button, ...] = ()
    has_image_data: bool = False
    has_payload: bool = False


@dataclass(frozen=True)
class RemoteMessageRecord:
    """One message as returned by the Graph API conversation messages edge."""

    id: str
    message: str | None = None
    from_id: str | None = None
    to_ids: tuple[str, ...] | None = None
    created_time: datetime | None = None
    attachment: AttachmentDescriptor | None = None
    sticker_url: str | None = None
    has_sticker: bool = False
    shares: Any = None
    raw_attachments: list[dict[str, Any]] | None = None

    @property
    def text(self) -> str:
        """Plain message text stripped, empty string when absent."""
        return (self.message or "").strip()


@dataclass(frozen=True)
class SyncContext:
    """Everything one sync run needs, resolved before any remote call."""

    company_id: str
    conversation_id: str
    psid: str
    page_id: str
    access_token: str = field(repr=False)
    page_name: str | None = None


@dataclass(frozen=True)
class Classification:
    """Coarse type and displayable content for one record."""

    type: MessageType
    content: str


@dataclass(frozen=True)
class Direction:
    """Directionality decision and the rule that produced it."""

    is_from_customer: bool
    reason: str
    ambiguous: bool = False


@dataclass
class NormalizedMessage:
    """Row to be inserted into the messages table."""

    id: str
    conversation_id: str
    type: MessageType
    content: str
    is_from_customer: bool
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    is_read: bool = False

    @property
    def remote_id(self) -> str | None:
        return self.metadata.get("facebookMessageId")

"""Attachment classifier: map a RemoteMessageRecord to (coarse type, content).

Coarse types are TEXT, IMAGE and FILE; video and audio fold into FILE. The
only side effect is the image URL recovery path, which asks the Graph API for
the URL (by attachment id, then by message id) when the listing payload
carried none. Recovery failures are swallowed: the record is still stored,
with whatever URL (possibly empty) is known.
"""

from __future__ import annotations

from typing import Protocol

from inboxly.observability.logging import get_logger
from inboxly.observability.redaction import safe_log_context

from . import content as c
from .graph_client import GraphApiError
from .models import AttachmentDescriptor, Classification, RemoteMessageRecord

logger = get_logger(__name__)


class AttachmentUrlFetcher(Protocol):
    """Recovery lookups; GraphApiClient implements this."""

    def fetch_attachment_url(self, attachment_id: str) -> str | None: ...

    def fetch_message_attachment_url(self, message_id: str) -> str | None: ...


def _first(*values: str | None) -> str:
    for value in values:
        if value:
            return value
    return ""


def _render_template(record: RemoteMessageRecord, att: AttachmentDescriptor) -> str:
    text = att.template_text or record.message or ""
    if att.buttons:
        lines = "\n".join(
            f"{idx}. {btn.title or c.BUTTON_PLACEHOLDER}"
            for idx, btn in enumerate(att.buttons, start=1)
        )
        text += f"\n\n{c.BUTTONS_HEADER}\n{lines}"
    return text or c.TEMPLATE_PLACEHOLDER


def apply_placeholder(classification: Classification, message: str | None) -> Classification:
    """Never let a message be stored with empty content."""
    msg_type, content = classification.type, classification.content

    if not content.strip():
        if message and message.strip():
            content = message.strip()
        elif msg_type == "TEXT":
            content = c.EMPTY_TEXT_PLACEHOLDER

    if msg_type == "IMAGE" and not content:
        content = c.IMAGE_PLACEHOLDER
    elif msg_type == "FILE" and not content:
        content = c.FILE_PLACEHOLDER
    elif msg_type == "TEXT" and not content.strip():
        content = c.TEXT_PLACEHOLDER

    return Classification(type=msg_type, content=content)


class AttachmentClassifier:
    """Classify records; recovery lookups go through url_fetcher.

    Args:
        url_fetcher: Recovery lookups, or None to skip recovery entirely.
    """

    def __init__(self, url_fetcher: AttachmentUrlFetcher | None = None):
        self._url_fetcher = url_fetcher
        self.recovery_attempts = 0
        self.recovered_urls = 0

    def classify(self, record: RemoteMessageRecord) -> Classification:
        return apply_placeholder(self._classify(record), record.message)

    def _classify(self, record: RemoteMessageRecord) -> Classification:
        att = record.attachment
        if att is not None:
            return self._classify_attachment(record, att)

        if record.has_sticker:
            return Classification("IMAGE", record.sticker_url or "")

        if record.shares:
            return Classification("TEXT", record.message if record.text else c.SHARED_CONTENT_PLACEHOLDER)

        return Classification("TEXT", record.message or "")

    def _classify_attachment(
        self, record: RemoteMessageRecord, att: AttachmentDescriptor
    ) -> Classification:
        kind = att.kind
        message = record.message

        if kind == "template" and att.has_payload:
            return Classification("TEXT", _render_template(record, att))

        if kind in ("image", "animated_image"):
            url = _first(att.image_data_url, att.file_url, att.url, att.payload_url, att.image_url)
            if not url:
                url = self._recover_image_url(record, att)
            return Classification("IMAGE", c.compose_content(message, "IMAGE", url))

        if kind == "file":
            url = _first(att.file_url, att.url, att.payload_url, att.name)
            return Classification("FILE", c.compose_content(message, "FILE", url))

        if kind == "video":
            url = _first(att.file_url, att.url, att.payload_url)
            return Classification("FILE", c.compose_content(message, "VIDEO", url))

        if kind == "audio":
            url = _first(att.file_url, att.url, att.payload_url)
            return Classification("FILE", c.compose_content(message, "AUDIO", url))

        if kind == "sticker":
            return Classification("IMAGE", _first(att.url, att.file_url, att.payload_url))

        # unknown, or a template without payload
        if att.image_data_url:
            return Classification("IMAGE", c.compose_content(message, "IMAGE", att.image_data_url))
        url = _first(att.file_url, att.url, att.payload_url)
        return Classification("TEXT", url or message or c.ATTACHMENT_PLACEHOLDER)

    def _recover_image_url(self, record: RemoteMessageRecord, att: AttachmentDescriptor) -> str:
        if self._url_fetcher is None:
            return ""

        lookups = []
        if att.attachment_id:
            lookups.append(("attachment", self._url_fetcher.fetch_attachment_url, att.attachment_id))
        lookups.append(("message", self._url_fetcher.fetch_message_attachment_url, record.id))

        for source, lookup, key in lookups:
            self.recovery_attempts += 1
            try:
                url = lookup(key)
            except GraphApiError as e:
                logger.debug(
                    "image url recovery failed",
                    extra={
                        "extra_fields": safe_log_context(
                            source=source, error_kind=e.kind, status_code=e.status_code
                        )
                    },
                )
                continue
            if url:
                self.recovered_urls += 1
                return url
        return ""

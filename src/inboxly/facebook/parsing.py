"""Parse Graph API message payloads into RemoteMessageRecord.

Graph API attachment shapes vary per message kind and the ``type`` field is
not always present, so the variant is inferred here once and the classifier
only ever looks at AttachmentDescriptor.kind.

Message payload (fields requested by the fetcher):
{
  "id": "m_abc",
  "message": "hello",
  "from": {"id": "PSID"},
  "to": {"data": [{"id": "PAGE_ID"}]},
  "created_time": "2024-03-01T10:15:00+0000",
  "attachments": {"data": [{"id": "...", "type": "image",
                            "image_data": {"url": "..."}, ...}]},
  "sticker": "https://...",
  "shares": {"data": [{"link": "..."}]}
}
"""

from typing import Any

from inboxly.infra.time import parse_graph_time

from .models import (
    KNOWN_ATTACHMENT_KINDS,
    AttachmentDescriptor,
    AttachmentKind,
    Button,
    RemoteMessageRecord,
)


class InvalidRecordError(Exception):
    """Raised when a Graph API message payload cannot be interpreted."""

    pass


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _nested_url(value: Any) -> str | None:
    return _str_or_none(_dict(value).get("url"))


def infer_attachment_kind(raw: dict[str, Any]) -> AttachmentKind:
    """Determine the attachment variant for a raw attachment payload.

    Order: declared type, mime_type prefix, nested image_data, template
    payload, then "file". A present image_data.url forces "image" for every
    variant except "template" (Graph API mis-tags some image attachments).
    """
    declared = _str_or_none(raw.get("type"))
    payload = _dict(raw.get("payload"))
    image_data = raw.get("image_data")

    kind: AttachmentKind
    if declared:
        kind = declared if declared in KNOWN_ATTACHMENT_KINDS else "unknown"  # type: ignore[assignment]
    else:
        mime_type = _str_or_none(raw.get("mime_type"))
        if mime_type:
            if mime_type.startswith("image/"):
                kind = "image"
            elif mime_type.startswith("video/"):
                kind = "video"
            elif mime_type.startswith("audio/"):
                kind = "audio"
            else:
                kind = "file"
        elif image_data:
            kind = "image"
        elif isinstance(raw.get("payload"), dict):
            kind = "template" if payload.get("template_type") else "file"
        else:
            kind = "file"

    if _nested_url(image_data) and kind != "template":
        kind = "image"

    return kind


def _parse_buttons(payload: dict[str, Any]) -> tuple[Button, ...]:
    buttons = payload.get("buttons")
    if not isinstance(buttons, list):
        return ()
    parsed = []
    for btn in buttons:
        btn = _dict(btn)
        parsed.append(
            Button(
                title=_str_or_none(btn.get("title")) or _str_or_none(btn.get("text")),
                url=_str_or_none(btn.get("url")),
                payload=_str_or_none(btn.get("payload")),
            )
        )
    return tuple(parsed)


def parse_attachment(raw: dict[str, Any]) -> AttachmentDescriptor:
    """Build an AttachmentDescriptor from one entry of attachments.data."""
    if not isinstance(raw, dict):
        raise InvalidRecordError("attachment is not an object")

    payload = _dict(raw.get("payload"))
    return AttachmentDescriptor(
        kind=infer_attachment_kind(raw),
        declared_type=_str_or_none(raw.get("type")),
        attachment_id=_str_or_none(raw.get("id")),
        mime_type=_str_or_none(raw.get("mime_type")),
        name=_str_or_none(raw.get("name")),
        url=_str_or_none(raw.get("url")),
        file_url=_str_or_none(raw.get("file_url")),
        payload_url=_str_or_none(payload.get("url")),
        image_data_url=_nested_url(raw.get("image_data")),
        image_url=_nested_url(raw.get("image")),
        template_text=_str_or_none(payload.get("text")),
        buttons=_parse_buttons(payload),
        has_image_data=bool(raw.get("image_data")),
        has_payload=isinstance(raw.get("payload"), dict),
    )


def _parse_to_ids(raw_to: Any) -> tuple[str, ...] | None:
    data = _dict(raw_to).get("data")
    if not isinstance(data, list) or not data:
        return None
    return tuple(str(item["id"]) for item in data if isinstance(item, dict) and item.get("id"))


def _parse_sticker_url(raw_sticker: Any) -> str | None:
    # The messages edge returns the sticker as a bare URL; older payloads
    # wrap it in an object.
    if isinstance(raw_sticker, str):
        return raw_sticker or None
    sticker = _dict(raw_sticker)
    return _str_or_none(sticker.get("url")) or _str_or_none(sticker.get("file_url"))


def parse_message(raw: dict[str, Any]) -> RemoteMessageRecord:
    """Parse one Graph API message payload.

    Raises:
        InvalidRecordError: If the payload is not an object or has no id.
    """
    if not isinstance(raw, dict):
        raise InvalidRecordError("message is not an object")

    message_id = raw.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidRecordError("missing or invalid message id")

    raw_attachments = _dict(raw.get("attachments")).get("data")
    if not isinstance(raw_attachments, list) or not raw_attachments:
        raw_attachments = None

    attachment = parse_attachment(raw_attachments[0]) if raw_attachments else None

    message = raw.get("message")
    return RemoteMessageRecord(
        id=message_id,
        message=message if isinstance(message, str) else None,
        from_id=_str_or_none(_dict(raw.get("from")).get("id")),
        to_ids=_parse_to_ids(raw.get("to")),
        created_time=parse_graph_time(_str_or_none(raw.get("created_time"))),
        attachment=attachment,
        sticker_url=_parse_sticker_url(raw.get("sticker")),
        has_sticker=bool(raw.get("sticker")),
        shares=raw.get("shares") or None,
        raw_attachments=raw_attachments,
    )

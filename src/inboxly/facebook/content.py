"""Composite message content encoding.

Non-text messages that also carry a caption are stored in the single
``content`` column as ``"<caption> |<KIND>_URL|<url>"``. The inbox UI and
the reply pipeline parse this exact format, so it must stay byte-compatible:
one space before the sentinel, none after it, caption kept verbatim.
"""

from typing import Literal

UrlKind = Literal["IMAGE", "FILE", "VIDEO", "AUDIO"]

URL_SENTINELS: dict[str, str] = {
    "IMAGE": " |IMAGE_URL|",
    "FILE": " |FILE_URL|",
    "VIDEO": " |VIDEO_URL|",
    "AUDIO": " |AUDIO_URL|",
}

# Placeholders used when a message would otherwise be stored empty
IMAGE_PLACEHOLDER = "📷 صورة"
FILE_PLACEHOLDER = "📎 ملف"
TEXT_PLACEHOLDER = "رسالة"
EMPTY_TEXT_PLACEHOLDER = "رسالة بدون نص"
TEMPLATE_PLACEHOLDER = "رسالة تفاعلية"
SHARED_CONTENT_PLACEHOLDER = "محتوى مشترك"
ATTACHMENT_PLACEHOLDER = "مرفق"
BUTTON_PLACEHOLDER = "زر"
BUTTONS_HEADER = "🔘 الأزرار:"


def compose_content(text: str | None, kind: UrlKind, url: str) -> str:
    """Return the URL alone, or ``"<text> |<KIND>_URL|<url>"`` when text is non-blank."""
    if text and text.strip():
        return f"{text}{URL_SENTINELS[kind]}{url}"
    return url


def split_content(content: str) -> tuple[str | None, UrlKind | None, str | None]:
    """Decode a stored content string.

    Returns:
        (text, kind, url). Plain content yields (content, None, None).
    """
    for kind, sentinel in URL_SENTINELS.items():
        text, found, url = content.partition(sentinel)
        if found:
            return text, kind, url  # type: ignore[return-value]
    return content, None, None

"""Tests for attachment classification and image URL recovery."""

import pytest

from inboxly.facebook.classifier import AttachmentClassifier
from inboxly.facebook.content import (
    ATTACHMENT_PLACEHOLDER,
    EMPTY_TEXT_PLACEHOLDER,
    IMAGE_PLACEHOLDER,
    SHARED_CONTENT_PLACEHOLDER,
    TEMPLATE_PLACEHOLDER,
)
from inboxly.facebook.graph_client import GraphApiError
from inboxly.facebook.parsing import parse_message
from helpers import FakeGraphClient, graph_message


def _classify(attachment=None, classifier=None, **kwargs):
    record = parse_message(graph_message("m_1", attachment=attachment, **kwargs))
    return (classifier or AttachmentClassifier()).classify(record)


class TestTextMessages:
    def test_plain_text(self):
        result = _classify(text="hello")
        assert (result.type, result.content) == ("TEXT", "hello")

    def test_empty_text(self):
        result = _classify(text="   ")
        assert (result.type, result.content) == ("TEXT", EMPTY_TEXT_PLACEHOLDER)

    def test_no_message_field(self):
        result = _classify()
        assert (result.type, result.content) == ("TEXT", EMPTY_TEXT_PLACEHOLDER)

    def test_shares_without_text(self):
        result = _classify(shares={"data": [{"link": "https://example.com"}]})
        assert (result.type, result.content) == ("TEXT", SHARED_CONTENT_PLACEHOLDER)

    def test_shares_with_text(self):
        result = _classify(text="see this", shares={"data": [{"link": "https://example.com"}]})
        assert (result.type, result.content) == ("TEXT", "see this")

    def test_record_level_sticker(self):
        result = _classify(sticker="https://cdn/sticker.png")
        assert (result.type, result.content) == ("IMAGE", "https://cdn/sticker.png")


class TestImageAttachments:
    def test_image_with_caption(self):
        result = _classify(
            {"type": "image", "image_data": {"url": "https://cdn/a.jpg"}}, text="look"
        )
        assert result.type == "IMAGE"
        assert result.content == "look |IMAGE_URL|https://cdn/a.jpg"

    def test_image_without_caption(self):
        result = _classify({"type": "image", "image_data": {"url": "https://cdn/a.jpg"}})
        assert (result.type, result.content) == ("IMAGE", "https://cdn/a.jpg")

    def test_url_priority(self):
        result = _classify(
            {
                "type": "image",
                "file_url": "https://cdn/file.jpg",
                "url": "https://cdn/url.jpg",
                "payload": {"url": "https://cdn/payload.jpg"},
            }
        )
        assert result.content == "https://cdn/file.jpg"

    def test_animated_image(self):
        result = _classify({"type": "animated_image", "url": "https://cdn/a.gif"})
        assert (result.type, result.content) == ("IMAGE", "https://cdn/a.gif")

    def test_mistagged_file_with_image_data(self):
        result = _classify({"type": "file", "image_data": {"url": "https://cdn/a.jpg"}})
        assert (result.type, result.content) == ("IMAGE", "https://cdn/a.jpg")

    def test_missing_url_without_fetcher_uses_placeholder(self):
        result = _classify({"type": "image"})
        assert (result.type, result.content) == ("IMAGE", IMAGE_PLACEHOLDER)

    def test_missing_url_with_caption_keeps_sentinel(self):
        result = _classify({"type": "image"}, text="caption")
        assert (result.type, result.content) == ("IMAGE", "caption |IMAGE_URL|")


class TestImageUrlRecovery:
    def test_recovered_by_attachment_id(self):
        client = FakeGraphClient(attachment_urls={"att-1": "https://cdn/recovered.jpg"})
        classifier = AttachmentClassifier(client)
        result = _classify({"id": "att-1", "type": "image"}, classifier=classifier)
        assert result.content == "https://cdn/recovered.jpg"
        assert client.calls == [("fetch_attachment_url", "att-1")]
        assert classifier.recovered_urls == 1

    def test_falls_back_to_message_lookup(self):
        client = FakeGraphClient(message_urls={"m_1": "https://cdn/by-message.jpg"})
        classifier = AttachmentClassifier(client)
        result = _classify({"id": "att-1", "type": "image"}, classifier=classifier)
        assert result.content == "https://cdn/by-message.jpg"
        assert client.calls == [
            ("fetch_attachment_url", "att-1"),
            ("fetch_message_attachment_url", "m_1"),
        ]
        assert classifier.recovery_attempts == 2

    def test_without_attachment_id_uses_message_lookup(self):
        client = FakeGraphClient(message_urls={"m_1": "https://cdn/by-message.jpg"})
        result = _classify({"type": "image"}, classifier=AttachmentClassifier(client))
        assert result.content == "https://cdn/by-message.jpg"
        assert client.calls == [("fetch_message_attachment_url", "m_1")]

    def test_recovery_failure_is_not_raised(self):
        class FailingFetcher:
            def fetch_attachment_url(self, attachment_id):
                raise GraphApiError("timed out")

            def fetch_message_attachment_url(self, message_id):
                raise GraphApiError("not found", kind="not_found", status_code=404)

        classifier = AttachmentClassifier(FailingFetcher())
        result = _classify({"id": "att-1", "type": "image"}, classifier=classifier, text="pic")
        assert (result.type, result.content) == ("IMAGE", "pic |IMAGE_URL|")
        assert classifier.recovery_attempts == 2
        assert classifier.recovered_urls == 0

    def test_no_recovery_when_url_present(self):
        client = FakeGraphClient()
        _classify({"id": "att-1", "type": "image", "url": "https://cdn/a.jpg"},
                  classifier=AttachmentClassifier(client))
        assert client.calls == []


class TestFileLikeAttachments:
    def test_file_with_caption(self):
        result = _classify({"type": "file", "file_url": "https://cdn/doc.pdf"}, text="invoice")
        assert (result.type, result.content) == ("FILE", "invoice |FILE_URL|https://cdn/doc.pdf")

    def test_file_falls_back_to_name(self):
        result = _classify({"type": "file", "name": "doc.pdf"})
        assert (result.type, result.content) == ("FILE", "doc.pdf")

    def test_video(self):
        result = _classify({"type": "video", "url": "https://cdn/v.mp4"}, text="clip")
        assert (result.type, result.content) == ("FILE", "clip |VIDEO_URL|https://cdn/v.mp4")

    def test_audio(self):
        result = _classify({"mime_type": "audio/mpeg", "file_url": "https://cdn/a.mp3"})
        assert (result.type, result.content) == ("FILE", "https://cdn/a.mp3")


class TestTemplateAndUnknown:
    def test_template_with_buttons(self):
        result = _classify(
            {
                "type": "template",
                "payload": {
                    "template_type": "button",
                    "text": "Choose a room",
                    "buttons": [{"title": "Single"}, {"title": "Double"}, {}],
                },
            }
        )
        assert result.type == "TEXT"
        assert result.content == "Choose a room\n\n🔘 الأزرار:\n1. Single\n2. Double\n3. زر"

    def test_template_empty_payload(self):
        result = _classify({"type": "template", "payload": {}})
        assert (result.type, result.content) == ("TEXT", TEMPLATE_PLACEHOLDER)

    def test_template_falls_back_to_message_text(self):
        result = _classify({"type": "template", "payload": {"template_type": "generic"}}, text="promo")
        assert (result.type, result.content) == ("TEXT", "promo")

    def test_nested_sticker(self):
        result = _classify({"type": "sticker", "url": "https://cdn/s.png"})
        assert (result.type, result.content) == ("IMAGE", "https://cdn/s.png")

    def test_unknown_with_url(self):
        result = _classify({"type": "fallback", "url": "https://example.com/page"})
        assert (result.type, result.content) == ("TEXT", "https://example.com/page")

    def test_unknown_without_anything(self):
        result = _classify({"type": "fallback"})
        assert (result.type, result.content) == ("TEXT", ATTACHMENT_PLACEHOLDER)


@pytest.mark.parametrize(
    "attachment,kwargs",
    [
        (None, {}),
        (None, {"text": ""}),
        (None, {"sticker": {"id": "no-url"}}),
        ({}, {}),
        ({"type": "image"}, {}),
        ({"type": "file"}, {}),
        ({"type": "video"}, {}),
        ({"type": "audio"}, {}),
        ({"type": "sticker"}, {}),
        ({"type": "template"}, {}),
        ({"type": "template", "payload": {}}, {}),
        ({"type": "weird"}, {}),
        ({"mime_type": "application/zip"}, {}),
    ],
)
def test_every_variant_yields_content(attachment, kwargs):
    result = _classify(attachment, **kwargs)
    assert result.type in ("TEXT", "IMAGE", "FILE")
    assert result.content.strip()

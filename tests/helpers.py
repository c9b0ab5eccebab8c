"""Shared test helpers (plain functions and fakes, not fixtures)."""

from __future__ import annotations

import base64
import time
from datetime import datetime, timezone
from typing import Any

import jwt
import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from inboxly.facebook.models import NormalizedMessage, SyncContext

PSID = "psid-1001"
PAGE_ID = "page-2002"


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://auth.example.com",
    aud: str = "inboxly-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_context(**overrides: Any) -> SyncContext:
    values = {
        "company_id": "company-1",
        "conversation_id": "conv-1",
        "psid": PSID,
        "page_id": PAGE_ID,
        "access_token": "page-token-secret",
        "page_name": "Test Page",
    }
    values.update(overrides)
    return SyncContext(**values)


def graph_message(
    message_id: str,
    *,
    text: str | None = None,
    from_id: str | None = PSID,
    to_ids: list[str] | None = None,
    created_time: str = "2024-03-01T10:15:00+0000",
    attachment: dict | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a Graph API message payload as the messages edge returns it."""
    raw: dict[str, Any] = {"id": message_id, "created_time": created_time}
    if text is not None:
        raw["message"] = text
    if from_id is not None:
        raw["from"] = {"id": from_id}
    if to_ids is not None:
        raw["to"] = {"data": [{"id": i} for i in to_ids]}
    if attachment is not None:
        raw["attachments"] = {"data": [attachment]}
    raw.update(extra)
    return raw


def normalized_message(message_id: str = "row-1", remote_id: str = "m_1") -> NormalizedMessage:
    now = datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc)
    return NormalizedMessage(
        id=message_id,
        conversation_id="conv-1",
        type="TEXT",
        content="hello",
        is_from_customer=True,
        metadata={"facebookMessageId": remote_id},
        created_at=now,
        updated_at=now,
    )


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self._body = body if body is not None else {}

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Records GET calls and replays queued responses or exceptions."""

    def __init__(self, responses: list[Any] | None = None, default: Any = None):
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def get(self, url: str, params: dict | None = None, timeout: float | None = None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        item = self.responses.pop(0) if self.responses else self.default
        if item is None:
            raise AssertionError(f"unexpected GET {url}")
        if isinstance(item, Exception):
            raise item
        return item


class FakeGraphClient:
    """Graph client double for pipeline tests."""

    def __init__(
        self,
        *,
        conversation_id: str | None = "t_remote",
        messages: list[dict] | None = None,
        attachment_urls: dict[str, str] | None = None,
        message_urls: dict[str, str] | None = None,
        error: Exception | None = None,
    ):
        self.conversation_id = conversation_id
        self.messages = messages or []
        self.attachment_urls = attachment_urls or {}
        self.message_urls = message_urls or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def __enter__(self) -> FakeGraphClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.closed = True

    def find_conversation_id(self, page_id: str, psid: str) -> str | None:
        self.calls.append(("find_conversation_id", psid))
        if self.error:
            raise self.error
        return self.conversation_id

    def fetch_messages(self, conversation_id: str) -> list[dict]:
        self.calls.append(("fetch_messages", conversation_id))
        return list(self.messages)

    def fetch_attachment_url(self, attachment_id: str) -> str | None:
        self.calls.append(("fetch_attachment_url", attachment_id))
        return self.attachment_urls.get(attachment_id)

    def fetch_message_attachment_url(self, message_id: str) -> str | None:
        self.calls.append(("fetch_message_attachment_url", message_id))
        return self.message_urls.get(message_id)


class InMemoryMessageStore:
    """MessageStore double honoring the (conversation, remote id) uniqueness."""

    def __init__(self, *, fail_bulk: bool = False, fail_remote_ids: set[str] | None = None):
        self.rows: dict[tuple[str, str], NormalizedMessage] = {}
        self.fail_bulk = fail_bulk
        self.fail_remote_ids = fail_remote_ids or set()
        self.touched: list[str] = []
        self.bulk_calls = 0
        self.single_calls = 0

    def _insert(self, message: NormalizedMessage) -> bool:
        if message.remote_id in self.fail_remote_ids:
            raise RuntimeError("row rejected")
        key = (message.conversation_id, message.remote_id)
        if key in self.rows:
            return False
        self.rows[key] = message
        return True

    def insert_many(self, messages: list[NormalizedMessage]) -> int:
        self.bulk_calls += 1
        if self.fail_bulk:
            raise ConnectionError("connection reset")
        return sum(1 for m in messages if self._insert(m))

    def insert_one(self, message: NormalizedMessage) -> bool:
        self.single_calls += 1
        return self._insert(message)

    def touch_conversation(self, conversation_id: str) -> None:
        self.touched.append(conversation_id)

    def stored_metadata(self) -> list[dict]:
        return [m.metadata for m in self.rows.values()]


def http_error(status_code: int, code: int | None = None, error_type: str | None = None,
               message: str = "boom") -> FakeResponse:
    error: dict[str, Any] = {"message": message}
    if code is not None:
        error["code"] = code
    if error_type is not None:
        error["type"] = error_type
    return FakeResponse(status_code, {"error": error})


def timeout_error() -> requests.Timeout:
    return requests.Timeout("read timed out")

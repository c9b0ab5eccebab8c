"""Conversations repository - company-scoped reads and timestamp touch.

Uses raw SQL with psycopg2 (no ORM). Every read filters by company_id.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from psycopg2.extensions import cursor as PgCursor

FACEBOOK_CHANNEL = "facebook"


@dataclass(frozen=True)
class SyncConversation:
    """Conversation row joined with its customer's Facebook identity."""

    id: str
    company_id: str
    customer_id: str | None
    customer_facebook_id: str | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def page_id(self) -> str | None:
        value = self.metadata.get("pageId")
        return str(value) if value else None


def _load_metadata(raw: Any) -> dict[str, Any]:
    """Accept JSONB (dict) or legacy TEXT metadata; bad JSON yields {}."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def get_conversation_for_sync(
    cur: PgCursor,
    *,
    company_id: str,
    conversation_id: str,
    channel: str = FACEBOOK_CHANNEL,
) -> SyncConversation | None:
    """Load a conversation of the given channel for a company.

    Returns:
        SyncConversation, or None when no conversation matches
        (id, company_id, channel).
    """
    cur.execute(
        """
        SELECT c.id, c.company_id, c.customer_id, cu.facebook_id, c.metadata
        FROM conversations c
        LEFT JOIN customers cu ON cu.id = c.customer_id
        WHERE c.id = %s AND c.company_id = %s AND c.channel = %s
        """,
        (conversation_id, company_id, channel),
    )
    row = cur.fetchone()
    if row is None:
        return None

    return SyncConversation(
        id=str(row[0]),
        company_id=str(row[1]),
        customer_id=str(row[2]) if row[2] else None,
        customer_facebook_id=row[3] or None,
        metadata=_load_metadata(row[4]),
    )


def conversation_exists(cur: PgCursor, *, company_id: str, conversation_id: str) -> bool:
    cur.execute(
        "SELECT 1 FROM conversations WHERE id = %s AND company_id = %s",
        (conversation_id, company_id),
    )
    return cur.fetchone() is not None


def list_conversations(cur: PgCursor, *, company_id: str, limit: int = 100) -> list[dict]:
    """List a company's conversations, most recently active first (no PII)."""
    cur.execute(
        """
        SELECT id, channel, customer_id, updated_at, created_at
        FROM conversations
        WHERE company_id = %s
        ORDER BY updated_at DESC
        LIMIT %s
        """,
        (company_id, limit),
    )
    return [
        {
            "id": str(row[0]),
            "channel": row[1],
            "customer_id": str(row[2]) if row[2] else None,
            "last_activity_at": row[3].isoformat(),
            "created_at": row[4].isoformat(),
        }
        for row in cur.fetchall()
    ]


def touch_conversation(cur: PgCursor, conversation_id: str) -> None:
    """Bump conversations.updated_at so the inbox re-sorts."""
    cur.execute(
        "UPDATE conversations SET updated_at = now() WHERE id = %s",
        (conversation_id,),
    )

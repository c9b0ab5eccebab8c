"""Messages repository - synced-id lookup, inserts and reads.

Uses raw SQL with psycopg2 (no ORM).

Inserts use ON CONFLICT DO NOTHING: the unique index
ux_messages_conversation_facebook_message_id on
(conversation_id, metadata->>'facebookMessageId') turns a race between two
concurrent syncs of the same conversation into skipped rows instead of
duplicates.
"""

from __future__ import annotations

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from inboxly.facebook.models import NormalizedMessage
from inboxly.infra.db import insert_values, txn

from .conversations_repository import touch_conversation

REMOTE_ID_KEY = "facebookMessageId"

_INSERT_COLUMNS = """
    INSERT INTO messages (
        id, conversation_id, type, content, is_from_customer,
        is_read, metadata, created_at, updated_at
    )
"""
_ROW_TEMPLATE = "(%s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s)"


def _row(message: NormalizedMessage) -> tuple[Any, ...]:
    return (
        message.id,
        message.conversation_id,
        message.type,
        message.content,
        message.is_from_customer,
        message.is_read,
        json.dumps(message.metadata, ensure_ascii=False, default=str),
        message.created_at,
        message.updated_at,
    )


def list_synced_message_metadata(cur: PgCursor, conversation_id: str) -> list[Any]:
    """Return metadata of stored messages that carry a Facebook message id.

    Values are dicts (JSONB) as returned by psycopg2.
    """
    cur.execute(
        """
        SELECT metadata FROM messages
        WHERE conversation_id = %s AND metadata ? %s
        """,
        (conversation_id, REMOTE_ID_KEY),
    )
    return [row[0] for row in cur.fetchall()]


def insert_messages(cur: PgCursor, messages: list[NormalizedMessage]) -> int:
    """Insert many messages in one statement, skipping conflicting rows.

    Returns:
        Number of rows actually inserted.
    """
    inserted = insert_values(
        cur,
        _INSERT_COLUMNS + " VALUES %s ON CONFLICT DO NOTHING RETURNING id",
        [_row(m) for m in messages],
        template=_ROW_TEMPLATE,
        returning=True,
    )
    return len(inserted)


def insert_message(cur: PgCursor, message: NormalizedMessage) -> bool:
    """Insert one message. Returns False when it conflicted and was skipped."""
    cur.execute(
        _INSERT_COLUMNS + " VALUES " + _ROW_TEMPLATE + " ON CONFLICT DO NOTHING RETURNING id",
        _row(message),
    )
    return cur.fetchone() is not None


def list_messages(cur: PgCursor, conversation_id: str, *, limit: int = 200) -> list[dict]:
    """Return the latest messages of a conversation in chronological order."""
    cur.execute(
        """
        SELECT id, type, content, is_from_customer, is_read, created_at
        FROM (
            SELECT id, type, content, is_from_customer, is_read, created_at
            FROM messages
            WHERE conversation_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        ) latest
        ORDER BY created_at ASC
        """,
        (conversation_id, limit),
    )
    return [
        {
            "id": str(row[0]),
            "type": row[1],
            "content": row[2],
            "is_from_customer": row[3],
            "is_read": row[4],
            "created_at": row[5].isoformat(),
        }
        for row in cur.fetchall()
    ]


class PgMessageStore:
    """MessageStore backed by Postgres; every call is its own transaction."""

    def insert_many(self, messages: list[NormalizedMessage]) -> int:
        with txn() as cur:
            return insert_messages(cur, messages)

    def insert_one(self, message: NormalizedMessage) -> bool:
        with txn() as cur:
            return insert_message(cur, message)

    def touch_conversation(self, conversation_id: str) -> None:
        with txn() as cur:
            touch_conversation(cur, conversation_id)

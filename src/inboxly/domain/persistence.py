"""Message persistence strategies for synced history.

Bulk-first, row-by-row on failure:
- BulkInsertStrategy writes the whole batch in one statement and raises if
  the statement itself fails (connectivity, bad row, ...). Rows that merely
  conflict with the unique index are skipped by the store, not raised.
- RowByRowStrategy writes each row on its own; a failing row is counted and
  the remaining rows are still attempted.
- FallbackPersister runs the primary strategy and falls back to the
  secondary one when the primary raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from inboxly.facebook.models import NormalizedMessage
from inboxly.observability.logging import get_logger
from inboxly.observability.redaction import safe_log_context

logger = get_logger(__name__)


class MessageStore(Protocol):
    """Storage operations the persister needs (PgMessageStore in production)."""

    def insert_many(self, messages: list[NormalizedMessage]) -> int: ...

    def insert_one(self, message: NormalizedMessage) -> bool: ...

    def touch_conversation(self, conversation_id: str) -> None: ...


@dataclass(frozen=True)
class WriteOutcome:
    """Saved rows and rows that failed to save."""

    saved: int = 0
    errors: int = 0
    strategy: str = ""


class WriteStrategy(Protocol):
    name: str

    def write(self, messages: list[NormalizedMessage]) -> WriteOutcome: ...


class BulkInsertStrategy:
    """Single multi-row insert. Raises on total failure."""

    name = "bulk"

    def __init__(self, store: MessageStore):
        self._store = store

    def write(self, messages: list[NormalizedMessage]) -> WriteOutcome:
        saved = self._store.insert_many(messages)
        return WriteOutcome(saved=saved, strategy=self.name)


class RowByRowStrategy:
    """One insert per message; never raises."""

    name = "row_by_row"

    def __init__(self, store: MessageStore):
        self._store = store

    def write(self, messages: list[NormalizedMessage]) -> WriteOutcome:
        saved = 0
        errors = 0
        for message in messages:
            try:
                if self._store.insert_one(message):
                    saved += 1
            except Exception as e:
                errors += 1
                logger.error(
                    "failed to save synced message",
                    extra={
                        "extra_fields": safe_log_context(
                            message_id=message.id,
                            error_type=type(e).__name__,
                        )
                    },
                )
        return WriteOutcome(saved=saved, errors=errors, strategy=self.name)


class FallbackPersister:
    """Persist a batch with primary, then fallback if primary raises.

    After at least one row is saved, the conversation's updated_at is touched
    once. A failed touch is logged and does not change the outcome.
    """

    def __init__(self, primary: WriteStrategy, fallback: WriteStrategy, store: MessageStore):
        self._primary = primary
        self._fallback = fallback
        self._store = store

    @classmethod
    def for_store(cls, store: MessageStore) -> FallbackPersister:
        return cls(BulkInsertStrategy(store), RowByRowStrategy(store), store)

    def persist(self, conversation_id: str, messages: list[NormalizedMessage]) -> WriteOutcome:
        if not messages:
            return WriteOutcome()

        try:
            outcome = self._primary.write(messages)
        except Exception as e:
            logger.warning(
                "bulk save failed, retrying row by row",
                extra={
                    "extra_fields": safe_log_context(
                        conversation_id=conversation_id,
                        batch_size=len(messages),
                        error_type=type(e).__name__,
                    )
                },
            )
            outcome = self._fallback.write(messages)

        if outcome.saved > 0:
            try:
                self._store.touch_conversation(conversation_id)
            except Exception:
                logger.exception(
                    "failed to touch conversation after sync",
                    extra={"extra_fields": safe_log_context(conversation_id=conversation_id)},
                )

        return outcome

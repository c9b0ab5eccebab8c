"""Tests for bulk-then-row-by-row message persistence."""

from unittest.mock import MagicMock

import pytest

from inboxly.domain.persistence import (
    BulkInsertStrategy,
    FallbackPersister,
    RowByRowStrategy,
    WriteOutcome,
)
from helpers import InMemoryMessageStore, normalized_message


def _batch(n):
    return [normalized_message(f"row-{i}", f"m_{i}") for i in range(n)]


class TestStrategies:
    def test_bulk_returns_saved(self):
        store = InMemoryMessageStore()
        outcome = BulkInsertStrategy(store).write(_batch(3))
        assert outcome == WriteOutcome(saved=3, errors=0, strategy="bulk")

    def test_bulk_raises_on_failure(self):
        store = InMemoryMessageStore(fail_bulk=True)
        with pytest.raises(ConnectionError):
            BulkInsertStrategy(store).write(_batch(2))

    def test_row_by_row_counts_failures(self):
        store = InMemoryMessageStore(fail_remote_ids={"m_1"})
        outcome = RowByRowStrategy(store).write(_batch(3))
        assert outcome == WriteOutcome(saved=2, errors=1, strategy="row_by_row")
        assert store.single_calls == 3

    def test_row_by_row_conflict_is_not_an_error(self):
        store = InMemoryMessageStore()
        store.insert_one(normalized_message("existing", "m_0"))
        outcome = RowByRowStrategy(store).write(_batch(2))
        assert (outcome.saved, outcome.errors) == (1, 0)


class TestFallbackPersister:
    def test_empty_batch_does_nothing(self):
        store = InMemoryMessageStore()
        outcome = FallbackPersister.for_store(store).persist("conv-1", [])
        assert outcome == WriteOutcome()
        assert store.bulk_calls == 0
        assert store.touched == []

    def test_bulk_success_touches_once(self):
        store = InMemoryMessageStore()
        outcome = FallbackPersister.for_store(store).persist("conv-1", _batch(3))
        assert (outcome.saved, outcome.errors, outcome.strategy) == (3, 0, "bulk")
        assert store.single_calls == 0
        assert store.touched == ["conv-1"]

    def test_bulk_failure_falls_back(self):
        store = InMemoryMessageStore(fail_bulk=True, fail_remote_ids={"m_2"})
        outcome = FallbackPersister.for_store(store).persist("conv-1", _batch(4))
        assert (outcome.saved, outcome.errors, outcome.strategy) == (3, 1, "row_by_row")
        assert store.touched == ["conv-1"]

    def test_nothing_saved_does_not_touch(self):
        store = InMemoryMessageStore()
        batch = _batch(2)
        FallbackPersister.for_store(store).persist("conv-1", batch)
        store.touched.clear()

        outcome = FallbackPersister.for_store(store).persist("conv-1", batch)
        assert outcome.saved == 0
        assert store.touched == []

    def test_touch_failure_does_not_change_outcome(self):
        store = InMemoryMessageStore()
        store.touch_conversation = MagicMock(side_effect=RuntimeError("db gone"))
        outcome = FallbackPersister.for_store(store).persist("conv-1", _batch(1))
        assert (outcome.saved, outcome.errors) == (1, 0)
        store.touch_conversation.assert_called_once_with("conv-1")

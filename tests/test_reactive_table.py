"""Tests for the reactive table."""
from datetime import datetime, UTC

import pytest

from blockguess.models import LogEvent
from blockguess.store.backends import MemoryTableBackend
from blockguess.store.reactive_table import ReactiveTable, TableSnapshot
from blockguess.utils.exceptions import NotFoundError


def make_log(event_type: str = "test", details: str = "details") -> LogEvent:
    return LogEvent(event_type=event_type, details=details, timestamp=datetime(2025, 1, 1, tzinfo=UTC))


@pytest.fixture
def table():
    return ReactiveTable("logs", MemoryTableBackend())


class TestInsert:
    """Test id assignment and insert notifications."""

    def test_ids_are_strictly_increasing(self, table):
        """Every insert should get a larger id than the previous one."""
        ids = [table.insert(make_log(details=str(i))) for i in range(20)]

        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)
        assert ids[0] == 1

    def test_stored_record_carries_assigned_id(self, table):
        """The stored copy should have the id, the caller's record stays untouched."""
        record = make_log()

        record_id = table.insert(record)

        assert record.id is None
        assert table.get(record_id).id == record_id
        assert table.get(record_id).details == "details"

    def test_insert_subscribers_run_in_registration_order(self, table):
        """Subscribers should be called synchronously in the order they registered."""
        calls = []
        table.subscribe_insert(lambda r: calls.append(("first", r.id)))
        table.subscribe_insert(lambda r: calls.append(("second", r.id)))

        record_id = table.insert(make_log())

        assert calls == [("first", record_id), ("second", record_id)]

    def test_failing_subscriber_does_not_block_others(self, table):
        """A raising subscriber should be isolated from other subscribers and the caller."""
        seen = []

        def broken(record):
            raise RuntimeError("boom")

        table.subscribe_insert(broken)
        table.subscribe_insert(lambda r: seen.append(r.id))

        record_id = table.insert(make_log())

        assert record_id == 1
        assert seen == [1]


class TestUpdate:
    """Test record replacement and update notifications."""

    def test_update_missing_id_raises(self, table):
        """Updating an unknown id should raise NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            table.update(42, make_log())

        assert exc_info.value.record_id == 42
        assert exc_info.value.table == "logs"

    def test_update_replaces_and_notifies_with_old_and_new(self, table):
        """Update subscribers should receive both versions of the record."""
        record_id = table.insert(make_log(details="before"))
        received = []
        table.subscribe_update(lambda old, new: received.append((old.details, new.details, new.id)))

        table.update(record_id, make_log(details="after"))

        assert received == [("before", "after", record_id)]
        assert table.get(record_id).details == "after"

    def test_update_does_not_fire_insert_subscribers(self, table):
        record_id = table.insert(make_log())
        inserts = []
        table.subscribe_insert(inserts.append)

        table.update(record_id, make_log(details="changed"))

        assert inserts == []

    def test_failing_update_subscriber_is_isolated(self, table):
        record_id = table.insert(make_log())
        seen = []
        def broken(old, new):
            raise ValueError("bad")

        table.subscribe_update(broken)
        table.subscribe_update(lambda old, new: seen.append(new.id))

        table.update(record_id, make_log(details="x"))

        assert seen == [record_id]


class TestSubscriptions:
    """Test deregistration."""

    def test_unsubscribe_stops_notifications(self, table):
        calls = []
        subscription = table.subscribe_insert(calls.append)

        table.insert(make_log())
        subscription.unsubscribe()
        table.insert(make_log())

        assert len(calls) == 1
        assert not subscription.active

    def test_unsubscribe_is_idempotent(self, table):
        """Calling unsubscribe twice should be harmless and leave other listeners alone."""
        first = []
        second = []
        subscription = table.subscribe_insert(first.append)
        table.subscribe_insert(second.append)

        subscription.unsubscribe()
        subscription()

        table.insert(make_log())
        assert first == []
        assert len(second) == 1

    def test_same_callable_registered_twice_is_removed_once(self, table):
        calls = []
        listener = calls.append
        sub_a = table.subscribe_insert(listener)
        table.subscribe_insert(listener)

        sub_a.unsubscribe()
        table.insert(make_log())

        assert len(calls) == 1


class TestIteration:
    """Test snapshot iteration."""

    def test_iteration_is_in_insertion_order(self, table):
        for i in range(5):
            table.insert(make_log(details=str(i)))

        assert [r.details for r in table.iterate()] == ["0", "1", "2", "3", "4"]

    def test_snapshot_ignores_later_inserts(self, table):
        """Records inserted after the snapshot should never appear in it."""
        table.insert(make_log(details="a"))
        snapshot = table.iterate()
        iterator = iter(snapshot)
        first = next(iterator)

        table.insert(make_log(details="b"))

        assert first.details == "a"
        assert list(iterator) == []
        assert [r.details for r in snapshot] == ["a"]
        assert [r.details for r in table.iterate()] == ["a", "b"]

    def test_snapshot_is_restartable(self, table):
        table.insert(make_log(details="a"))
        table.insert(make_log(details="b"))
        snapshot = table.iterate()

        assert isinstance(snapshot, TableSnapshot)
        assert list(snapshot) == list(snapshot)
        assert len(snapshot) == 2

    def test_inserting_from_a_subscriber_during_iteration(self, table):
        """Subscribers can write back into the table while a snapshot is being read."""
        table.insert(make_log(details="seed"))
        snapshot = table.iterate()

        for record in snapshot:
            table.insert(make_log(details=f"copy-{record.details}"))

        assert len(table) == 2

    def test_contains_and_len(self, table):
        record_id = table.insert(make_log())

        assert record_id in table
        assert 999 not in table
        assert "1" not in table
        assert len(table) == 1

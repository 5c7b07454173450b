"""Tests for VersionedWriter."""

from __future__ import annotations

import threading

import pytest

from exports_rw.domain.keys import DatedKeyCodec, InvalidKeyPartError
from exports_rw.infra.storage.client import StorageError
from exports_rw.services.base import (
    EntityNotFoundError,
    PartialFailureError,
    RenameCleanupError,
    StoreScope,
)
from exports_rw.services.writer import (
    CORRELATION_METADATA_KEY,
    EntityLocks,
    VersionedWriter,
    WriteOutcome,
)
from tests.services.mock_storage import FaultyObjectStore, RecordingObjectStore

UUID = "89d15f70-640d-11e4-9803-0800200c9a66"
OLD_KEY = f"content/{UUID}_2017-09-10.json"
NEW_KEY = f"content/{UUID}_2017-09-11.json"


def _writer(store, locks=None):
    scope = StoreScope(store=store, prefix="content", codec=DatedKeyCodec())
    return VersionedWriter(scope, locks=locks)


def _live_keys(store):
    return sorted(k for k in store.objects if UUID in k)


class TestWrite:
    def test_first_write_creates(self):
        store = RecordingObjectStore()
        writer = _writer(store)

        outcome = writer.write(UUID, "2017-09-10", b'{"uuid": 1}')

        assert outcome is WriteOutcome.CREATED
        assert outcome.created
        assert _live_keys(store) == [OLD_KEY]
        assert store.objects[OLD_KEY]["body"] == b'{"uuid": 1}'

    def test_same_partition_overwrites_in_place(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY, b"old")
        writer = _writer(store)

        outcome = writer.write(UUID, "2017-09-10", b"new")

        assert outcome is WriteOutcome.UPDATED_IN_PLACE
        assert not outcome.created
        assert store.deletes == []
        assert store.objects[OLD_KEY]["body"] == b"new"

    def test_partition_change_renames(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY, b"old")
        writer = _writer(store)

        outcome = writer.write(UUID, "2017-09-11", b"new")

        assert outcome is WriteOutcome.UPDATED
        assert _live_keys(store) == [NEW_KEY]
        assert store.puts[-1] == NEW_KEY
        assert store.deletes == [OLD_KEY]

    def test_stores_content_type_and_correlation_id(self):
        store = RecordingObjectStore()
        writer = _writer(store)

        writer.write(
            UUID,
            "2017-09-10",
            b"{}",
            content_type="application/json",
            correlation_id="tid_test",
        )

        stored = store.objects[OLD_KEY]
        assert stored["content_type"] == "application/json"
        assert stored["metadata"] == {CORRELATION_METADATA_KEY: "tid_test"}

    def test_put_failure_leaves_previous_object(self):
        store = FaultyObjectStore()
        store.seed(OLD_KEY, b"old")
        store.fail_put = True
        writer = _writer(store)

        with pytest.raises(StorageError):
            writer.write(UUID, "2017-09-11", b"new")

        assert _live_keys(store) == [OLD_KEY]
        assert store.deletes == []

    def test_failed_cleanup_is_compensated(self):
        store = FaultyObjectStore(fail_delete_keys={OLD_KEY})
        store.seed(OLD_KEY, b"old")
        writer = _writer(store)

        with pytest.raises(RenameCleanupError) as excinfo:
            writer.write(UUID, "2017-09-11", b"new")

        assert excinfo.value.compensated is True
        assert not isinstance(excinfo.value, PartialFailureError)
        assert store.deletes == [OLD_KEY, NEW_KEY]
        assert _live_keys(store) == [OLD_KEY]
        assert store.objects[OLD_KEY]["body"] == b"old"

    def test_failed_compensation_is_partial_failure(self):
        store = FaultyObjectStore(fail_delete_keys={OLD_KEY, NEW_KEY})
        store.seed(OLD_KEY, b"old")
        writer = _writer(store)

        with pytest.raises(PartialFailureError) as excinfo:
            writer.write(UUID, "2017-09-11", b"new")

        assert excinfo.value.compensated is False
        assert excinfo.value.old_key == OLD_KEY
        assert excinfo.value.new_key == NEW_KEY
        assert _live_keys(store) == [OLD_KEY, NEW_KEY]

    def test_invalid_partition_is_rejected_before_any_call(self):
        store = RecordingObjectStore()
        writer = _writer(store)

        with pytest.raises(InvalidKeyPartError):
            writer.write(UUID, "2017/09/10", b"{}")

        assert store.puts == []
        assert store.list_prefixes == []


class TestDelete:
    def test_deletes_live_object(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY)
        writer = _writer(store)

        assert writer.delete(UUID) == OLD_KEY
        assert _live_keys(store) == []

    def test_missing_entity_is_not_found(self):
        store = RecordingObjectStore()
        writer = _writer(store)

        with pytest.raises(EntityNotFoundError) as excinfo:
            writer.delete(UUID)

        assert not isinstance(excinfo.value, StorageError)
        assert excinfo.value.entity_id == UUID
        assert store.deletes == []

    def test_partition_mismatch_is_not_found(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY)
        writer = _writer(store)

        with pytest.raises(EntityNotFoundError):
            writer.delete(UUID, "2017-09-11")

        assert _live_keys(store) == [OLD_KEY]

    def test_matching_partition_deletes(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY)
        writer = _writer(store)

        assert writer.delete(UUID, "2017-09-10") == OLD_KEY

    def test_delete_failure_propagates(self):
        store = FaultyObjectStore(fail_delete_keys={OLD_KEY})
        store.seed(OLD_KEY)
        writer = _writer(store)

        with pytest.raises(StorageError):
            writer.delete(UUID)


class TestEntityLocks:
    def test_lock_entries_are_released(self):
        locks = EntityLocks()

        with locks.hold(UUID):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_same_entity_is_serialized(self):
        locks = EntityLocks()
        results = []

        def contender():
            with locks.hold(UUID):
                results.append("contender")

        with locks.hold(UUID):
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join(timeout=0.2)
            assert thread.is_alive()
            results.append("holder")

        thread.join(timeout=2)
        assert results == ["holder", "contender"]
        assert len(locks) == 0

    def test_writer_with_locks_renames_consistently(self):
        store = RecordingObjectStore()
        store.seed(OLD_KEY)
        locks = EntityLocks()
        writer = _writer(store, locks=locks)

        threads = [
            threading.Thread(target=writer.write, args=(UUID, "2017-09-11", b"x"))
            for _ in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert _live_keys(store) == [NEW_KEY]
        assert len(locks) == 0


class TestReservedIds:
    def test_reserved_id_is_rejected_before_any_call(self):
        store = RecordingObjectStore()
        writer = _writer(store)

        with pytest.raises(InvalidKeyPartError):
            writer.write("__x", "2017-09-10", b"{}")

        assert store.puts == []
        assert store.list_prefixes == []

    def test_delete_of_reserved_id_is_rejected(self):
        store = RecordingObjectStore()
        store.seed("content/__x_2017-09-10.json")
        writer = _writer(store)

        with pytest.raises(InvalidKeyPartError):
            writer.delete("__x")

        assert store.deletes == []

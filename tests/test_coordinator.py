"""Tests for serialized read-modify-write cycles."""

import os
import threading
import time
from unittest.mock import patch

import pytest

from keyrotate.secrets import rotation
from keyrotate.secrets.coordinator import MutationCoordinator, ProcessLock, TicketLock
from keyrotate.secrets.ledger import SecretDocument, write_secret
from keyrotate.utils.errors import StoreLockError

KEY = "api_key_openai"


class TestTicketLock:
    """Test the in-process FIFO lock."""

    def test_acquire_and_release(self):
        """Test uncontended locking."""
        lock = TicketLock()

        assert lock.acquire(timeout=1) is True
        lock.release()
        assert lock.acquire(timeout=1) is True
        lock.release()

    def test_timeout(self):
        """Test that a held lock times out other waiters."""
        lock = TicketLock()
        lock.acquire()

        assert lock.acquire(timeout=0.05) is False

    def test_abandoned_ticket_is_skipped(self):
        """Test that a timed-out waiter does not block later waiters."""
        lock = TicketLock()
        lock.acquire()
        assert lock.acquire(timeout=0.01) is False

        lock.release()

        assert lock.acquire(timeout=1) is True

    def test_waiters_are_served_in_arrival_order(self):
        """Test FIFO ordering of waiters."""
        lock = TicketLock()
        lock.acquire()
        order = []
        threads = []

        for number in range(5):
            thread = threading.Thread(target=lambda n=number: (lock.acquire(), order.append(n), lock.release()))
            thread.start()
            threads.append(thread)
            # Let each thread draw its ticket before the next starts
            time.sleep(0.05)

        lock.release()
        for thread in threads:
            thread.join(timeout=5)

        assert order == [0, 1, 2, 3, 4]


class TestProcessLock:
    """Test the cross-process file lock."""

    def test_lock_file_is_kept(self, temp_directory):
        """Test that releasing does not delete the lock file."""
        lock = ProcessLock(f"{temp_directory}/alice/secrets.json.lock")

        assert lock.acquire(timeout=1) is True
        lock.release()

        assert lock.lock_path.exists()

    def test_second_holder_times_out(self, temp_directory):
        """Test that two lock objects on one file exclude each other."""
        path = f"{temp_directory}/secrets.json.lock"
        first = ProcessLock(path)
        second = ProcessLock(path)

        assert first.acquire(timeout=1) is True
        try:
            assert second.acquire(timeout=0.05) is False
        finally:
            first.release()

        assert second.acquire(timeout=1) is True
        second.release()


class TestMutationCoordinator:
    """Test mutation coordination."""

    def test_mutate_saves_changes(self, store, coordinator):
        """Test that a changing operation is persisted."""
        result = coordinator.mutate("alice", lambda document: write_secret(document, KEY, "x"))

        assert result is True
        assert store.load("alice").flat == {KEY: "x"}

    def test_mutate_without_changes_does_not_write(self, store, coordinator):
        """Test that unchanged documents are not rewritten."""
        with patch.object(store, "save") as mock_save:
            coordinator.mutate("alice", lambda document: rotation.splice_entry(document, KEY, 3))

        mock_save.assert_not_called()
        assert not store.exists("alice")

    def test_unchanged_document_is_byte_identical(self, store, coordinator, write_document):
        """Test that a no-op splice leaves the file untouched."""
        path = write_document("alice", '{"managed": {"api_key_openai": [{"comment": "a", "value": "a"}]}}')
        mtime = store.path_for("alice").stat().st_mtime_ns

        coordinator.mutate("alice", lambda document: rotation.splice_entry(document, KEY, 1))

        with open(path, encoding="utf-8") as f:
            assert f.read() == '{"managed": {"api_key_openai": [{"comment": "a", "value": "a"}]}}'
        assert store.path_for("alice").stat().st_mtime_ns == mtime

    def test_identity_directory_is_owner_only(self, store, coordinator):
        """Test that the first mutation creates the identity directory with mode 0700."""
        coordinator.mutate("alice", lambda document: write_secret(document, KEY, "x"))

        assert os.stat(store.path_for("alice").parent).st_mode & 0o777 == 0o700

    def test_failed_operation_saves_nothing(self, store, coordinator):
        """Test that an operation raising leaves the stored document unchanged."""
        store.save("alice", SecretDocument(flat={KEY: "old"}))

        def operation(document):
            write_secret(document, KEY, "new")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            coordinator.mutate("alice", operation)

        assert store.load("alice").flat == {KEY: "old"}

    def test_lock_released_after_failure(self, coordinator):
        """Test that a failed operation does not keep the identity locked."""

        def operation(document):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            coordinator.mutate("alice", operation)

        assert coordinator.mutate("alice", lambda document: write_secret(document, KEY, "x")) is True

    def test_lock_timeout(self, store):
        """Test that waiting too long raises StoreLockError."""
        coordinator = MutationCoordinator(store, lock_timeout=0.1)
        holding = threading.Event()
        finish = threading.Event()

        def hold():
            with coordinator.exclusive("alice"):
                holding.set()
                finish.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        holding.wait(5)
        try:
            with pytest.raises(StoreLockError) as exc_info:
                coordinator.mutate("alice", lambda document: write_secret(document, KEY, "x"))
            assert exc_info.value.suggestions
        finally:
            finish.set()
            holder.join(5)

    def test_process_lock_timeout(self, store):
        """Test that a lock held by another coordinator is respected."""
        first = MutationCoordinator(store, lock_timeout=1.0)
        second = MutationCoordinator(store, lock_timeout=0.1)

        with first.exclusive("alice"):
            with pytest.raises(StoreLockError):
                second.mutate("alice", lambda document: write_secret(document, KEY, "x"))

    def test_other_identity_is_not_blocked(self, store):
        """Test that identities are locked independently."""
        coordinator = MutationCoordinator(store, lock_timeout=0.1)

        with coordinator.exclusive("alice"):
            assert coordinator.mutate("bob", lambda document: write_secret(document, KEY, "x")) is True

    def test_concurrent_appends_are_not_lost(self, store):
        """Test that N concurrent appends all land in the list."""
        coordinator = MutationCoordinator(store, lock_timeout=30.0)
        count = 25
        errors = []

        def append(number):
            try:
                coordinator.mutate(
                    "alice",
                    lambda document: rotation.append_entry(document, KEY, f"comment-{number}", f"value-{number}"),
                )
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=append, args=(number,)) for number in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        comments = [entry.comment for entry in store.load("alice").entries(KEY)]
        assert len(comments) == count
        assert sorted(comments) == sorted(f"comment-{number}" for number in range(count))

    def test_concurrent_appends_across_coordinators(self, store):
        """Test that separate coordinators on one store also serialize."""
        coordinators = [MutationCoordinator(store, lock_timeout=30.0) for _ in range(4)]

        def append(number):
            coordinators[number % 4].mutate(
                "alice",
                lambda document: rotation.append_entry(document, KEY, f"comment-{number}", f"value-{number}"),
            )

        threads = [threading.Thread(target=append, args=(number,)) for number in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert len(store.load("alice").entries(KEY)) == 16

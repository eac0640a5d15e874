"""Serialization of read-modify-write cycles per store identity.

Every mutation runs as load -> compute -> save while holding exclusive access
to its identity. Access is granted in arrival order within a process (ticket
lock) and is additionally guarded by an OS advisory lock on a sidecar file so
that separate processes sharing a data root are serialized too. Different
identities never wait on each other.
"""

import logging
import os
import platform
import threading
import time
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from keyrotate.utils.errors import StoreLockError, create_error_suggestions
from keyrotate.utils.files import FileManager

from .ledger import SecretDocument
from .store import SecretStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TIMEOUT = 10.0
_POLL_INTERVAL = 0.01


class TicketLock:
    """Non-reentrant FIFO lock: waiters are admitted in the order they arrived.

    A waiter that gives up (timeout) leaves its ticket behind as abandoned and
    the queue skips over it.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._next_ticket = 0
        self._serving = 0
        self._abandoned = set()

    def acquire(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            deadline = None if timeout is None else time.monotonic() + timeout

            while self._serving != ticket:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    self._abandoned.add(ticket)
                    return False
                self._cond.wait(remaining)

            return True

    def release(self) -> None:
        with self._cond:
            self._serving += 1
            while self._serving in self._abandoned:
                self._abandoned.discard(self._serving)
                self._serving += 1
            self._cond.notify_all()


class ProcessLock:
    """Exclusive OS-level lock on a file (fcntl on Unix, msvcrt on Windows).

    The lock file is never deleted: unlinking it while others wait would let
    two processes lock different inodes of the same path.
    """

    def __init__(self, lock_path: Path, file_manager: Optional[FileManager] = None):
        self.lock_path = Path(lock_path)
        self.file_manager = file_manager or FileManager()
        self._lock_fd: Optional[int] = None

    def acquire(self, timeout: Optional[float] = None) -> bool:
        self.file_manager.ensure_directory(self.lock_path.parent)
        fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o600)
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            try:
                self._try_lock(fd)
                self._lock_fd = fd
                return True
            except OSError:
                if deadline is not None and time.monotonic() >= deadline:
                    os.close(fd)
                    return False
                time.sleep(_POLL_INTERVAL)

    def release(self) -> None:
        if self._lock_fd is None:
            return
        try:
            self._unlock(self._lock_fd)
        except OSError as e:
            logger.warning(f"Error releasing file lock {self.lock_path}: {e}")
        finally:
            os.close(self._lock_fd)
            self._lock_fd = None

    @staticmethod
    def _try_lock(fd: int) -> None:
        if platform.system() == "Windows":
            import msvcrt

            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        else:
            import fcntl

            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

    @staticmethod
    def _unlock(fd: int) -> None:
        if platform.system() == "Windows":
            import msvcrt

            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(fd, fcntl.LOCK_UN)


class MutationCoordinator:
    """Grants exclusive, ordered access to one store identity at a time."""

    def __init__(
        self,
        store: SecretStore,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        process_locks: bool = True,
    ):
        """
        Initialize mutation coordinator.

        Args:
            store: Store whose documents are mutated
            lock_timeout: Seconds to wait for access before giving up
            process_locks: Also lock across processes with a sidecar lock file
        """
        self.store = store
        self.lock_timeout = lock_timeout
        self.process_locks = process_locks
        self._registry_lock = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, TicketLock]" = weakref.WeakValueDictionary()

    def _lock_for(self, identity: str) -> TicketLock:
        name = str(self.store.path_for(identity))
        with self._registry_lock:
            lock = self._locks.get(name)
            if lock is None:
                lock = TicketLock()
                self._locks[name] = lock
            return lock

    @contextmanager
    def exclusive(self, identity: str) -> Iterator[None]:
        """
        Hold exclusive access to an identity for the duration of the block.

        Raises:
            StoreLockError: If access was not granted within ``lock_timeout``
        """
        started = time.monotonic()
        lock = self._lock_for(identity)

        if not lock.acquire(timeout=self.lock_timeout):
            raise self._timeout_error(identity)

        process_lock = None
        try:
            if self.process_locks:
                remaining = max(0.0, self.lock_timeout - (time.monotonic() - started))
                process_lock = ProcessLock(self.store.lock_path_for(identity), self.store.file_manager)
                if not process_lock.acquire(timeout=remaining):
                    raise self._timeout_error(identity)

            logger.debug(f"Acquired store lock for {identity} after {time.monotonic() - started:.3f}s")
            yield
        finally:
            if process_lock is not None:
                process_lock.release()
            lock.release()

    def mutate(self, identity: str, operation: Callable[[SecretDocument], T]) -> T:
        """
        Run one load -> compute -> save cycle under exclusive access.

        The document is written back only if the operation changed it. If the
        operation raises, nothing is saved.

        Args:
            identity: Store identity
            operation: Function that modifies the loaded document in place

        Returns:
            The operation's return value
        """
        with self.exclusive(identity):
            document = self.store.load(identity)
            before = document.serialize()

            result = operation(document)

            if document.serialize() != before:
                self.store.save(identity, document)
            else:
                logger.debug(f"No changes for {identity}; document not rewritten")

            return result

    def _timeout_error(self, identity: str) -> StoreLockError:
        return StoreLockError(
            f"Timed out after {self.lock_timeout}s waiting for the secrets of {identity}",
            suggestions=create_error_suggestions("lock_timeout"),
        )

import threading
from contextlib import contextmanager
from typing import Iterator


class ConversationLocks:
    """One lock per conversation id; calls for the same id run one at a time."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[conversation_id] = lock
            return lock

    @contextmanager
    def hold(self, conversation_id: str) -> Iterator[None]:
        lock = self._lock_for(conversation_id)
        with lock:
            yield

    def discard(self, conversation_id: str) -> None:
        """Forget the lock of an evicted conversation."""
        with self._guard:
            lock = self._locks.get(conversation_id)
            if lock is not None and not lock.locked():
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)

# lesson-booking-backend/locks.py
"""
In-process keyed mutexes.

Mutations for the same teacher (or claims on the same slot) take the same
key and run one at a time; different keys never wait on each other.
Entries are reference counted and dropped once nobody holds or waits on
them, so the registry does not grow with the number of slots ever seen.
"""

from contextlib import contextmanager
import logging
import threading
from typing import Dict, Iterable, Iterator, List

from exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


def teacher_key(teacher_id: int) -> str:
    return f"teacher:{teacher_id}"


def slot_key(slot_id: int) -> str:
    return f"slot:{slot_id}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: float) -> Iterator[None]:
        """
        Acquire every key (sorted, so two holders never deadlock) or none.

        Raises LockTimeoutError if a key cannot be taken within `timeout`
        seconds; locks already taken are released before raising.
        """
        acquired: List[tuple] = []
        try:
            for key in sorted(set(keys)):
                entry = self._checkout(key)
                if not entry.lock.acquire(timeout=timeout):
                    self._checkin(key, entry)
                    logger.warning("Timed out waiting for lock %s after %.1fs", key, timeout)
                    raise LockTimeoutError(key)
                acquired.append((key, entry))
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._checkin(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


# Shared by every unit of work in this process
registry = KeyedLocks()

"""
In-process cache of per-user conversation histories with per-user locks.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..models.core import ConversationMessage


class ConversationCache:
    """Histories keyed by user id.

    ``lock(user_id)`` serializes the load-or-create, mutate and persist
    sequence of a turn for one user. Different users never share a lock.
    A user's lock lives while the user has a cached history or while any
    thread holds or waits for it.
    """

    def __init__(self):
        self._histories: Dict[str, List[ConversationMessage]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._lock_users: Dict[str, int] = {}
        self._registry_lock = threading.Lock()

    def _drop_lock_if_idle(self, user_id: str) -> None:
        # caller holds _registry_lock
        if self._lock_users.get(user_id, 0) == 0 and user_id not in self._histories:
            self._locks.pop(user_id, None)
            self._lock_users.pop(user_id, None)

    @contextmanager
    def lock(self, user_id: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.RLock()
            self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._registry_lock:
                self._lock_users[user_id] -= 1
                self._drop_lock_if_idle(user_id)

    def get(self, user_id: str) -> Optional[List[ConversationMessage]]:
        with self._registry_lock:
            return self._histories.get(user_id)

    def put(self, user_id: str, history: List[ConversationMessage]) -> None:
        with self._registry_lock:
            self._histories[user_id] = history

    def remove(self, user_id: str) -> None:
        with self._registry_lock:
            self._histories.pop(user_id, None)
            self._drop_lock_if_idle(user_id)

    def clear(self) -> None:
        """Drop every history and every idle lock.

        Only call once requests have stopped; locks still held or awaited
        are kept.
        """
        with self._registry_lock:
            self._histories.clear()
            for user_id in list(self._locks):
                self._drop_lock_if_idle(user_id)

    def lock_count(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def __contains__(self, user_id: str) -> bool:
        with self._registry_lock:
            return user_id in self._histories

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._histories)

"""Per-path mutual exclusion for files shared between worker threads."""

import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Union


class KeyedLocks:
    """Hands out one re-entrant lock per normalized filesystem path."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @staticmethod
    def key(path: Union[str, os.PathLike]) -> str:
        return os.path.normcase(os.path.abspath(os.fspath(path)))

    def lock_for(self, path: Union[str, os.PathLike]) -> threading.RLock:
        key = self.key(path)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, path: Union[str, os.PathLike]) -> Iterator[None]:
        with self.lock_for(path):
            yield

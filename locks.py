"""
locks.py
Per-key mutual exclusion (one lock per gym id / agent id).
"""

from __future__ import annotations

import logging
import threading
import weakref
from contextlib import contextmanager

import config
from errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


class KeyedLocks:
    def __init__(self, name: str, timeout: float | None = None):
        self.name = name
        self.timeout = config.LOCK_TIMEOUT if timeout is None else timeout
        self._guard = threading.Lock()
        # Entries drop out once no thread holds or waits on the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _lock_for(self, key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key):
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self.timeout):
            logger.warning("Timed out waiting for %s lock %s", self.name, key)
            raise ConcurrencyConflict(f"{self.name} {key} is busy; retry the operation.")
        try:
            yield
        finally:
            lock.release()

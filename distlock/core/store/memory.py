# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from distlock.core.store.provider import KeyValueStore


class MemoryStore(KeyValueStore):
    """Store implementation that keeps keys in process memory.

    Every operation runs under one mutex, so each call is atomic with respect to
    all others, the same way a single-threaded server evaluates commands.
    Expired keys are dropped lazily when they are next touched.

    Example:

        >>> store = MemoryStore()
        >>> store.set_if_absent("res", "token", 5000)
        True
        >>> store.set_if_absent("res", "other", 5000)
        False

    Args:
        clock (Callable[[], float]): Monotonic clock in seconds. Tests inject a fake
            clock to make expiry deterministic.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.dict: Dict[str, Tuple[str, Optional[float]]] = {}
        self._mutex = threading.Lock()

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self.dict.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self.dict[key]
            return None
        return entry

    def _expiry(self, ttl_ms: Optional[int]) -> Optional[float]:
        if ttl_ms is None:
            return None
        return self.clock() + ttl_ms / 1000.0

    def set_if_absent(self, key: str, value: str, ttl_ms: Optional[int]) -> bool:
        with self._mutex:
            if self._live(key) is not None:
                return False
            self.dict[key] = (value, self._expiry(ttl_ms))
            return True

    def compare_and_delete(self, key: str, value: str) -> int:
        with self._mutex:
            entry = self._live(key)
            if entry is None or entry[0] != value:
                return 0
            del self.dict[key]
            return 1

    def compare_and_expire(self, key: str, value: str, ttl_ms: int) -> int:
        with self._mutex:
            entry = self._live(key)
            if entry is None or entry[0] != value:
                return 0
            self.dict[key] = (value, self._expiry(ttl_ms))
            return 1

    def get(self, key: str) -> Optional[str]:
        with self._mutex:
            entry = self._live(key)
            return None if entry is None else entry[0]

    def delete(self, key: str) -> int:
        with self._mutex:
            if self._live(key) is None:
                return 0
            del self.dict[key]
            return 1

    def ttl(self, key: str) -> int:
        with self._mutex:
            entry = self._live(key)
            if entry is None:
                return -2
            if entry[1] is None:
                return -1
            return int((entry[1] - self.clock()) * 1000)

    def expire(self, key: str, ttl_ms: int) -> int:
        """Unconditionally sets the expiry of an existing key."""
        with self._mutex:
            entry = self._live(key)
            if entry is None:
                return 0
            self.dict[key] = (entry[0], self._expiry(ttl_ms))
            return 1

    def __len__(self):
        with self._mutex:
            return sum(1 for key in list(self.dict) if self._live(key) is not None)

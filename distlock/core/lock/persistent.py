# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# This file was originally part of Hub (now Deep Lake) project: https://github.com/activeloopai/deeplake/tree/release/2.8.5
# Commit: https://github.com/activeloopai/deeplake/tree/94c5e100292c164b80132baf741ef233dd41f3d7
# Source: https://github.com/activeloopai/deeplake/blob/94c5e100292c164b80132baf741ef233dd41f3d7/hub/core/lock.py
#
# Modifications Copyright (c) 2026 Xueling Lin

"""
Persistent lock that auto-refreshes to maintain lock validity.
"""

import atexit
import threading
from typing import Callable, Optional

import distlock
from distlock.client.log import logger
from distlock.core.lock.base import BaseLock
from distlock.core.lock.fencing import LockHandle
from distlock.util.exceptions import LockedException


class PersistentLock(BaseLock):
    """Lock handle whose expiry is extended by a background thread.

    The lock is acquired on construction. Every ``update_interval`` seconds the
    thread resets the expiry of the key to the handle's full duration, as long as
    the handle's token still owns it. If the lock is lost, the thread stops and
    ``lock_lost_callback`` is called.

    Example:
        >>> handle = FencingLock(store).handle("res", expire_time=30000)
        >>> lock = PersistentLock(handle)  # Raises LockedException if held elsewhere
        >>> lock.release()

    Args:
        lock: The handle to keep alive.
        lock_lost_callback: Called if the lock is lost after acquiring.
        timeout: Milliseconds to keep trying to acquire before raising LockedException.
            None makes a single attempt.
        update_interval: Seconds between two refreshes (default: LOCK_UPDATE_INTERVAL).

    Raises:
        LockedException: If the lock is held by another client.
    """

    def __init__(
        self,
        lock: LockHandle,
        lock_lost_callback: Optional[Callable] = None,
        timeout: Optional[int] = None,
        update_interval: Optional[float] = None,
    ):
        super().__init__(lock.path, lock.duration)
        self.lock = lock
        self.lock_lost_callback = lock_lost_callback
        self.timeout = timeout
        self.update_interval = (
            distlock.constants.LOCK_UPDATE_INTERVAL if update_interval is None else update_interval
        )
        self._thread_lock = threading.Lock()
        self._stopped = threading.Event()
        self._acquired = False
        self._thread = None

        if not self.acquire():
            raise LockedException(f"Unable to acquire the lock on '{self.path}'.")
        atexit.register(self.release)

    @property
    def acquired(self):
        """Whether the lock is currently held."""
        return self._acquired

    def acquire(self, timeout: Optional[int] = None) -> bool:
        """Acquire the lock and start the auto-refresh thread."""
        if self._acquired:
            return True
        actual_timeout = timeout if timeout is not None else self.timeout
        if not self.lock.acquire(timeout=actual_timeout):
            return False
        self._stopped.clear()
        self._thread = threading.Thread(target=self._lock_loop, daemon=True)
        self._thread.start()
        self._acquired = True
        return True

    def release(self) -> bool:
        """Stop the auto-refresh thread and release the lock."""
        if not self._acquired:
            return False
        with self._thread_lock:
            self._acquired = False
            self._stopped.set()
        return self.lock.release()

    def refresh_lock(self):
        """Refresh the underlying lock.

        Raises:
            LockedException: If the lock is no longer held.
        """
        if not self._acquired:
            raise LockedException(f"Lock on '{self.path}' is not held.")
        self.lock.refresh_lock()

    def _lock_loop(self):
        """Background thread that periodically refreshes the lock."""
        while not self._stopped.wait(self.update_interval):
            with self._thread_lock:
                if not self._acquired:
                    return
                try:
                    self.lock.refresh_lock()
                except LockedException:
                    logger.warning(f"Lock on {self.path} was lost")
                    self._acquired = False
                    break
        else:
            return
        if self.lock_lost_callback:
            self.lock_lost_callback()

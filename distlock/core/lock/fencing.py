# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Store-backed fencing lock.

The lock is a single key whose value is the owner token of the acquisition that
wrote it. The key is written with "set if absent" and its expiry in one store
operation, and released with a server-side compare-and-delete, so a client can
never remove a lock that expired and was taken by somebody else.
"""

import threading
import time
import uuid
from os import getpid
from typing import Optional

from distlock.client.log import logger
from distlock.constants import DEFAULT_BLOCK_TIME, DEFAULT_EXPIRE_TIME, DEFAULT_SLEEP_TIME, LOCK_KEY_PREFIX
from distlock.core.lock.base import BaseLock
from distlock.core.store.provider import KeyValueStore
from distlock.util.exceptions import InvalidParameterError, LockedException, TransientBackendError


def _new_token() -> str:
    return f"{uuid.getnode()}:{getpid()}:{uuid.uuid4().hex}"


def _check_positive(name: str, value):
    if value is None or value <= 0:
        raise InvalidParameterError(name, value)


class FencingLock:
    """Acquires and releases owner-token locks on keys of a ``KeyValueStore``.

    Blocking is done by polling: a failed attempt sleeps ``sleep_time`` seconds and
    tries again until the block time runs out. The store offers no fairness, any
    waiting client may win a given retry.

    Example:
        >>> import redis
        >>> from distlock.core.store import RedisStore
        >>> lock = FencingLock(RedisStore(redis.Redis()))
        >>> token = lock.acquire("res", block_time=1000, expire_time=5000)
        >>> if token:
        ...     try:
        ...         pass  # Critical section
        ...     finally:
        ...         lock.release("res", token)

    Args:
        store: The store holding the lock keys.
        sleep_time: Seconds between two acquisition attempts (default: 10 ms).
        prefix: Prefix prepended to every lock key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        sleep_time: Optional[float] = None,
        prefix: Optional[str] = None,
    ):
        self.store = store
        self.sleep_time = DEFAULT_SLEEP_TIME if sleep_time is None else sleep_time
        self.prefix = LOCK_KEY_PREFIX if prefix is None else prefix

    def lock_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def acquire(
        self,
        key: str,
        block_time: Optional[int] = None,
        expire_time: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """Acquire the lock on ``key`` with a freshly minted owner token.

        Args:
            key: The lock name.
            block_time: Milliseconds to keep retrying while the key is held
                (default: DEFAULT_BLOCK_TIME).
            expire_time: Milliseconds after which the store drops the lock
                (default: DEFAULT_EXPIRE_TIME).
            cancel_event: Setting this event abandons the attempt at the next backoff.

        Returns:
            The owner token if the lock was acquired, else None. None is also
            returned when the store could not be reached.

        Raises:
            InvalidParameterError: If ``block_time`` or ``expire_time`` is not positive.
        """
        block_time = DEFAULT_BLOCK_TIME if block_time is None else block_time
        expire_time = DEFAULT_EXPIRE_TIME if expire_time is None else expire_time
        _check_positive("block_time", block_time)
        _check_positive("expire_time", expire_time)
        token = _new_token()
        if self._poll(key, token, block_time, expire_time, cancel_event):
            return token
        return None

    def _poll(self, key, token, block_time, expire_time, cancel_event=None) -> bool:
        lock_key = self.lock_key(key)
        end_time = time.monotonic() + block_time / 1000.0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Acquisition of {lock_key} cancelled")
                return False
            try:
                if self.store.set_if_absent(lock_key, token, expire_time):
                    return True
            except TransientBackendError as e:
                logger.warning(f"Unable to acquire {lock_key}: {e}")
                return False
            if time.monotonic() >= end_time:
                logger.debug(f"Timed out after {block_time} ms waiting for {lock_key}")
                return False
            # Acquisition failed, back off and try again.
            if cancel_event is None:
                time.sleep(self.sleep_time)
            elif cancel_event.wait(self.sleep_time):
                logger.info(f"Acquisition of {lock_key} cancelled")
                return False

    def release(self, key: str, token: Optional[str]) -> bool:
        """Release the lock on ``key`` if it is still owned by ``token``.

        Returns:
            True only if this call deleted the key. False when the token does not
            match (the lock expired or belongs to another client) or the store
            could not be reached; in the latter case the lock state is unknown.
        """
        if not token:
            return False
        lock_key = self.lock_key(key)
        try:
            deleted = self.store.compare_and_delete(lock_key, token)
        except TransientBackendError as e:
            logger.warning(f"Unable to release {lock_key}, its state is unknown: {e}")
            return False
        if not deleted:
            logger.info(f"Lock {lock_key} is not owned by this token, nothing released")
        return deleted == 1

    def refresh(self, key: str, token: str, expire_time: int) -> bool:
        """Reset the expiry of ``key`` to ``expire_time`` ms if ``token`` still owns it."""
        _check_positive("expire_time", expire_time)
        lock_key = self.lock_key(key)
        try:
            return self.store.compare_and_expire(lock_key, token, expire_time) == 1
        except TransientBackendError as e:
            logger.warning(f"Unable to refresh {lock_key}: {e}")
            return False

    def handle(self, key: str, expire_time: Optional[int] = None, token: Optional[str] = None) -> "LockHandle":
        return LockHandle(self, key, expire_time, token)


class LockHandle(BaseLock):
    """Reentrant lock on one key, owned by the context that holds the handle.

    The handle carries its own token and hold count. Every first-level acquisition
    mints a new token unless one was given. Acquiring a held handle only increments
    the count; the store is released when the count drops back to zero.
    A handle must not be shared between threads.

    Example:
        >>> handle = FencingLock(store).handle("res", expire_time=5000)
        >>> with handle:
        ...     with handle:  # no store round-trip
        ...         pass

    Args:
        lock: The engine performing the store operations.
        key: The lock name.
        expire_time: Lock validity in milliseconds (default: DEFAULT_EXPIRE_TIME).
        token: Owner token used for every acquisition. A fresh one is minted per
            acquisition if omitted.
    """

    def __init__(
        self,
        lock: FencingLock,
        key: str,
        expire_time: Optional[int] = None,
        token: Optional[str] = None,
    ):
        expire_time = DEFAULT_EXPIRE_TIME if expire_time is None else expire_time
        _check_positive("expire_time", expire_time)
        super().__init__(key, expire_time)
        self.lock = lock
        self._fixed_token = token
        self.token = token or _new_token()
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def acquired(self) -> bool:
        return self._count > 0

    def acquire(self, timeout: Optional[int] = None) -> bool:
        """Acquire the lock, or re-enter it if this handle already holds it.

        Args:
            timeout: Milliseconds to keep retrying. None or 0 makes a single attempt.

        Returns:
            bool: True if the lock is held by this handle.
        """
        if self._count > 0:
            self._count += 1
            return True
        if timeout is not None and timeout < 0:
            raise InvalidParameterError("timeout", timeout, "a non-negative number")
        if not self._fixed_token:
            self.token = _new_token()
        if self.lock._poll(self.path, self.token, timeout or 0, self.duration):
            self._count = 1
            return True
        return False

    def release(self) -> bool:
        """Leave one level of the lock.

        Returns:
            bool: True if the store lock was deleted. False while outer levels are
                still held, when the handle is not held, or when the real release
                did not delete the key.
        """
        if self._count == 0:
            return False
        if self._count > 1:
            self._count -= 1
            return False
        try:
            return self.lock.release(self.path, self.token)
        finally:
            self._count = 0

    def refresh_lock(self):
        """Extend the lock expiry to a full ``duration``.

        Raises:
            LockedException: If the lock is no longer held by this handle.
        """
        if not self.acquired:
            raise LockedException(f"Lock on '{self.path}' is not held.")
        if not self.lock.refresh(self.path, self.token, self.duration):
            self._count = 0
            raise LockedException(f"Lock on '{self.path}' was lost.")

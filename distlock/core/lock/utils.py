# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Factory for building lock handles from configuration.
"""

from typing import Optional

import distlock
from distlock.core.coordination.provider import CoordinationProvider
from distlock.core.lock.base import BaseLock
from distlock.core.lock.fair import FairLock
from distlock.core.lock.fencing import FencingLock
from distlock.core.store.memory import MemoryStore
from distlock.core.store.provider import KeyValueStore
from distlock.util.exceptions import InvalidParameterError

# Shared by every "memory" lock of this process.
_MEMORY_STORE = MemoryStore()


def create_lock(
    path: Optional[str] = None,
    lock_type: Optional[str] = None,
    expire_time: Optional[int] = None,
    redis_client=None,
    kazoo_client=None,
    store: Optional[KeyValueStore] = None,
    coordinator: Optional[CoordinationProvider] = None,
) -> BaseLock:
    """Factory function to create appropriate lock based on configuration.

    Args:
        path: The lock key, or the queue parent path for "zookeeper".
        lock_type: "redis", "memory" or "zookeeper". Uses config default if None.
        expire_time: Lock validity in milliseconds for fencing locks.
        redis_client: Redis client instance. Built from config if needed and missing.
        kazoo_client: Started KazooClient. Built from config if needed and missing.
        store: Store to use instead of building one.
        coordinator: Coordination provider to use instead of building one.

    Returns:
        A ``LockHandle`` for "redis" and "memory", a ``FairLock`` for "zookeeper".

    Raises:
        InvalidParameterError: If the lock type is unknown.
    """
    constants = distlock.constants
    if lock_type is None:
        lock_type = getattr(constants, "LOCK_TYPE", "redis")
    if expire_time is None:
        expire_time = getattr(constants, "DEFAULT_EXPIRE_TIME", 30000)

    if lock_type == "redis":
        if store is None:
            if redis_client is None:
                # Try to create a Redis client from configuration
                import redis
                redis_client = redis.Redis(
                    host=getattr(constants, "REDIS_LOCK_HOST", "localhost"),
                    port=getattr(constants, "REDIS_LOCK_PORT", 6379),
                    db=getattr(constants, "REDIS_LOCK_DB", 0),
                    password=getattr(constants, "REDIS_LOCK_PASSWORD", None),
                )
            from distlock.core.store.redis_store import RedisStore
            store = RedisStore(redis_client)
        return FencingLock(store).handle(path or "default", expire_time)

    if lock_type == "memory":
        return FencingLock(store or _MEMORY_STORE).handle(path or "default", expire_time)

    if lock_type == "zookeeper":
        if coordinator is None:
            if kazoo_client is None:
                from kazoo.client import KazooClient
                kazoo_client = KazooClient(hosts=getattr(constants, "ZOOKEEPER_HOSTS", "127.0.0.1:2181"))
                kazoo_client.start()
            from distlock.core.coordination.kazoo_provider import KazooCoordinator
            coordinator = KazooCoordinator(kazoo_client)
        return FairLock(
            coordinator,
            parent_path=path,
            wait_time=getattr(constants, "DEFAULT_WAIT_TIME", None),
        )

    raise InvalidParameterError("lock_type", lock_type, "one of 'redis', 'memory', 'zookeeper'")

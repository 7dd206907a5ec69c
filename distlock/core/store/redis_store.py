# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Redis implementation of the conditional key-value store.
"""

from functools import wraps
from typing import Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from distlock.core.store.provider import KeyValueStore
from distlock.util.exceptions import TransientBackendError

# Lua script for atomic release - only delete if we own the lock
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Lua script for atomic refresh - only extend if we own the lock
REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


def _transient(operation: str):
    def decorator(func):
        @wraps(func)
        def inner(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (RedisConnectionError, RedisTimeoutError) as e:
                raise TransientBackendError(operation, str(e)) from e
        return inner
    return decorator


def _decode(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisStore(KeyValueStore):
    """Key-value store backed by a Redis server.

    Acquisition uses SET with NX and PX, so the write and its expiry are one
    command. Release and refresh run as Lua scripts evaluated by the server.

    Example:
        >>> import redis
        >>> store = RedisStore(redis.Redis(host="localhost", port=6379, db=0))
        >>> store.set_if_absent("res", "token", 5000)
        True

    Args:
        redis_client: A ``redis.Redis`` client instance.
    """

    def __init__(self, redis_client):
        self.redis_client = redis_client
        self._release_script = None
        self._refresh_script = None

    def _get_release_script(self):
        """Get or register the release Lua script."""
        if self._release_script is None:
            self._release_script = self.redis_client.register_script(RELEASE_SCRIPT)
        return self._release_script

    def _get_refresh_script(self):
        """Get or register the refresh Lua script."""
        if self._refresh_script is None:
            self._refresh_script = self.redis_client.register_script(REFRESH_SCRIPT)
        return self._refresh_script

    @_transient("set_if_absent")
    def set_if_absent(self, key: str, value: str, ttl_ms: Optional[int]) -> bool:
        # SET key value NX PX milliseconds
        result = self.redis_client.set(key, value, nx=True, px=ttl_ms)
        return bool(result)

    @_transient("compare_and_delete")
    def compare_and_delete(self, key: str, value: str) -> int:
        release_script = self._get_release_script()
        return int(release_script(keys=[key], args=[value]) or 0)

    @_transient("compare_and_expire")
    def compare_and_expire(self, key: str, value: str, ttl_ms: int) -> int:
        refresh_script = self._get_refresh_script()
        return int(refresh_script(keys=[key], args=[value, ttl_ms]) or 0)

    @_transient("get")
    def get(self, key: str) -> Optional[str]:
        return _decode(self.redis_client.get(key))

    @_transient("delete")
    def delete(self, key: str) -> int:
        return int(self.redis_client.delete(key))

    @_transient("ttl")
    def ttl(self, key: str) -> int:
        return int(self.redis_client.pttl(key))

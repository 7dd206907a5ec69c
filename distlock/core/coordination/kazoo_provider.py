# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
ZooKeeper implementation of the coordination provider, using kazoo.
"""

from functools import wraps
from typing import Callable, List

from kazoo.exceptions import ConnectionLoss, NoNodeError, OperationTimeoutError, SessionExpiredError
from kazoo.handlers.threading import KazooTimeoutError

from distlock.core.coordination.provider import CoordinationProvider
from distlock.util.exceptions import NodeNotFoundError, TransientBackendError

_TRANSIENT_ERRORS = (ConnectionLoss, OperationTimeoutError, SessionExpiredError, KazooTimeoutError)


def _transient(operation: str):
    def decorator(func):
        @wraps(func)
        def inner(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except _TRANSIENT_ERRORS as e:
                raise TransientBackendError(operation, str(e)) from e
        return inner
    return decorator


class KazooCoordinator(CoordinationProvider):
    """Coordination provider backed by a started ``kazoo.client.KazooClient``.

    Example:
        >>> from kazoo.client import KazooClient
        >>> client = KazooClient(hosts="127.0.0.1:2181")
        >>> client.start()
        >>> coordinator = KazooCoordinator(client)

    Args:
        client: A connected ``KazooClient``. Its session owns every ephemeral node
            created through this provider.
    """

    def __init__(self, client):
        self.client = client

    @_transient("ensure_path")
    def ensure_path(self, path: str):
        self.client.ensure_path(path)

    @_transient("create_ephemeral_sequential")
    def create_ephemeral_sequential(self, prefix: str, data: bytes = b"") -> str:
        try:
            return self.client.create(prefix, data, ephemeral=True, sequence=True)
        except NoNodeError as e:
            raise NodeNotFoundError(prefix.rsplit("/", 1)[0]) from e

    @_transient("get_children")
    def get_children(self, path: str) -> List[str]:
        try:
            return self.client.get_children(path)
        except NoNodeError as e:
            raise NodeNotFoundError(path) from e

    @_transient("exists")
    def exists(self, path: str) -> bool:
        return self.client.exists(path) is not None

    @_transient("delete")
    def delete(self, path: str):
        try:
            self.client.delete(path)
        except NoNodeError:
            pass

    @_transient("subscribe_deletion")
    def subscribe_deletion(self, path: str, callback: Callable[[str], None]) -> bool:
        # Any event on the watched node leads to a re-check, which is idempotent.
        def watcher(event):
            callback(event.path or path)

        return self.client.exists(path, watch=watcher) is not None

    def close(self):
        self.client.stop()
        self.client.close()

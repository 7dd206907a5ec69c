# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
In-process coordination service with sessions, sequential nodes and deletion watches.
"""

import itertools
import posixpath
import queue
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set

from distlock.client.log import logger
from distlock.constants import SEQUENCE_LENGTH
from distlock.core.coordination.provider import CoordinationProvider
from distlock.util.exceptions import NodeNotFoundError, TransientBackendError


class _Node:
    __slots__ = ("data", "owner")

    def __init__(self, data: bytes, owner: Optional[int]):
        self.data = data
        self.owner = owner


class MemoryEnsemble:
    """Shared node tree that several ``MemoryCoordinator`` sessions connect to.

    Watches are delivered by a single notification thread, in the order the
    deletions happened, the way a client library's event thread delivers them.
    """

    def __init__(self):
        self._mutex = threading.Lock()
        self._nodes: Dict[str, _Node] = {"/": _Node(b"", None)}
        self._children: Dict[str, Set[str]] = defaultdict(set)
        self._sequences: Dict[str, int] = defaultdict(int)
        self._watches: Dict[str, List[Callable[[str], None]]] = defaultdict(list)
        self._session_ids = itertools.count(1)
        self._events: "queue.Queue" = queue.Queue()
        self.watch_fire_count = 0
        self.closed = False
        self._thread = threading.Thread(target=self._dispatch_loop, daemon=True)
        self._thread.start()

    def new_session(self) -> int:
        return next(self._session_ids)

    def _dispatch_loop(self):
        while True:
            event = self._events.get()
            if event is None:
                self._events.task_done()
                return
            callback, path = event
            try:
                callback(path)
            except Exception:  # pylint: disable=broad-except
                logger.exception(f"Watch callback for {path} raised")
            finally:
                self._events.task_done()

    def close(self):
        """Stops the notification thread after it has delivered the watches already fired."""
        with self._mutex:
            if self.closed:
                return
            self.closed = True
        self._events.put(None)
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def wait_for_notifications(self):
        """Blocks until every fired watch has been delivered."""
        self._events.join()

    def pending_watch_count(self) -> int:
        with self._mutex:
            return sum(len(callbacks) for callbacks in self._watches.values())

    def _fire(self, path: str):
        callbacks = self._watches.pop(path, [])
        self.watch_fire_count += len(callbacks)
        for callback in callbacks:
            self._events.put((callback, path))

    def ensure_path(self, path: str):
        with self._mutex:
            parts = [p for p in path.split("/") if p]
            current = "/"
            for part in parts:
                child = posixpath.join(current, part)
                if child not in self._nodes:
                    self._nodes[child] = _Node(b"", None)
                    self._children[current].add(part)
                current = child

    def create_sequential(self, prefix: str, data: bytes, owner: int) -> str:
        with self._mutex:
            parent = posixpath.dirname(prefix) or "/"
            if parent not in self._nodes:
                raise NodeNotFoundError(parent)
            sequence = self._sequences[parent]
            self._sequences[parent] += 1
            path = f"{prefix}{sequence:0{SEQUENCE_LENGTH}d}"
            self._nodes[path] = _Node(data, owner)
            self._children[parent].add(posixpath.basename(path))
            return path

    def get_children(self, path: str) -> List[str]:
        with self._mutex:
            if path not in self._nodes:
                raise NodeNotFoundError(path)
            return list(self._children[path])

    def exists(self, path: str) -> bool:
        with self._mutex:
            return path in self._nodes

    def delete(self, path: str):
        with self._mutex:
            self._delete(path)

    def _delete(self, path: str):
        if path not in self._nodes:
            return
        del self._nodes[path]
        self._children.pop(path, None)
        parent = posixpath.dirname(path) or "/"
        self._children[parent].discard(posixpath.basename(path))
        self._fire(path)

    def subscribe_deletion(self, path: str, callback: Callable[[str], None]) -> bool:
        with self._mutex:
            if path not in self._nodes:
                return False
            self._watches[path].append(callback)
            return True

    def expire_session(self, session_id: int):
        """Removes every ephemeral node owned by ``session_id``."""
        with self._mutex:
            owned = [path for path, node in self._nodes.items() if node.owner == session_id]
            for path in owned:
                self._delete(path)


class MemoryCoordinator(CoordinationProvider):
    """One client session on a ``MemoryEnsemble``.

    Example:

        >>> ensemble = MemoryEnsemble()
        >>> client = MemoryCoordinator(ensemble)
        >>> client.ensure_path("/distribute_lock")
        >>> client.create_ephemeral_sequential("/distribute_lock/lock-")
        '/distribute_lock/lock-0000000000'

    Args:
        ensemble (MemoryEnsemble, optional): Shared tree. A private one is created if omitted
            and closed together with this session.
    """

    def __init__(self, ensemble: Optional[MemoryEnsemble] = None):
        self._owns_ensemble = ensemble is None
        self.ensemble = ensemble if ensemble is not None else MemoryEnsemble()
        self.session_id = self.ensemble.new_session()
        self.closed = False

    def _check_session(self, operation: str):
        if self.closed:
            raise TransientBackendError(operation, "Session is closed.")

    def ensure_path(self, path: str):
        self._check_session("ensure_path")
        self.ensemble.ensure_path(path)

    def create_ephemeral_sequential(self, prefix: str, data: bytes = b"") -> str:
        self._check_session("create_ephemeral_sequential")
        return self.ensemble.create_sequential(prefix, data, self.session_id)

    def get_children(self, path: str) -> List[str]:
        self._check_session("get_children")
        return self.ensemble.get_children(path)

    def exists(self, path: str) -> bool:
        self._check_session("exists")
        return self.ensemble.exists(path)

    def delete(self, path: str):
        self._check_session("delete")
        self.ensemble.delete(path)

    def subscribe_deletion(self, path: str, callback: Callable[[str], None]) -> bool:
        self._check_session("subscribe_deletion")
        return self.ensemble.subscribe_deletion(path, callback)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.ensemble.expire_session(self.session_id)
        if self._owns_ensemble:
            self.ensemble.close()

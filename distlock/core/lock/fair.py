# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Queue-backed fair lock on a hierarchical coordination service.

Every contender creates an ephemeral sequential node under a parent path. The
node with the smallest sequence number holds the lock; every other contender
watches only the node immediately before its own, so a release wakes a single
waiter.
"""

import posixpath
import threading
import time
import uuid
from typing import List, Optional

from distlock.client.log import logger
from distlock.constants import LOCK_NODE_NAME, MAX_RETRY_TIMES, PARENT_LOCK_PATH, SEQUENCE_LENGTH
from distlock.core.coordination.provider import CoordinationProvider
from distlock.core.lock.base import BaseLock
from distlock.util.exceptions import LockedException, RetryBudgetExhaustedError, TransientBackendError

# Latch waits are sliced so that a cancel event is noticed.
_CANCEL_POLL_INTERVAL = 0.05


def _sequence(name: str) -> int:
    return int(name[-SEQUENCE_LENGTH:])


class FairLock(BaseLock):
    """FIFO lock: contenders are granted the lock in the order their nodes were created.

    Example:
        >>> from distlock.core.coordination import MemoryCoordinator
        >>> lock = FairLock(MemoryCoordinator(), "/distribute_lock")
        >>> lock.add_lock()
        True
        >>> lock.release_lock()
        True

    Args:
        coordinator: Session on the coordination service.
        parent_path: Parent node of the queue (default: PARENT_LOCK_PATH).
        wait_time: Seconds to wait on one predecessor before re-checking the queue.
            None waits until the predecessor is deleted.
        max_retry_times: Extra attempts to create the queue node after a transient fault.
        data: Payload stored in the queue node.
    """

    def __init__(
        self,
        coordinator: CoordinationProvider,
        parent_path: Optional[str] = None,
        wait_time: Optional[float] = None,
        max_retry_times: Optional[int] = None,
        data: bytes = b"",
    ):
        parent_path = PARENT_LOCK_PATH if parent_path is None else parent_path
        super().__init__(parent_path.rstrip("/") or "/")
        self.coordinator = coordinator
        self.wait_time = wait_time
        self.max_retry_times = MAX_RETRY_TIMES if max_retry_times is None else max_retry_times
        self.data = data
        self.contender_id = uuid.uuid4().hex
        self.current_lock_path: Optional[str] = None
        self.acquired = False

    @property
    def parent_path(self) -> str:
        return self.path

    @property
    def _prefix(self) -> str:
        return posixpath.join(self.path, f"{self.contender_id}{LOCK_NODE_NAME}")

    def acquire(self, timeout: Optional[float] = None) -> bool:
        return self.add_lock(timeout=timeout)

    def release(self) -> bool:
        return self.release_lock()

    def add_lock(self, timeout: Optional[float] = None, cancel_event: Optional[threading.Event] = None) -> bool:
        """Queue for the lock and block until it is held.

        Args:
            timeout: Seconds to wait in the queue. None waits until the lock is held.
            cancel_event: Setting this event abandons the wait.

        Returns:
            bool: True once the lock is held. False if the wait timed out or was
                cancelled. The queue node has then been deleted, or is kept
                for the next call to delete if every deletion attempt failed.

        Raises:
            RetryBudgetExhaustedError: If the queue node could not be created.
            LockedException: If the queue node disappeared while waiting.
        """
        if self.acquired:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        self.coordinator.ensure_path(self.path)
        self._remove_stale_nodes()
        self.current_lock_path = self._create_node()
        try:
            held = self._wait_for_lock(deadline, cancel_event)
        except BaseException:
            self._abandon()
            raise
        if not held:
            self._abandon()
            return False
        self.acquired = True
        logger.debug(f"Lock {self.path} held by {self.current_lock_path}")
        return True

    def release_lock(self) -> bool:
        """Delete this contender's queue node. Returns False if nothing was queued.

        A node left behind by an abandoned wait whose cleanup failed is deleted here too.
        """
        if self.current_lock_path is None:
            return False
        self.coordinator.delete(self.current_lock_path)
        self.current_lock_path = None
        self.acquired = False
        return True

    def _remove_stale_nodes(self):
        stale = set(self._own_nodes())
        if self.current_lock_path is not None:
            stale.add(self.current_lock_path)
        for path in stale:
            logger.info(f"Deleting stale queue node {path}")
            self.coordinator.delete(path)
        self.current_lock_path = None

    def _create_node(self) -> str:
        attempts = 0
        while True:
            attempts += 1
            try:
                return self.coordinator.create_ephemeral_sequential(self._prefix, self.data)
            except TransientBackendError as e:
                # The create may have succeeded before the fault was reported.
                existing = self._find_own_node()
                if existing is not None:
                    logger.info(f"Recovered queue node {existing} after: {e}")
                    return existing
                if attempts > self.max_retry_times:
                    raise RetryBudgetExhaustedError(self.path, attempts) from e
                logger.warning(f"Creating queue node under {self.path} failed, retrying ({attempts}): {e}")

    def _own_nodes(self) -> List[str]:
        children = self.coordinator.get_children(self.path)
        return [posixpath.join(self.path, c) for c in children if c.startswith(self.contender_id)]

    def _find_own_node(self) -> Optional[str]:
        try:
            nodes = self._own_nodes()
        except TransientBackendError as e:
            logger.debug(f"Unable to look up own queue node: {e}")
            return None
        return nodes[0] if nodes else None

    def _sorted_children(self) -> List[str]:
        children = [c for c in self.coordinator.get_children(self.path) if LOCK_NODE_NAME in c]
        return sorted(children, key=_sequence)

    def _check_position(self) -> Optional[str]:
        """Return None if this contender holds the lock, else the path of its predecessor."""
        children = self._sorted_children()
        own = posixpath.basename(self.current_lock_path)
        try:
            index = children.index(own)
        except ValueError:
            raise LockedException(f"Queue node {self.current_lock_path} no longer exists.") from None
        if index == 0:
            return None
        return posixpath.join(self.path, children[index - 1])

    def _wait_for_lock(self, deadline: Optional[float], cancel_event: Optional[threading.Event]) -> bool:
        latch: Optional[threading.Event] = None
        watched: Optional[str] = None
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False
            predecessor = self._check_position()
            if predecessor is None:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            # One watch per predecessor; a timed-out slice re-waits on the same latch.
            if predecessor != watched or latch.is_set():
                latch = threading.Event()
                if not self.coordinator.subscribe_deletion(predecessor, lambda _path, latch=latch: latch.set()):
                    watched = None
                    continue
                watched = predecessor
            if self.wait_time is not None:
                remaining = self.wait_time if remaining is None else min(remaining, self.wait_time)
            self._await(latch, remaining, cancel_event)

    @staticmethod
    def _await(latch: threading.Event, timeout: Optional[float], cancel_event: Optional[threading.Event]):
        if cancel_event is None:
            latch.wait(timeout)
            return
        end_time = None if timeout is None else time.monotonic() + timeout
        while not latch.is_set() and not cancel_event.is_set():
            step = _CANCEL_POLL_INTERVAL
            if end_time is not None:
                step = min(step, end_time - time.monotonic())
                if step <= 0:
                    return
            latch.wait(step)

    def _abandon(self):
        """Delete the queue node of a wait that gave up.

        If every attempt fails the path is kept, so that the next ``add_lock`` or
        ``release_lock`` deletes it instead of queueing behind it.
        """
        path = self.current_lock_path
        if path is None:
            return
        self.acquired = False
        attempts = 0
        while True:
            attempts += 1
            try:
                self.coordinator.delete(path)
            except TransientBackendError as e:
                if attempts > self.max_retry_times:
                    logger.warning(f"Unable to delete abandoned queue node {path}, keeping it for cleanup: {e}")
                    return
                logger.warning(f"Deleting abandoned queue node {path} failed, retrying ({attempts}): {e}")
                continue
            self.current_lock_path = None
            return

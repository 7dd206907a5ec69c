# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Tests for the queue-backed fair lock.

Every contender uses its own MemoryCoordinator session on a shared
MemoryEnsemble, the way separate processes share one coordination service.
"""

import posixpath
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from kazoo.exceptions import ConnectionLoss, NoNodeError

from distlock.core.coordination import KazooCoordinator, MemoryCoordinator, MemoryEnsemble
from distlock.core.lock import FairLock
from distlock.util.exceptions import (
    LockedException,
    NodeNotFoundError,
    RetryBudgetExhaustedError,
    TransientBackendError,
)
from tests.utils import wait_until

PARENT = "/distribute_lock"


def _queue_length(ensemble):
    return len(ensemble.get_children(PARENT)) if ensemble.exists(PARENT) else 0


class _Contender:
    """Runs add_lock on a thread and holds the lock until told to release."""

    def __init__(self, ensemble, name, granted, errors, **kwargs):
        self.name = name
        self.lock = FairLock(MemoryCoordinator(ensemble), PARENT, **kwargs)
        self.release_event = threading.Event()
        self._granted = granted
        self._errors = errors
        self.sequence = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self):
        try:
            if self.lock.add_lock():
                self.sequence = int(posixpath.basename(self.lock.current_lock_path)[-10:])
                self._granted.append(self.name)
                self.release_event.wait(10)
                self.lock.release_lock()
        except Exception as e:
            self._errors.append(e)

    def start(self):
        self.thread.start()


def _start_in_order(ensemble, names, granted, errors, **kwargs):
    """Start contenders one by one, each after the previous one has queued."""
    contenders = []
    for name in names:
        expected = _queue_length(ensemble) + 1
        contender = _Contender(ensemble, name, granted, errors, **kwargs)
        contender.start()
        assert wait_until(lambda: _queue_length(ensemble) == expected)
        contenders.append(contender)
    return contenders


# ============================================================================
# Test FairLock
# ============================================================================

class TestFairLock:
    """Tests for a single contender and its failure paths."""

    def test_add_lock_holds_immediately(self, ensemble):
        lock = FairLock(MemoryCoordinator(ensemble), PARENT)

        assert lock.add_lock()
        assert lock.acquired
        assert ensemble.exists(PARENT)
        assert lock.current_lock_path.startswith(PARENT + "/")
        assert ensemble.exists(lock.current_lock_path)

        assert lock.release_lock()
        assert not lock.acquired
        assert ensemble.get_children(PARENT) == []

    def test_add_lock_when_already_held(self, ensemble):
        lock = FairLock(MemoryCoordinator(ensemble), PARENT)
        lock.add_lock()
        path = lock.current_lock_path

        assert lock.add_lock()
        assert lock.current_lock_path == path
        assert len(ensemble.get_children(PARENT)) == 1

    def test_release_without_add_lock(self, ensemble):
        assert not FairLock(MemoryCoordinator(ensemble), PARENT).release_lock()

    def test_context_manager(self, ensemble):
        lock = FairLock(MemoryCoordinator(ensemble), PARENT)
        with lock:
            assert lock.acquired
        assert not lock.acquired
        assert ensemble.get_children(PARENT) == []

    def test_timeout_removes_queue_node(self, ensemble):
        """Test that an abandoned wait does not leave a phantom entry behind."""
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        waiter = FairLock(MemoryCoordinator(ensemble), PARENT)

        assert not waiter.add_lock(timeout=0.2)
        assert waiter.current_lock_path is None
        assert ensemble.get_children(PARENT) == [posixpath.basename(holder.current_lock_path)]

        holder.release_lock()
        late = FairLock(MemoryCoordinator(ensemble), PARENT)
        assert late.add_lock(timeout=1)

    def test_cancel_removes_queue_node(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        waiter = FairLock(MemoryCoordinator(ensemble), PARENT)
        cancel = threading.Event()
        timer = threading.Timer(0.1, cancel.set)
        timer.start()

        start = time.monotonic()
        assert not waiter.add_lock(cancel_event=cancel)
        assert time.monotonic() - start < 5
        assert len(ensemble.get_children(PARENT)) == 1
        timer.join()

    def test_timed_wait_rechecks(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        granted, errors = [], []
        _start_in_order(ensemble, ["waiter"], granted, errors, wait_time=0.05)

        time.sleep(0.2)
        assert granted == []
        holder.release_lock()
        assert wait_until(lambda: granted == ["waiter"])
        assert errors == []

    def test_timed_wait_keeps_a_single_watch(self, ensemble):
        """Test that waits timing out on the same predecessor do not add watches."""
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        granted, errors = [], []
        _start_in_order(ensemble, ["waiter"], granted, errors, wait_time=0.05)
        assert wait_until(lambda: ensemble.pending_watch_count() == 1)

        time.sleep(0.6)
        assert ensemble.pending_watch_count() == 1

        holder.release_lock()
        assert wait_until(lambda: granted == ["waiter"])
        ensemble.wait_for_notifications()
        assert ensemble.watch_fire_count == 1
        assert errors == []

    def test_failed_cleanup_is_retried(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        session = MemoryCoordinator(ensemble)
        waiter = FairLock(session, PARENT)
        delete = session.delete
        faults = [TransientBackendError("delete")]

        def flaky(path):
            if faults:
                raise faults.pop()
            delete(path)

        with patch.object(session, "delete", side_effect=flaky):
            assert not waiter.add_lock(timeout=0.1)
        assert waiter.current_lock_path is None
        assert ensemble.get_children(PARENT) == [posixpath.basename(holder.current_lock_path)]

    def test_node_kept_after_failed_cleanup_is_removed_later(self, ensemble):
        """Test that a contender is never queued behind its own abandoned node."""
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        session = MemoryCoordinator(ensemble)
        waiter = FairLock(session, PARENT, max_retry_times=1)

        with patch.object(session, "delete", side_effect=TransientBackendError("delete")) as delete:
            assert not waiter.add_lock(timeout=0.1)
        assert delete.call_count == 2
        abandoned = waiter.current_lock_path
        assert abandoned is not None
        assert ensemble.exists(abandoned)

        holder.release_lock()
        assert waiter.add_lock(timeout=0.5)
        assert not ensemble.exists(abandoned)
        assert ensemble.get_children(PARENT) == [posixpath.basename(waiter.current_lock_path)]
        waiter.release_lock()

    def test_release_removes_abandoned_node(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        session = MemoryCoordinator(ensemble)
        waiter = FairLock(session, PARENT, max_retry_times=0)

        with patch.object(session, "delete", side_effect=TransientBackendError("delete")):
            assert not waiter.add_lock(timeout=0.1)

        assert waiter.release_lock()
        assert waiter.current_lock_path is None
        assert ensemble.get_children(PARENT) == [posixpath.basename(holder.current_lock_path)]

    def test_vanished_predecessor_rechecks_at_once(self, ensemble):
        """Test that a predecessor gone before the watch is set is not waited on."""
        holder_session = MemoryCoordinator(ensemble)
        holder = FairLock(holder_session, PARENT)
        holder.add_lock()
        waiter_session = MemoryCoordinator(ensemble)
        waiter = FairLock(waiter_session, PARENT)

        def vanish(path, callback):
            holder_session.delete(path)
            return False

        with patch.object(waiter_session, "subscribe_deletion", side_effect=vanish) as subscribe:
            assert waiter.add_lock(timeout=2)
        subscribe.assert_called_once()

    def test_session_loss_of_non_adjacent_contender(self, ensemble):
        """Test that position is recomputed when an entry disappears with its session."""
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        middle = MemoryCoordinator(ensemble)
        middle.create_ephemeral_sequential(f"{PARENT}/middle__lock__")
        granted, errors = [], []
        _start_in_order(ensemble, ["last"], granted, errors)

        middle.close()
        ensemble.wait_for_notifications()
        time.sleep(0.1)
        assert granted == []

        holder.release_lock()
        assert wait_until(lambda: granted == ["last"])
        assert errors == []

    def test_own_node_lost_raises(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        granted, errors = [], []
        (waiter,) = _start_in_order(ensemble, ["waiter"], granted, errors)
        assert wait_until(lambda: waiter.lock.current_lock_path is not None)

        ensemble.delete(waiter.lock.current_lock_path)
        holder.release_lock()

        assert wait_until(lambda: len(errors) == 1)
        assert isinstance(errors[0], LockedException)
        assert granted == []


# ============================================================================
# Test Queue Node Creation
# ============================================================================

class TestQueueNodeCreation:
    """Tests for creation retries."""

    def test_transient_faults_are_retried(self, ensemble):
        session = MemoryCoordinator(ensemble)
        create = session.create_ephemeral_sequential
        calls = []

        def flaky(prefix, data=b""):
            calls.append(prefix)
            if len(calls) < 3:
                raise TransientBackendError("create_ephemeral_sequential")
            return create(prefix, data)

        lock = FairLock(session, PARENT)
        with patch.object(session, "create_ephemeral_sequential", side_effect=flaky):
            assert lock.add_lock()
        assert len(calls) == 3

    def test_retry_budget_exhausted(self, ensemble):
        session = MemoryCoordinator(ensemble)
        lock = FairLock(session, PARENT, max_retry_times=3)

        with patch.object(session, "create_ephemeral_sequential",
                          side_effect=TransientBackendError("create_ephemeral_sequential")) as create:
            with pytest.raises(RetryBudgetExhaustedError) as exc_info:
                lock.add_lock()
        assert create.call_count == 4
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.__cause__, TransientBackendError)
        assert not lock.acquired
        assert ensemble.get_children(PARENT) == []

    def test_node_created_before_fault_is_adopted(self, ensemble):
        """Test that a create which succeeded before the fault does not leave a second node."""
        session = MemoryCoordinator(ensemble)
        create = session.create_ephemeral_sequential

        def lost_reply(prefix, data=b""):
            create(prefix, data)
            raise TransientBackendError("create_ephemeral_sequential")

        lock = FairLock(session, PARENT)
        with patch.object(session, "create_ephemeral_sequential", side_effect=lost_reply):
            assert lock.add_lock()
        assert ensemble.get_children(PARENT) == [posixpath.basename(lock.current_lock_path)]


# ============================================================================
# Test Fairness
# ============================================================================

class TestFairness:
    """Tests for FIFO ordering and single wakeups."""

    def test_three_clients_in_order(self, ensemble):
        """C1 holds, C2 and C3 block; each release wakes only the next in line."""
        c1 = FairLock(MemoryCoordinator(ensemble), PARENT)
        assert c1.add_lock()
        granted, errors = [], []
        c2, c3 = _start_in_order(ensemble, ["C2", "C3"], granted, errors)
        assert wait_until(lambda: ensemble.pending_watch_count() == 2)

        time.sleep(0.1)
        assert granted == []

        c1.release_lock()
        assert wait_until(lambda: granted == ["C2"])
        ensemble.wait_for_notifications()
        assert ensemble.watch_fire_count == 1
        time.sleep(0.1)
        assert granted == ["C2"]

        c2.release_event.set()
        assert wait_until(lambda: granted == ["C2", "C3"])
        c3.release_event.set()
        c3.thread.join(5)
        assert errors == []

    def test_fifo_order_by_sequence(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        names = [f"client-{i}" for i in range(5)]
        granted, errors = [], []
        contenders = _start_in_order(ensemble, names, granted, errors)

        holder.release_lock()
        for contender in contenders:
            assert wait_until(lambda: contender.name in granted)
            contender.release_event.set()
        for contender in contenders:
            contender.thread.join(5)

        assert granted == names
        sequences = [c.sequence for c in contenders]
        assert sequences == sorted(sequences)
        assert errors == []

    def test_release_wakes_single_waiter(self, ensemble):
        holder = FairLock(MemoryCoordinator(ensemble), PARENT)
        holder.add_lock()
        granted, errors = [], []
        contenders = _start_in_order(ensemble, [f"w{i}" for i in range(4)], granted, errors)
        assert wait_until(lambda: ensemble.pending_watch_count() == 4)
        ensemble.wait_for_notifications()
        assert ensemble.watch_fire_count == 0

        holder.release_lock()
        assert wait_until(lambda: granted == ["w0"])
        ensemble.wait_for_notifications()
        assert ensemble.watch_fire_count == 1

        for contender in contenders:
            assert wait_until(lambda: contender.name in granted)
            contender.release_event.set()
        assert errors == []


# ============================================================================
# Test MemoryCoordinator
# ============================================================================

class TestMemoryCoordinator:
    """Tests for the in-process coordination service."""

    def test_sequence_numbers_increase(self, ensemble):
        session = MemoryCoordinator(ensemble)
        session.ensure_path(PARENT)
        first = session.create_ephemeral_sequential(f"{PARENT}/lock-")
        second = session.create_ephemeral_sequential(f"{PARENT}/lock-")

        assert first == f"{PARENT}/lock-0000000000"
        assert second == f"{PARENT}/lock-0000000001"
        assert sorted(session.get_children(PARENT)) == ["lock-0000000000", "lock-0000000001"]

    def test_create_without_parent(self, ensemble):
        with pytest.raises(NodeNotFoundError):
            MemoryCoordinator(ensemble).create_ephemeral_sequential("/missing/lock-")

    def test_close_removes_ephemeral_nodes(self, ensemble):
        owner = MemoryCoordinator(ensemble)
        observer = MemoryCoordinator(ensemble)
        owner.ensure_path(PARENT)
        path = owner.create_ephemeral_sequential(f"{PARENT}/lock-")
        deleted = threading.Event()

        assert observer.subscribe_deletion(path, lambda _path: deleted.set())
        owner.close()

        assert deleted.wait(2)
        assert not observer.exists(path)
        assert observer.exists(PARENT)
        with pytest.raises(TransientBackendError):
            owner.exists(PARENT)

    def test_subscribe_to_missing_node(self, ensemble):
        assert not MemoryCoordinator(ensemble).subscribe_deletion(f"{PARENT}/gone", lambda _path: None)

    def test_watch_is_one_shot(self, ensemble):
        session = MemoryCoordinator(ensemble)
        session.ensure_path(PARENT)
        path = session.create_ephemeral_sequential(f"{PARENT}/lock-")
        fired = []
        session.subscribe_deletion(path, fired.append)

        session.delete(path)
        session.delete(path)
        ensemble.wait_for_notifications()
        assert fired == [path]

    def test_close_stops_notification_thread(self):
        ensemble = MemoryEnsemble()
        session = MemoryCoordinator(ensemble)
        session.ensure_path(PARENT)
        path = session.create_ephemeral_sequential(f"{PARENT}/lock-")
        fired = []
        session.subscribe_deletion(path, fired.append)
        session.delete(path)

        ensemble.close()
        ensemble.close()
        assert not ensemble._thread.is_alive()
        assert fired == [path]

    def test_private_ensemble_closed_with_session(self):
        session = MemoryCoordinator()
        assert session.ensemble._thread.is_alive()

        session.close()
        assert session.ensemble.closed
        assert not session.ensemble._thread.is_alive()

    def test_shared_ensemble_outlives_session(self, ensemble):
        MemoryCoordinator(ensemble).close()
        assert not ensemble.closed
        assert ensemble._thread.is_alive()


# ============================================================================
# Test KazooCoordinator
# ============================================================================

class TestKazooCoordinator:
    """Tests for the kazoo adapter against a mocked client."""

    def test_create_ephemeral_sequential(self):
        client = MagicMock()
        client.create.return_value = f"{PARENT}/x__lock__0000000007"

        path = KazooCoordinator(client).create_ephemeral_sequential(f"{PARENT}/x__lock__")

        assert path == f"{PARENT}/x__lock__0000000007"
        client.create.assert_called_once_with(f"{PARENT}/x__lock__", b"", ephemeral=True, sequence=True)

    def test_connection_loss_is_transient(self):
        client = MagicMock()
        client.create.side_effect = ConnectionLoss()

        with pytest.raises(TransientBackendError):
            KazooCoordinator(client).create_ephemeral_sequential(f"{PARENT}/x__lock__")

    def test_missing_nodes(self):
        client = MagicMock()
        client.get_children.side_effect = NoNodeError()
        client.delete.side_effect = NoNodeError()
        coordinator = KazooCoordinator(client)

        with pytest.raises(NodeNotFoundError):
            coordinator.get_children(PARENT)
        coordinator.delete(f"{PARENT}/x__lock__0000000001")

    def test_subscribe_deletion(self):
        client = MagicMock()
        client.exists.return_value = MagicMock()
        callback = MagicMock()
        coordinator = KazooCoordinator(client)

        assert coordinator.subscribe_deletion(f"{PARENT}/a", callback)
        watcher = client.exists.call_args.kwargs["watch"]
        watcher(MagicMock(path=f"{PARENT}/a"))
        callback.assert_called_once_with(f"{PARENT}/a")

        client.exists.return_value = None
        assert not coordinator.subscribe_deletion(f"{PARENT}/b", callback)

    def test_fair_lock_over_kazoo(self):
        client = MagicMock()
        client.create.return_value = f"{PARENT}/x__lock__0000000003"
        client.get_children.return_value = ["x__lock__0000000003", "y__lock__0000000004"]

        lock = FairLock(KazooCoordinator(client), PARENT)
        assert lock.add_lock()
        client.ensure_path.assert_called_once_with(PARENT)

        lock.release_lock()
        client.delete.assert_called_once_with(f"{PARENT}/x__lock__0000000003")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

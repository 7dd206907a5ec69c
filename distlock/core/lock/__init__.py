# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Lock module for distlock.

Provides two distributed locks with the same acquire/release surface:
a store-backed fencing lock (FencingLock, LockHandle) and a queue-backed
fair lock (FairLock) on a coordination service.
"""

from distlock.core.lock.base import BaseLock
from distlock.core.lock.fair import FairLock
from distlock.core.lock.fencing import FencingLock, LockHandle
from distlock.core.lock.persistent import PersistentLock
from distlock.core.lock.utils import create_lock

__all__ = [
    "BaseLock",
    "FairLock",
    "FencingLock",
    "LockHandle",
    "PersistentLock",
    "create_lock",
]

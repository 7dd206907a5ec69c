# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Abstract base class for distributed locks.
"""

from abc import ABC, abstractmethod
from typing import Optional

from distlock.util.exceptions import LockedException


class BaseLock(ABC):
    """Abstract base class for distributed locks.

    This class defines the interface shared by the lock handles. Callers must
    never assume the lock is held unless ``acquire`` returned True.

    Attributes:
        path: The lock identifier/path.
        duration: The lock validity, in the unit of the implementation, or None.
        acquired: Whether the lock is currently held.
    """

    acquired = False

    def __init__(self, path: str, duration: Optional[int] = None):
        """Initialize the lock.

        Args:
            path: The lock identifier/path.
            duration: The lock validity, or None when the backend bounds it by session.
        """
        self.path = path
        self.duration = duration

    def __enter__(self):
        """Context manager entry - acquires the lock or raises LockedException."""
        if not self.acquire():
            raise LockedException(f"Unable to acquire the lock on '{self.path}'.")
        return self

    def __exit__(self, *args, **kwargs):
        """Context manager exit - releases the lock."""
        self.release()

    @abstractmethod
    def acquire(self, timeout=None) -> bool:
        """Acquire the lock.

        Args:
            timeout: How long to keep trying. The unit and the meaning of None
                are defined by the implementation.

        Returns:
            bool: True if the lock is now held.
        """

    @abstractmethod
    def release(self) -> bool:
        """Release the lock.

        Returns:
            bool: True if the backend entry was removed by this call.
        """

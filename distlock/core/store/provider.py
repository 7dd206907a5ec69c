# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Key-value store with atomic conditional writes and expiry.

    Only ``set_if_absent`` and the ``compare_and_*`` operations take part in the
    locking protocol. ``get``, ``delete`` and ``ttl`` are for diagnostics.
    """

    @abstractmethod
    def set_if_absent(self, key: str, value: str, ttl_ms: Optional[int]) -> bool:
        """Sets ``key`` to ``value`` only if the key does not exist, attaching the expiry atomically.

        Args:
            key (str): The key to set.
            value (str): The value to store.
            ttl_ms (int, optional): Expiry in milliseconds. None stores the key without expiry.

        Returns:
            bool: True if the key was written.

        Raises:
            TransientBackendError: If the store could not be reached.
        """

    @abstractmethod
    def compare_and_delete(self, key: str, value: str) -> int:
        """Deletes ``key`` only if it currently holds ``value``, as one server-side operation.

        Returns:
            int: The number of deleted keys, 0 or 1.

        Raises:
            TransientBackendError: If the store could not be reached.
        """

    @abstractmethod
    def compare_and_expire(self, key: str, value: str, ttl_ms: int) -> int:
        """Resets the expiry of ``key`` only if it currently holds ``value``.

        Returns:
            int: 1 if the expiry was updated, else 0.
        """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Returns the current value of ``key`` or None."""

    @abstractmethod
    def delete(self, key: str) -> int:
        """Unconditionally deletes ``key``. Returns the number of deleted keys."""

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Remaining time to live in milliseconds, -1 for no expiry, -2 if the key is missing."""

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

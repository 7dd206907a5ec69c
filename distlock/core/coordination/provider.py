# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

from abc import ABC, abstractmethod
from typing import Callable, List


class CoordinationProvider(ABC):
    """Session on a hierarchical coordination service.

    Ephemeral nodes created through a provider belong to its session and are
    removed by the service when the session ends.
    """

    @abstractmethod
    def ensure_path(self, path: str):
        """Creates the persistent node at ``path`` and its ancestors if they are missing."""

    @abstractmethod
    def create_ephemeral_sequential(self, prefix: str, data: bytes = b"") -> str:
        """Creates an ephemeral node named ``prefix`` followed by a sequence number.

        Args:
            prefix (str): Full path prefix of the node, e.g. ``/distribute_lock/abc__lock__``.
            data (bytes): Node payload.

        Returns:
            str: The full path assigned by the service.

        Raises:
            NodeNotFoundError: If the parent node does not exist.
            TransientBackendError: If the service could not be reached.
        """

    @abstractmethod
    def get_children(self, path: str) -> List[str]:
        """Returns the names (not full paths) of the children of ``path``.

        Raises:
            NodeNotFoundError: If the node does not exist.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def delete(self, path: str):
        """Deletes the node at ``path``. A missing node is not an error."""

    @abstractmethod
    def subscribe_deletion(self, path: str, callback: Callable[[str], None]) -> bool:
        """Registers a one-shot ``callback(path)`` for the deletion of ``path``.

        The callback runs on a thread owned by the provider and must only hand
        off to the waiting thread.

        Returns:
            bool: False if the node no longer exists, in which case the callback
                may never fire and the caller should re-check at once.
        """

    def close(self):
        """Ends the session."""

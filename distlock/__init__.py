# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

from distlock import constants
from distlock.core.lock import BaseLock, FairLock, FencingLock, LockHandle, PersistentLock, create_lock
from distlock.util.exceptions import (
    InvalidParameterError,
    LockedException,
    NodeNotFoundError,
    RetryBudgetExhaustedError,
    TransientBackendError,
)

__version__ = "0.1.0"

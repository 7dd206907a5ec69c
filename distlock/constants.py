# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import os

# Lock backend used by create_lock when no type is given: "redis", "memory" or "zookeeper".
LOCK_TYPE = os.getenv("DISTLOCK_LOCK_TYPE", "redis")

# Store-backed fencing lock. Block and expire times are in milliseconds.
LOCK_KEY_PREFIX = os.getenv("DISTLOCK_KEY_PREFIX", "distlock:lock:")
DEFAULT_SLEEP_TIME = 0.01  # seconds between set-if-absent attempts
DEFAULT_BLOCK_TIME = int(os.getenv("DISTLOCK_BLOCK_TIME", "1000"))
DEFAULT_EXPIRE_TIME = int(os.getenv("DISTLOCK_EXPIRE_TIME", "30000"))

# Interval, in seconds, at which PersistentLock extends the lock expiry.
LOCK_UPDATE_INTERVAL = float(os.getenv("DISTLOCK_UPDATE_INTERVAL", "10"))

# Queue-backed fair lock.
PARENT_LOCK_PATH = os.getenv("DISTLOCK_PARENT_PATH", "/distribute_lock")
LOCK_NODE_NAME = "__lock__"
SEQUENCE_LENGTH = 10
MAX_RETRY_TIMES = 3
DEFAULT_WAIT_TIME = 3  # seconds on one predecessor before re-checking the queue

REDIS_LOCK_HOST = os.getenv("DISTLOCK_REDIS_HOST", "localhost")
REDIS_LOCK_PORT = int(os.getenv("DISTLOCK_REDIS_PORT", "6379"))
REDIS_LOCK_DB = int(os.getenv("DISTLOCK_REDIS_DB", "0"))
REDIS_LOCK_PASSWORD = os.getenv("DISTLOCK_REDIS_PASSWORD")

ZOOKEEPER_HOSTS = os.getenv("DISTLOCK_ZOOKEEPER_HOSTS", "127.0.0.1:2181")

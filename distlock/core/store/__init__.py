# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

from distlock.core.store.memory import MemoryStore
from distlock.core.store.provider import KeyValueStore
from distlock.core.store.redis_store import RedisStore

# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import pytest

from distlock.core.coordination import MemoryEnsemble
from distlock.core.store import MemoryStore
from tests.utils import TEST_KEY_PREFIX, FakeClock


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    """Create a MemoryStore on the real monotonic clock."""
    return MemoryStore()


@pytest.fixture
def clocked_store(fake_clock):
    """Create a MemoryStore whose expiry follows ``fake_clock``."""
    return MemoryStore(clock=fake_clock)


@pytest.fixture
def ensemble():
    """Create an in-process coordination service and stop its notification thread afterwards."""
    ensemble = MemoryEnsemble()
    yield ensemble
    ensemble.close()


@pytest.fixture
def redis_client():
    """Create a Redis client, skip if Redis is not available."""
    try:
        import redis
        client = redis.Redis(host="localhost", port=6379, db=15)
        # Test connection
        client.ping()
    except Exception:
        pytest.skip("Redis is not available")
    yield client
    # Cleanup: delete all test keys
    for key in client.scan_iter(f"{TEST_KEY_PREFIX}*"):
        client.delete(key)

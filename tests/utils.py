# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import time

TEST_KEY_PREFIX = "distlock:test:"


class FakeClock:
    """Manually advanced clock for deterministic expiry."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    end_time = time.monotonic() + timeout
    while time.monotonic() < end_time:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()

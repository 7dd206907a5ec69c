# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin


class LockedException(Exception):
    def __init__(self, message="This resource is currently locked by another client."):
        super().__init__(message)


class InvalidParameterError(ValueError):
    def __init__(self, name, value, expected="a positive number"):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for '{name}': {value!r}. Expected {expected}.")


class TransientBackendError(Exception):
    """Network or timeout fault raised by a store or coordination provider."""

    def __init__(self, operation, message=""):
        self.operation = operation
        super().__init__(f"Backend fault during '{operation}'. {message}".strip())


class RetryBudgetExhaustedError(Exception):
    def __init__(self, path, attempts):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Unable to create a queue entry under '{path}' after {attempts} attempts.")


class NodeNotFoundError(KeyError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"No node exists at '{path}'.")

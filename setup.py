# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Bingyu Liu

import os

from setuptools import find_packages, setup


project_name = "distlock"
this_directory = os.path.abspath(os.path.dirname(__file__))


setup(
    name=project_name,
    version="0.1.0",
    description="Client-side distributed mutual exclusion on Redis and ZooKeeper.",
    license="MPL-2.0",
    packages=find_packages(include=[project_name, f"{project_name}.*"]),
    python_requires=">=3.8",
    install_requires=[
        "redis>=4.0",
        "kazoo>=2.9",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)

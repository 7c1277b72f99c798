# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
gitbuilder

Accepts git pushes over SSH and turns each pushed commit into a slug or
container image build running in a Kubernetes cluster.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gitbuilder")
except PackageNotFoundError:
    # Package not installed, use fallback version
    __version__ = "0.0.0+dev"

# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Formatters package.
Renders build jobs for logs and inspection.
"""

from .yaml_formatter import YamlFormatter

__all__ = [
    "YamlFormatter",
]

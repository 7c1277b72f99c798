# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
YAML formatter for build job manifests.
"""

from typing import TYPE_CHECKING

import yaml  # type: ignore[import-untyped]  # PyYAML doesn't have complete type stubs

if TYPE_CHECKING:
    from ..models import BuildJobSpec


class YamlFormatter:
    """Formats build jobs as YAML manifests."""

    def format(self, spec: "BuildJobSpec") -> str:
        """
        Format a job specification as the YAML manifest submitted to the cluster.

        Args:
            spec: BuildJobSpec to format

        Returns:
            YAML string representation of the manifest
        """
        yaml_str = yaml.safe_dump(
            spec.to_manifest(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True
        )

        return str(yaml_str)

"""The metrics.k8s.io API group and the storages behind its resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

GROUP_NAME = "metrics.k8s.io"
VERSION = "v1beta1"


@dataclass
class APIGroupInfo:
    """Resources of an API group, keyed by version and then by resource name."""

    group_name: str = GROUP_NAME
    versioned_resources_storage_map: dict[str, dict[str, Any]] = field(default_factory=dict)


def build(pod: Any, node: Any) -> APIGroupInfo:
    """Describe the metrics API group served by the given pod and node storages."""
    return APIGroupInfo(
        group_name=GROUP_NAME,
        versioned_resources_storage_map={VERSION: {"nodes": node, "pods": pod}},
    )
"""Objects served by the resource metrics API and the getters that produce them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


@dataclass
class TimeInfo:
    """Collection time of a metric and the window it was computed over."""

    timestamp: datetime
    window: timedelta


@dataclass
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""
    self_link: str = ""


@dataclass
class NodeAddress:
    type: str
    address: str


@dataclass
class Node:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    addresses: list[NodeAddress] = field(default_factory=list)
    kubelet_port: int = 0

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations


@dataclass
class PartialObjectMetadata:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


@dataclass
class ContainerMetrics:
    name: str
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeMetrics:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    timestamp: datetime | None = None
    window: timedelta = timedelta(0)
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name


@dataclass
class PodMetrics:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    timestamp: datetime | None = None
    window: timedelta = timedelta(0)
    containers: list[ContainerMetrics] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace


@dataclass
class NodeMetricsList:
    items: list[NodeMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


@dataclass
class PodMetricsList:
    items: list[PodMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


class NotFoundError(LookupError):
    """A requested object does not exist."""

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


class PodMetricsGetter(ABC):
    @abstractmethod
    def get_pod_metrics(self, *args: PartialObjectMetadata) -> list[PodMetrics]:
        """Return the latest metrics for all containers of each given pod."""


class NodeMetricsGetter(ABC):
    @abstractmethod
    def get_node_metrics(self, *args: Node) -> list[NodeMetrics]:
        """Return the latest metrics for the given nodes."""
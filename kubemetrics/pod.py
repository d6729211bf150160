"""Read-only storage serving pod metrics."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from kubemetrics.clock import Clock, RealClock
from kubemetrics.models import (
    NotFoundError,
    PartialObjectMetadata,
    PodMetrics,
    PodMetricsGetter,
    PodMetricsList,
)
from kubemetrics.monitoring import Histogram, metric_freshness
from kubemetrics.selectors import (
    LabelSelector,
    ListOptions,
    everything,
    filter_partial_object_metadata,
)
from kubemetrics.table import Table, add_pod_metrics_to_table

logger = logging.getLogger(__name__)

POD_METRICS_RESOURCE = "podmetrics.metrics.k8s.io"


class PodLister(ABC):
    """Source of pod metadata; an empty namespace means all namespaces."""

    @abstractmethod
    def list(self, namespace: str, selector: LabelSelector) -> list[PartialObjectMetadata]:
        """Return the pods in ``namespace`` whose labels match ``selector``."""

    @abstractmethod
    def get(self, namespace: str, name: str) -> PartialObjectMetadata | None:
        """Return the pod, or None, or raise NotFoundError."""


class PodMetricsStorage:
    """Serves PodMetrics objects for the pods a lister knows about."""

    def __init__(
        self,
        metrics: PodMetricsGetter,
        pod_lister: PodLister,
        *,
        group_resource: str = POD_METRICS_RESOURCE,
        clock: Clock | None = None,
        freshness: Histogram | None = None,
    ) -> None:
        self.metrics = metrics
        self.pod_lister = pod_lister
        self.group_resource = group_resource
        self.clock = clock if clock is not None else RealClock()
        self.freshness = freshness if freshness is not None else metric_freshness

    def new(self) -> PodMetrics:
        return PodMetrics()

    def new_list(self) -> PodMetricsList:
        return PodMetricsList()

    def kind(self) -> str:
        return "PodMetrics"

    def list(self, namespace: str = "", options: ListOptions | None = None) -> PodMetricsList:
        """Return metrics of every matching pod, sorted by namespace and name."""
        pods = self._pods(namespace, options)
        try:
            items = self._get_metrics(pods)
        except Exception as err:
            logger.error("Failed reading pods metrics (namespace=%s): %s", namespace, err)
            raise RuntimeError(f"failed reading pods metrics: {err}") from err
        return PodMetricsList(items=items)

    def _pods(self, namespace: str, options: ListOptions | None) -> list[PartialObjectMetadata]:
        selector = everything()
        if options is not None and options.label_selector is not None:
            selector = options.label_selector
        try:
            pods = self.pod_lister.list(namespace, selector)
        except Exception as err:
            logger.error("Failed listing pods (labelSelector=%s, namespace=%s): %s",
                         selector, namespace, err)
            raise RuntimeError(f"failed listing pods: {err}") from err
        if options is not None and options.field_selector is not None:
            pods = filter_partial_object_metadata(pods, options.field_selector)
        return list(pods)

    def get(self, namespace: str, name: str) -> PodMetrics:
        """Return the metrics of one pod."""
        try:
            pod = self.pod_lister.get(namespace, name)
        except NotFoundError:
            raise
        except Exception as err:
            logger.error("Failed getting pod %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed getting pod: {err}") from err
        if pod is None:
            raise NotFoundError("pods", f"{namespace}/{name}")
        try:
            items = self._get_metrics([pod])
        except Exception as err:
            logger.error("Failed reading pod metrics for %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed pod metrics: {err}") from err
        if not items:
            raise NotFoundError(self.group_resource, f"{namespace}/{name}")
        return items[0]

    def convert_to_table(self, obj: object) -> Table:
        """Render a PodMetrics or PodMetricsList as a table."""
        table = Table()
        if isinstance(obj, PodMetrics):
            table.resource_version = obj.metadata.resource_version
            table.self_link = obj.metadata.self_link
            add_pod_metrics_to_table(table, [obj])
        elif isinstance(obj, PodMetricsList):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            table.continue_token = obj.continue_token
            add_pod_metrics_to_table(table, obj.items)
        return table

    def _get_metrics(self, pods: Sequence[PartialObjectMetadata]) -> list[PodMetrics]:
        items = list(self.metrics.get_pod_metrics(*pods))
        observer = self.freshness.with_label_values()
        for item in items:
            if item.timestamp is not None:
                observer.observe(self.clock.since(item.timestamp).total_seconds())
        items.sort(key=lambda m: (m.namespace, m.name))
        return items

    def namespace_scoped(self) -> bool:
        return True

    def singular_name(self) -> str:
        return "pod"
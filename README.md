# kubemetrics

`kubemetrics` turns the Prometheus text that a Kubelet's resource metrics
endpoint returns into node and container usage points, and serves node and
pod metrics the way the `metrics.k8s.io` resource metrics API does: listing
and getting with label and field selectors, sorted results, and a tabular
rendering.

It has no third-party dependencies.

## Modules

- `kubemetrics.decode` — `decode_batch(data, default_time, node_name)` reads
  the text exposition (bytes or str) and keeps the series
  `node_cpu_usage_seconds_total`, `node_memory_working_set_bytes`,
  `container_cpu_usage_seconds_total`, `container_memory_working_set_bytes`
  and `container_start_time_seconds`. CPU seconds become nanoseconds, sample
  timestamps are milliseconds since the epoch, and samples without a
  timestamp take `default_time`. A node point without CPU, memory or a
  timestamp is dropped; a pod is dropped when any of its non-empty containers
  lacks CPU or memory. The result is a `MetricsBatch` with `nodes` (keyed by
  node name) and `pods` (keyed by `NamespacedName`, holding
  `PodMetricsPoint`s of `MetricsPoint`s). Text that cannot be parsed, or a
  timestamp out of range, raises `DecodeError`.
- `kubemetrics.models` — the served objects (`NodeMetrics`, `PodMetrics`,
  `ContainerMetrics`, their `...List` forms, `ObjectMeta`, `Node`,
  `PartialObjectMetadata`), `NotFoundError`, and the abstract getters
  `NodeMetricsGetter.get_node_metrics` and `PodMetricsGetter.get_pod_metrics`
  that supply the metrics.
- `kubemetrics.selectors` — label selectors (`parse_requirements`,
  `selector_from_set`, `everything`, `LabelSelector.add`) supporting `=`,
  `==`, `!=`, `in`, `notin`, `key` and `!key`; field selectors
  (`field_selector_from_set`) over `metadata.name` and, for pods,
  `metadata.namespace`; `ListOptions`; and `filter_nodes` /
  `filter_partial_object_metadata`.
- `kubemetrics.node` and `kubemetrics.pod` — `NodeMetricsStorage` and
  `PodMetricsStorage` answer `list` and `get` from a `NodeLister` /
  `PodLister` and a metrics getter. Node lists are sorted by name, pod lists
  by namespace and name. A missing object raises `NotFoundError`; lister or
  getter failures are logged and raised as `RuntimeError`. Each returned
  metric's age is recorded in the freshness histogram, and
  `convert_to_table` renders a single object or a list.
- `kubemetrics.table` — `Quantity` (exact amounts with `m`, `Mi`, `k`, …
  suffixes), `format_duration` (`1µs`, `1h2m3.5s`), and `Table` with one
  column per resource name, sorted, plus `Name` and `Window` columns.
- `kubemetrics.group` — `build(pod, node)` returns an `APIGroupInfo` mapping
  version `v1beta1` to the `pods` and `nodes` storages.
- `kubemetrics.monitoring` — `Histogram`, `Counter` and `Gauge` with label
  values and Prometheus text output via `expose()`;
  `exponential_buckets`; the `metric_freshness` histogram and
  `register_api_metrics`.
- `kubemetrics.clock` — `RealClock` and a controllable `FakeClock`, which the
  storages accept for measuring freshness.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

Decoding a Kubelet response:

```python
from datetime import datetime, timezone

from kubemetrics.decode import decode_batch

payload = b"""
node_cpu_usage_seconds_total 357.35491 1633253809720
node_memory_working_set_bytes 1.616273408e+09 1633253809720
"""
batch = decode_batch(payload, datetime.now(timezone.utc), "node1")
print(batch.nodes["node1"].cumulative_cpu_used)  # 357354910000
```

Selectors:

```python
from kubemetrics.selectors import everything, parse_requirements

selector = everything().add(*parse_requirements("skipKey!=skipValue"))
selector.matches({"skipKey": "skipValue"})  # False
```

Quantities and durations:

```python
from kubemetrics.table import Quantity, format_duration

str(Quantity.parse("5Mi"))  # '5Mi'
format_duration(1000)        # '1µs'
```

## What it does not do

The package has no command line, no HTTP server and no network client. It
does not reach Kubelets, list nodes from a cluster or scrape on a schedule:
callers supply the metrics text to `decode_batch`, and supply their own
`NodeLister`, `PodLister` and metrics getter implementations to the
storages. Nothing is stored beyond what those objects hold.
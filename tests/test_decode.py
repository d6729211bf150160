from datetime import datetime, timezone

import pytest

from kubemetrics.decode import (
    DecodeError,
    MetricsBatch,
    MetricsPoint,
    NamespacedName,
    PodMetricsPoint,
    decode_batch,
)

ANY_TIME = datetime(2000, 1, 1, tzinfo=timezone.utc)
COREDNS = NamespacedName(namespace="kube-system", name="coredns-558bd4d5db-4dpjz")

CONTAINER_CPU = "container_cpu_usage_seconds_total"
CONTAINER_MEM = "container_memory_working_set_bytes"
CONTAINER_START = "container_start_time_seconds"
NODE_CPU = "node_cpu_usage_seconds_total"
NODE_MEM = "node_memory_working_set_bytes"

CONTAINER_TS = 1633253812125
NODE_TS = 1633253809720


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def labels(container, namespace, pod):
    return f'container="{container}",namespace="{namespace}",pod="{pod}"'


COREDNS_LABELS = labels("coredns", COREDNS.namespace, COREDNS.name)


def sample(name, value, timestamp=None, label_text=""):
    series = f"{name}{{{label_text}}}" if label_text else name
    return " ".join([series, value] + ([str(timestamp)] if timestamp is not None else []))


def document(*lines):
    return "\n" + "\n".join(lines) + "\n"


def coredns(name, value, timestamp=CONTAINER_TS):
    return sample(name, value, timestamp, COREDNS_LABELS)


NODE_POINT = MetricsPoint(
    timestamp=utc(2021, 10, 3, 9, 36, 49, 720000),
    cumulative_cpu_used=357354910000,
    memory_usage=1616273408,
)
COREDNS_POINT = MetricsPoint(
    timestamp=utc(2021, 10, 3, 9, 36, 52, 125000),
    cumulative_cpu_used=4710169000,
    memory_usage=12533760,
    start_time=utc(2021, 10, 3, 9, 18, 32),
)

NORMAL = document(
    f"# HELP {CONTAINER_CPU} cpu used by a container",
    f"# TYPE {CONTAINER_CPU} counter",
    coredns(CONTAINER_CPU, "4.710169"),
    f"# TYPE {CONTAINER_MEM} gauge",
    coredns(CONTAINER_MEM, "1.253376e+07"),
    f"# TYPE {CONTAINER_START} gauge",
    coredns(CONTAINER_START, "1.633252712e+9"),
    f"# TYPE {NODE_CPU} counter",
    sample(NODE_CPU, "357.35491", NODE_TS),
    f"# TYPE {NODE_MEM} gauge",
    sample(NODE_MEM, "1.616273408e+09", NODE_TS),
    "# TYPE pod_cpu_usage_seconds_total counter",
    sample("pod_cpu_usage_seconds_total", "4.67812", 1633253803935,
           f'namespace="{COREDNS.namespace}",pod="{COREDNS.name}"'),
    "# TYPE pod_memory_working_set_bytes gauge",
    sample("pod_memory_working_set_bytes", "1.2627968e+07", 1633253803935,
           f'namespace="{COREDNS.namespace}",pod="{COREDNS.name}"'),
    "# TYPE scrape_error gauge",
    sample("scrape_error", "0"),
)

WITHOUT_TIMESTAMP = document(
    coredns(CONTAINER_CPU, "4.710169", None),
    coredns(CONTAINER_MEM, "1.253376e+07", None),
    coredns(CONTAINER_START, "1.633252712e+9", None),
    sample(NODE_CPU, "357.35491"),
    sample(NODE_MEM, "1.616273408e+09"),
)

CONTAINER_ONLY = document(
    coredns(CONTAINER_CPU, "4.710169"),
    coredns(CONTAINER_MEM, "1.253376e+07"),
    coredns(CONTAINER_START, "1.633252712e+9"),
)

NODE_ONLY = document(
    sample(NODE_CPU, "357.35491", NODE_TS),
    sample(NODE_MEM, "1.616273408e+09", NODE_TS),
)

DROPPED_INPUTS = {
    "no container cpu": document(coredns(CONTAINER_MEM, "1.253376e+07")),
    "empty container cpu": document(
        coredns(CONTAINER_CPU, "0"),
        coredns(CONTAINER_MEM, "1.253376e+07"),
    ),
    "no container memory": document(coredns(CONTAINER_CPU, "4.710169")),
    "empty container memory": document(
        coredns(CONTAINER_CPU, "4.710169"),
        coredns(CONTAINER_MEM, "0"),
    ),
    "no node cpu": document(sample(NODE_MEM, "1.616273408e+09", NODE_TS)),
    "empty node cpu": document(
        sample(NODE_CPU, "0", NODE_TS),
        sample(NODE_MEM, "1.616273408e+09", NODE_TS),
    ),
    "no node memory": document(sample(NODE_CPU, "357.35491", NODE_TS)),
    "empty node memory": document(
        sample(NODE_CPU, "357.35491", NODE_TS),
        sample(NODE_MEM, "0", NODE_TS),
    ),
}

INCORRECT_TIMESTAMP = document(
    f"# TYPE {CONTAINER_START} gauge",
    sample(CONTAINER_START, "-6.7953645788713455e+09", -62135596800000,
           labels("metrics-server", "kubernetes-dashboard", "dashboard-metrics-a")),
    sample(CONTAINER_START, "1.6509742024191372e+09", 1650974202419,
           labels("metrics-server", "kubernetes-dashboard", "dashboard-metrics-b")),
)


def test_normal():
    batch = decode_batch(NORMAL.encode(), ANY_TIME, "node1")
    assert batch == MetricsBatch(
        nodes={"node1": NODE_POINT},
        pods={COREDNS: PodMetricsPoint({"coredns": COREDNS_POINT})},
    )


def test_without_timestamp_uses_default_time():
    default = utc(2077, 7, 7, 7, 7, 7)
    batch = decode_batch(WITHOUT_TIMESTAMP, default, "node1")
    assert batch.nodes == {
        "node1": MetricsPoint(timestamp=default, cumulative_cpu_used=357354910000,
                              memory_usage=1616273408)
    }
    assert batch.pods == {
        COREDNS: PodMetricsPoint({"coredns": MetricsPoint(
            timestamp=default,
            cumulative_cpu_used=4710169000,
            memory_usage=12533760,
            start_time=utc(2021, 10, 3, 9, 18, 32),
        )})
    }


def test_containers_without_node():
    batch = decode_batch(CONTAINER_ONLY, ANY_TIME, "node1")
    assert batch == MetricsBatch(nodes={}, pods={COREDNS: PodMetricsPoint({"coredns": COREDNS_POINT})})


def test_node_without_containers():
    batch = decode_batch(NODE_ONLY, ANY_TIME, "node1")
    assert batch == MetricsBatch(nodes={"node1": NODE_POINT}, pods={})


@pytest.mark.parametrize("text", DROPPED_INPUTS.values(), ids=list(DROPPED_INPUTS))
def test_incomplete_metrics_are_dropped(text):
    assert decode_batch(text, ANY_TIME, "node1") == MetricsBatch()


def test_incorrect_timestamp_is_an_error():
    with pytest.raises(DecodeError):
        decode_batch(INCORRECT_TIMESTAMP, ANY_TIME, "node1")


def test_empty_input_gives_empty_batch():
    assert decode_batch(b"", ANY_TIME, "node1") == MetricsBatch()


def test_label_order_and_escapes():
    text = (
        'container_cpu_usage_seconds_total{pod="p\\"1",namespace="ns",container="c"} 1 1000\n'
        'container_memory_working_set_bytes{namespace="ns",container="c",pod="p\\"1",} 2 1000\n'
    )
    batch = decode_batch(text, ANY_TIME, "n")
    point = batch.pods[NamespacedName("ns", 'p"1')].containers["c"]
    assert point.cumulative_cpu_used == 1000000000
    assert point.memory_usage == 2
    assert point.timestamp == utc(1970, 1, 1, 0, 0, 1)


def test_one_incomplete_container_drops_whole_pod():
    text = document(
        sample(CONTAINER_CPU, "1", 1000, labels("a", "ns", "p")),
        sample(CONTAINER_MEM, "2", 1000, labels("a", "ns", "p")),
        sample(CONTAINER_CPU, "1", 1000, labels("b", "ns", "p")),
    )
    assert decode_batch(text, ANY_TIME, "n").pods == {}


def test_other_metrics_are_ignored():
    text = "pod_cpu_usage_seconds_total{namespace=\"ns\",pod=\"p\"} 4 1000\nscrape_error 0\n"
    assert decode_batch(text, ANY_TIME, "n") == MetricsBatch()


@pytest.mark.parametrize("text", [
    "# TYPE node_cpu_usage_seconds_total bogus\n",
    "node_cpu_usage_seconds_total\n",
    "node_cpu_usage_seconds_total abc\n",
    'container_cpu_usage_seconds_total{container="a" 1\n',
    "node_cpu_usage_seconds_total 1 2 3\n",
    "{} 1\n",
])
def test_malformed_input_raises(text):
    with pytest.raises(DecodeError):
        decode_batch(text, ANY_TIME, "n")


def test_namespaced_name_renders_with_slash():
    assert str(NamespacedName("ns1", "pod1")) == "ns1/pod1"
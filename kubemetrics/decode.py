"""Decoding of the kubelet's resource metrics endpoint into metric batches."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterator

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

NODE_CPU_USAGE = "node_cpu_usage_seconds_total"
NODE_MEMORY_USAGE = "node_memory_working_set_bytes"
CONTAINER_CPU_USAGE = "container_cpu_usage_seconds_total"
CONTAINER_MEMORY_USAGE = "container_memory_working_set_bytes"
CONTAINER_START_TIME = "container_start_time_seconds"

_METRIC_TYPES = frozenset({"counter", "gauge", "histogram", "summary", "untyped"})
_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_TIMESTAMP = re.compile(r"[0-9]+")
_INT64_MAX = 2 ** 63 - 1
_ESCAPES = {"\\": "\\", '"': '"', "n": "\n"}


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Namespace and name of an object."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class MetricsPoint:
    """Resource usage of a node or container at one moment."""

    start_time: datetime | None = None
    timestamp: datetime | None = None
    cumulative_cpu_used: int = 0
    memory_usage: int = 0


@dataclass
class PodMetricsPoint:
    """Metric points of a pod's containers, keyed by container name."""

    containers: dict[str, MetricsPoint] = field(default_factory=dict)


@dataclass
class MetricsBatch:
    """Node and pod metric points gathered in one scrape."""

    nodes: dict[str, MetricsPoint] = field(default_factory=dict)
    pods: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)


class DecodeError(ValueError):
    """The metrics text could not be parsed."""


def _skip_blanks(line: str, pos: int) -> int:
    while pos < len(line) and line[pos] in " \t":
        pos += 1
    return pos


def _parse_label_value(line: str, pos: int, lineno: int) -> tuple[str, int]:
    chars = []
    while pos < len(line):
        ch = line[pos]
        if ch == '"':
            return "".join(chars), pos + 1
        if ch == "\\":
            if pos + 1 >= len(line):
                break
            nxt = line[pos + 1]
            chars.append(_ESCAPES.get(nxt, "\\" + nxt))
            pos += 2
            continue
        chars.append(ch)
        pos += 1
    raise DecodeError(f"line {lineno}: unterminated label value")


def _parse_labels(line: str, pos: int, lineno: int) -> tuple[dict[str, str], int]:
    labels: dict[str, str] = {}
    while True:
        pos = _skip_blanks(line, pos)
        if pos < len(line) and line[pos] == "}":
            return labels, pos + 1
        m = _LABEL_NAME.match(line, pos)
        if not m:
            raise DecodeError(f"line {lineno}: invalid label name")
        key = m.group()
        pos = _skip_blanks(line, m.end())
        if pos >= len(line) or line[pos] != "=":
            raise DecodeError(f"line {lineno}: expected '=' after label name {key!r}")
        pos = _skip_blanks(line, pos + 1)
        if pos >= len(line) or line[pos] != '"':
            raise DecodeError(f"line {lineno}: expected quoted value for label {key!r}")
        labels[key], pos = _parse_label_value(line, pos + 1, lineno)
        pos = _skip_blanks(line, pos)
        if pos < len(line) and line[pos] == ",":
            pos += 1
        elif pos < len(line) and line[pos] == "}":
            return labels, pos + 1
        else:
            raise DecodeError(f"line {lineno}: expected ',' or '}}' after label {key!r}")


def _parse_value(text: str, lineno: int) -> float:
    if "_" in text:
        raise DecodeError(f"line {lineno}: invalid value {text!r}")
    try:
        return float(text)
    except ValueError:
        raise DecodeError(f"line {lineno}: invalid value {text!r}") from None


def _parse_comment(line: str, lineno: int) -> None:
    parts = line[1:].split()
    if not parts or parts[0] not in ("HELP", "TYPE"):
        return
    if len(parts) < 2 or not _METRIC_NAME.fullmatch(parts[1]):
        raise DecodeError(f"line {lineno}: {parts[0]} without a valid metric name")
    if parts[0] == "TYPE" and (len(parts) != 3 or parts[2] not in _METRIC_TYPES):
        raise DecodeError(f"line {lineno}: invalid metric type in {line!r}")


def _series(text: str) -> Iterator[tuple[str, dict[str, str], float, int | None]]:
    """Yield (name, labels, value, timestamp in ms) for each sample line."""
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip(" \t\r")
        if not line:
            continue
        if line.startswith("#"):
            _parse_comment(line, lineno)
            continue
        m = _METRIC_NAME.match(line)
        if not m:
            raise DecodeError(f"line {lineno}: invalid metric name")
        name, pos = m.group(), m.end()
        labels: dict[str, str] = {}
        if pos < len(line) and line[pos] == "{":
            labels, pos = _parse_labels(line, pos + 1, lineno)
        elif pos < len(line) and line[pos] not in " \t":
            raise DecodeError(f"line {lineno}: unexpected character after metric name")
        fields = line[pos:].split()
        if len(fields) not in (1, 2):
            raise DecodeError(f"line {lineno}: expected a value and an optional timestamp")
        value = _parse_value(fields[0], lineno)
        timestamp = None
        if len(fields) == 2:
            if not _TIMESTAMP.fullmatch(fields[1]) or int(fields[1]) > _INT64_MAX:
                raise DecodeError(f"line {lineno}: invalid timestamp {fields[1]!r}")
            timestamp = int(fields[1])
        yield name, labels, value, timestamp


def _to_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def _from_millis(millis: int) -> datetime:
    try:
        return EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        raise DecodeError(f"timestamp {millis} is out of range") from None


def _from_seconds(seconds: float) -> datetime | None:
    if not math.isfinite(seconds):
        return None
    try:
        return EPOCH + timedelta(microseconds=int(seconds * 1e9) // 1000)
    except OverflowError:
        return None


def _to_count(value: float) -> int:
    if not math.isfinite(value) or value <= 0:
        return 0
    return int(value)


def _container_point(pods: dict[NamespacedName, PodMetricsPoint],
                     labels: dict[str, str]) -> MetricsPoint:
    ref = NamespacedName(labels.get("namespace", ""), labels.get("pod", ""))
    containers = pods.setdefault(ref, PodMetricsPoint()).containers
    return containers.setdefault(labels.get("container", ""), MetricsPoint())


def _complete_containers(pod: PodMetricsPoint) -> dict[str, MetricsPoint] | None:
    """Return the non-empty containers, or None if any of them lacks CPU or memory."""
    complete = {}
    for name, point in pod.containers.items():
        if point == MetricsPoint():
            continue
        if point.cumulative_cpu_used == 0 or point.memory_usage == 0:
            logger.debug("Failed getting complete container metric %s: %s", name, point)
            return None
        complete[name] = point
    return complete


def decode_batch(data: bytes | str, default_time: datetime, node_name: str) -> MetricsBatch:
    """Decode a resource metrics response of the node ``node_name``.

    Samples without their own timestamp are stamped with ``default_time``.
    Incomplete node and pod metrics are dropped.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"failed parsing metrics: {err}") from err
    default_millis = _to_millis(default_time)
    node = MetricsPoint()
    pods: dict[NamespacedName, PodMetricsPoint] = {}

    for name, labels, value, millis in _series(data):
        if millis is None:
            millis = default_millis
        if name == NODE_CPU_USAGE:
            node.cumulative_cpu_used = _to_count(value * 1e9)
            node.timestamp = _from_millis(millis)
        elif name == NODE_MEMORY_USAGE:
            node.memory_usage = _to_count(value)
            node.timestamp = _from_millis(millis)
        elif name == CONTAINER_CPU_USAGE:
            point = _container_point(pods, labels)
            point.cumulative_cpu_used = _to_count(value * 1e9)
            point.timestamp = _from_millis(millis)
        elif name == CONTAINER_MEMORY_USAGE:
            point = _container_point(pods, labels)
            point.memory_usage = _to_count(value)
            point.timestamp = _from_millis(millis)
        elif name == CONTAINER_START_TIME:
            _container_point(pods, labels).start_time = _from_seconds(value)

    batch = MetricsBatch()
    if node.timestamp is None or node.cumulative_cpu_used == 0 or node.memory_usage == 0:
        logger.debug("Failed getting complete node metric for %s: %s", node_name, node)
    else:
        batch.nodes[node_name] = node

    for ref, pod in pods.items():
        if not pod.containers:
            continue
        containers = _complete_containers(pod)
        if containers is None:
            logger.debug("Failed getting complete pod metric for %s", ref)
        else:
            batch.pods[ref] = PodMetricsPoint(containers)
    return batch
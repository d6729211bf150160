"""Prometheus-style metrics and their text exposition."""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Iterable

DEF_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds starting at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    for _ in range(count):
        buckets.append(start)
        start *= factor
    return buckets


def format_value(value: float) -> str:
    """Format a float as shortest '%g' with a six-digit exponent threshold."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    sign, digit_tuple, exp = Decimal(repr(value)).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exp += 1
    text = "".join(map(str, digits))
    point = len(digits) + exp - 1
    prefix = "-" if sign else ""
    if point < -4 or point >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{prefix}{mantissa}e{'-' if point < 0 else '+'}{abs(point):02d}"
    if point >= 0:
        whole = text[: point + 1].ljust(point + 1, "0")
        frac = text[point + 1:]
        return prefix + whole + ("." + frac if frac else "")
    return prefix + "0." + "0" * (-point - 1) + text


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _labels(pairs: Iterable[tuple[str, str]]) -> str:
    body = ",".join(f'{k}="{_escape(v)}"' for k, v in pairs)
    return "{" + body + "}" if body else ""


class _Metric(ABC):
    kind = ""

    def __init__(self, name: str, help: str, label_names: Iterable[str] = (),
                 *, namespace: str = "", subsystem: str = "") -> None:
        self.name = "_".join(p for p in (namespace, subsystem, name) if p)
        self.help = help
        self.label_names = tuple(label_names)
        self._children: dict[tuple[str, ...], object] = {}
        self._lock = threading.Lock()

    @abstractmethod
    def _new_child(self):
        """Create a fresh child for one set of label values."""

    @abstractmethod
    def _sample_lines(self, pairs, child) -> list[str]:
        """Render the sample lines of one child."""

    def _child(self, args: tuple) -> object:
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(a) for a in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = self._new_child()
        return child

    def _reset(self) -> None:
        with self._lock:
            self._children.clear()

    def _expose(self) -> str:
        lines = [f"# HELP {self.name} [ALPHA] {self.help}", f"# TYPE {self.name} {self.kind}"]
        with self._lock:
            items = sorted(self._children.items())
        for values, child in items:
            lines.extend(self._sample_lines(list(zip(self.label_names, values)), child))
        return "\n".join(lines) + "\n"


class _HistogramChild:
    def __init__(self, buckets: tuple[float, ...]) -> None:
        self.buckets = buckets
        self.bucket_counts = [0] * len(buckets)
        self.sum = 0.0
        self.count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self.bucket_counts[i] += 1
            self.sum += value
            self.count += 1


class Histogram(_Metric):
    """Histogram with cumulative buckets."""

    kind = "histogram"

    def __init__(self, name: str, help: str, buckets: Iterable[float] = DEF_BUCKETS,
                 label_names: Iterable[str] = (), *, namespace: str = "", subsystem: str = "") -> None:
        super().__init__(name, help, label_names, namespace=namespace, subsystem=subsystem)
        self.buckets = tuple(sorted(float(b) for b in buckets))

    def _new_child(self):
        return _HistogramChild(self.buckets)

    def _sample_lines(self, pairs, child):
        lines = [
            f"{self.name}_bucket{_labels(pairs + [('le', format_value(bound))])} {n}"
            for bound, n in zip(child.buckets, child.bucket_counts)
        ]
        lines.append(f"{self.name}_bucket{_labels(pairs + [('le', '+Inf')])} {child.count}")
        lines.append(f"{self.name}_sum{_labels(pairs)} {format_value(child.sum)}")
        lines.append(f"{self.name}_count{_labels(pairs)} {child.count}")
        return lines

    def with_label_values(self, *args: str) -> _HistogramChild:
        """Return the histogram for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop all observations."""
        self._reset()

    def expose(self) -> str:
        """Render the histogram in the Prometheus text format."""
        return self._expose()


class _CounterChild:
    def __init__(self) -> None:
        self.value = 0.0
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters can only increase")
        with self._lock:
            self.value += amount


class Counter(_Metric):
    """Monotonically increasing counter."""

    kind = "counter"

    def _new_child(self):
        return _CounterChild()

    def _sample_lines(self, pairs, child):
        return [f"{self.name}{_labels(pairs)} {format_value(child.value)}"]

    def with_label_values(self, *args: str) -> _CounterChild:
        """Return the counter for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop all counts."""
        self._reset()

    def expose(self) -> str:
        """Render the counter in the Prometheus text format."""
        return self._expose()


class _GaugeChild:
    def __init__(self) -> None:
        self.value = 0.0
        self._lock = threading.Lock()

    def set(self, value: float) -> None:
        with self._lock:
            self.value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value += amount

    def dec(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value -= amount


class Gauge(_Metric):
    """Value that can go up and down."""

    kind = "gauge"

    def _new_child(self):
        return _GaugeChild()

    def _sample_lines(self, pairs, child):
        return [f"{self.name}{_labels(pairs)} {format_value(child.value)}"]

    def with_label_values(self, *args: str) -> _GaugeChild:
        """Return the gauge for the given label values, creating it if needed."""
        return self._child(args)

    def reset(self) -> None:
        """Drop all values."""
        self._reset()

    def expose(self) -> str:
        """Render the gauge in the Prometheus text format."""
        return self._expose()


metric_freshness = Histogram(
    "metric_freshness_seconds",
    "Freshness of metrics exported",
    exponential_buckets(1, 1.364, 20),
    namespace="metrics_server",
    subsystem="api",
)


def register_api_metrics(registration_func: Callable[[_Metric], None]):
    """Register the freshness histogram of exported metrics."""
    return registration_func(metric_freshness)
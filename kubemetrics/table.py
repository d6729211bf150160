"""Quantities, durations and the tabular rendering of metrics."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from typing import Any, Iterable

from kubemetrics.models import NodeMetrics, PodMetrics

BINARY_SI = "BinarySI"
DECIMAL_SI = "DecimalSI"
DECIMAL_EXPONENT = "DecimalExponent"

_BINARY = {"Ki": 1, "Mi": 2, "Gi": 3, "Ti": 4, "Pi": 5, "Ei": 6}
_DECIMAL = {"n": -9, "u": -6, "m": -3, "": 0, "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18}
_DECIMAL_SUFFIX = {v: k for k, v in _DECIMAL.items()}
_QUANTITY = re.compile(r"([+-]?(?:\d+\.?\d*|\.\d+))(.*)")


@dataclass(frozen=True)
class Quantity:
    """Exact resource amount with the notation it was written in."""

    value: Fraction = Fraction(0)
    format: str = DECIMAL_SI

    @classmethod
    def parse(cls, text: str) -> Quantity:
        m = _QUANTITY.fullmatch(text.strip())
        if not m:
            raise ValueError(f"invalid quantity: {text!r}")
        number, suffix = Fraction(m[1]), m[2]
        if suffix in _BINARY:
            return cls(number * 1024 ** _BINARY[suffix], BINARY_SI)
        if suffix in _DECIMAL:
            return cls(number * Fraction(10) ** _DECIMAL[suffix], DECIMAL_SI)
        if e := re.fullmatch(r"[eE]([+-]?\d+)", suffix):
            return cls(number * Fraction(10) ** int(e[1]), DECIMAL_EXPONENT)
        raise ValueError(f"invalid quantity suffix: {text!r}")

    def __add__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        fmt = other.format if self.value == 0 else self.format
        return Quantity(self.value + other.value, fmt)

    def __str__(self) -> str:
        value = self.value
        if value == 0:
            return "0"
        if self.format == BINARY_SI and value.denominator == 1:
            n = int(value)
            for suffix, power in sorted(_BINARY.items(), key=lambda kv: -kv[1]):
                unit = 1024 ** power
                if n % unit == 0:
                    return f"{n // unit}{suffix}"
            return str(n)
        mantissa, exponent = math.ceil(value * 10 ** 9), -9
        while mantissa % 1000 == 0 and exponent < 18:
            mantissa //= 1000
            exponent += 3
        if self.format == DECIMAL_EXPONENT:
            return str(mantissa) if exponent == 0 else f"{mantissa}e{exponent}"
        return f"{mantissa}{_DECIMAL_SUFFIX[exponent]}"


def _fraction(value: int, precision: int) -> str:
    whole, rest = divmod(value, 10 ** precision)
    digits = f"{rest:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(nanoseconds: int) -> str:
    """Render a duration in nanoseconds the way ``1h2m3.5s`` or ``1µs`` reads."""
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    u = abs(nanoseconds)
    if u < 1000:
        return f"{sign}{u}ns"
    if u < 10 ** 6:
        return f"{sign}{_fraction(u, 3)}µs"
    if u < 10 ** 9:
        return f"{sign}{_fraction(u, 6)}ms"
    secs = u // 10 ** 9
    text = f"{_fraction(secs % 60 * 10 ** 9 + u % 10 ** 9, 9)}s"
    if secs >= 60:
        text = f"{secs // 60 % 60}m" + text
    if secs >= 3600:
        text = f"{secs // 3600}h" + text
    return sign + text


def _nanoseconds(window: timedelta) -> int:
    return ((window.days * 86400 + window.seconds) * 10 ** 6 + window.microseconds) * 1000


@dataclass
class TableColumnDefinition:
    name: str
    type: str
    format: str = ""
    description: str = ""


@dataclass
class TableRow:
    cells: list[Any]
    object: Any = None


@dataclass
class Table:
    column_definitions: list[TableColumnDefinition] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


def _columns(names: list[str]) -> list[TableColumnDefinition]:
    return (
        [TableColumnDefinition("Name", "string", "name", "Name of the resource")]
        + [TableColumnDefinition(n, "string", "quantity") for n in names]
        + [TableColumnDefinition("Window", "string", "duration")]
    )


def _append(table: Table, names: list[str] | None, name: str, usage: dict,
            window: timedelta, obj: Any) -> list[str] | None:
    if not names:
        names = sorted(usage) or None
        table.column_definitions = _columns(names or [])
    cells = [name, *(str(usage.get(n, Quantity())) for n in names or []),
             format_duration(_nanoseconds(window))]
    table.rows.append(TableRow(cells, obj))
    return names


def add_pod_metrics_to_table(table: Table, pods: Iterable[PodMetrics]) -> None:
    """Append one row per pod, summing usage over its containers."""
    names = None
    for pod in pods:
        usage: dict[str, Quantity] = {}
        for container in pod.containers:
            for key, amount in container.usage.items():
                usage[key] = usage.get(key, Quantity()) + amount
        names = _append(table, names, pod.name, usage, pod.window, pod)


def add_node_metrics_to_table(table: Table, nodes: Iterable[NodeMetrics]) -> None:
    """Append one row per node."""
    names = None
    for node in nodes:
        names = _append(table, names, node.name, node.usage, node.window, node)
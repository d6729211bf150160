"""Label and field selectors, and filtering of listed objects by field."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from kubemetrics.models import Node, ObjectMeta, PartialObjectMetadata


class Operator(Enum):
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


_NAME = r"[A-Za-z0-9_./-]+"
_VALUE = r"[A-Za-z0-9_./-]*"


@dataclass(frozen=True)
class Requirement:
    """One term of a label selector."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        op = self.operator
        if op in (Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.IN):
            return self.key in labels and labels[self.key] in self.values
        if op in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return self.key not in labels or labels[self.key] not in self.values
        if op is Operator.EXISTS:
            return self.key in labels
        return self.key not in labels

    def __str__(self) -> str:
        op = self.operator
        if op is Operator.EXISTS:
            return self.key
        if op is Operator.DOES_NOT_EXIST:
            return "!" + self.key
        if op in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {op.value} ({','.join(self.values)})"
        return f"{self.key}{op.value}{self.values[0]}"


def _split_terms(text: str) -> list[str]:
    terms, depth, current = [], 0, []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(ch)
    terms.append("".join(current))
    return terms


def parse_requirements(text: str) -> list[Requirement]:
    """Parse a label selector such as ``a=b,c!=d,e in (f,g),!h``."""
    if not text.strip():
        return []
    result = []
    for term in _split_terms(text):
        term = term.strip()
        if m := re.fullmatch(rf"({_NAME})\s*(==|!=|=)\s*({_VALUE})", term):
            result.append(Requirement(m[1], Operator(m[2]), (m[3],)))
        elif m := re.fullmatch(rf"({_NAME})\s+(in|notin)\s*\(([^)]*)\)", term):
            values = tuple(sorted(v.strip() for v in m[3].split(",") if v.strip()))
            if not values:
                raise ValueError(f"selector term {term!r} needs at least one value")
            result.append(Requirement(m[1], Operator(m[2]), values))
        elif m := re.fullmatch(rf"!\s*({_NAME})", term):
            result.append(Requirement(m[1], Operator.DOES_NOT_EXIST))
        elif re.fullmatch(_NAME, term):
            result.append(Requirement(term, Operator.EXISTS))
        else:
            raise ValueError(f"invalid label selector term: {term!r}")
    return result


@dataclass(frozen=True)
class LabelSelector:
    """Conjunction of label requirements."""

    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def add(self, *args: Requirement) -> LabelSelector:
        """Return a new selector with the extra requirements."""
        return LabelSelector(self.requirements + tuple(args))

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)


def selector_from_set(mapping: Mapping[str, str]) -> LabelSelector:
    return LabelSelector(tuple(
        Requirement(k, Operator.EQUALS, (v,)) for k, v in sorted(mapping.items())
    ))


def everything() -> LabelSelector:
    """Selector that matches every object."""
    return LabelSelector()


@dataclass(frozen=True)
class FieldSelector:
    """Conjunction of field terms; a missing field reads as the empty string."""

    terms: tuple[tuple[str, str, str], ...] = ()

    def matches(self, fields: Mapping[str, str]) -> bool:
        for name, op, value in self.terms:
            equal = fields.get(name, "") == value
            if equal != (op != "!="):
                return False
        return True

    def __str__(self) -> str:
        return ",".join(f"{n}{op}{v}" for n, op, v in self.terms)


def field_selector_from_set(mapping: Mapping[str, str]) -> FieldSelector:
    return FieldSelector(tuple((k, "=", v) for k, v in sorted(mapping.items())))


@dataclass
class ListOptions:
    label_selector: LabelSelector | None = None
    field_selector: FieldSelector | None = None


def object_meta_fields(meta: ObjectMeta, namespaced: bool) -> dict[str, str]:
    """Return the selectable fields of an object's metadata."""
    fields = {"metadata.name": meta.name}
    if namespaced:
        fields["metadata.namespace"] = meta.namespace
    return fields


def filter_nodes(nodes: Iterable[Node], selector: FieldSelector) -> list[Node]:
    return [n for n in nodes if selector.matches(object_meta_fields(n.metadata, False))]


def filter_partial_object_metadata(objs: Iterable[PartialObjectMetadata],
                                   selector: FieldSelector) -> list[PartialObjectMetadata]:
    return [o for o in objs if selector.matches(object_meta_fields(o.metadata, True))]
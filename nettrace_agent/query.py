"""Ranked and name-based queries over a built catalog."""

from __future__ import annotations

from enum import Enum
from typing import Callable

from nettrace_agent.catalog import AssemblyRecord, Catalog, MethodRecord
from nettrace_agent.errors import InvalidQuery


class Metric(str, Enum):
    SIZE = "Size"
    JIT_TIME = "JitTime"
    TIME_TO_REACH = "TimeToReach"


_METRIC_VALUES: dict[str, Callable[[MethodRecord], float | None]] = {
    Metric.SIZE.value: lambda record: record.method_size,
    Metric.JIT_TIME.value: lambda record: record.jit_duration,
    Metric.TIME_TO_REACH.value: lambda record: record.timestamp_ms,
}


def parse_metric(value: Metric | str) -> Metric:
    """
    Resolve a metric selector such as "Size", "jittime" or "SortByTimeToReach".

    Raises:
        InvalidQuery: if the selector names no known metric
    """
    if isinstance(value, Metric):
        return value
    text = str(value).strip().lower()
    if text.startswith("sortby"):
        text = text[len("sortby"):]
    for metric in Metric:
        if metric.value.lower() == text:
            return metric
    valid = ", ".join(metric.value for metric in Metric)
    raise InvalidQuery(f"Invalid sort metric: {value}. Valid values are: {valid}")


def _sort_key(metric: Metric) -> Callable[[MethodRecord], tuple[bool, float]]:
    value_of = _METRIC_VALUES.get(metric.value)
    if value_of is None:
        raise InvalidQuery(f"No ranking defined for metric: {metric.value}")

    def key(record: MethodRecord) -> tuple[bool, float]:
        value = value_of(record)
        # Unknown sorts below every known value; it is never coerced to zero.
        if value is None:
            return False, 0.0
        return True, value

    return key


def top_n(catalog: Catalog, n: int, metric: Metric | str) -> list[MethodRecord]:
    """
    Return the n highest-ranked methods for metric, largest first.

    Ties keep catalog insertion order.
    """
    key = _sort_key(parse_metric(metric))
    if n <= 0:
        return []
    ranked = sorted(catalog.methods.values(), key=key, reverse=True)
    return ranked[:n]


def _matches(record: MethodRecord, fragment: str) -> bool:
    name = (record.name or "").lower()
    namespace = (record.namespace or "").lower()
    return (
        fragment in name
        or fragment in namespace
        or fragment in f"{namespace}.{name}"
    )


def find_by_name(catalog: Catalog, fragment: str) -> list[MethodRecord]:
    """Methods whose name, namespace or namespace.name contains fragment, ignoring case."""
    needle = fragment.lower()
    return [record for record in catalog.methods.values() if _matches(record, needle)]


def assemblies_by_load_time(catalog: Catalog) -> list[AssemblyRecord]:
    def key(record: AssemblyRecord) -> tuple[bool, float]:
        if record.timestamp_ms is None:
            return True, 0.0
        return False, record.timestamp_ms

    return sorted(catalog.assemblies.values(), key=key)

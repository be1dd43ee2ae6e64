"""JSON-ready views of query results."""

from __future__ import annotations

from dataclasses import asdict
from typing import Sequence

from nettrace_agent.catalog import AssemblyRecord, Catalog, MethodRecord


def record_to_dict(record: MethodRecord) -> dict:
    payload = asdict(record)
    payload["jit_duration_ms"] = record.jit_duration
    payload["full_name"] = record.full_name
    return payload


def records_to_dicts(records: Sequence[MethodRecord]) -> list[dict]:
    return [record_to_dict(record) for record in records]


def assemblies_to_dicts(records: Sequence[AssemblyRecord]) -> list[dict]:
    return [asdict(record) for record in records]


def catalog_summary(catalog: Catalog, trace_path: str | None = None) -> dict:
    return {
        "trace_path": trace_path,
        "total_events": catalog.total_events,
        "assembly_load_events": catalog.assembly_load_events,
        "method_details_events": catalog.method_details_events,
        "jit_start_events": catalog.jit_start_events,
        "skipped_events": catalog.skipped_events,
        "method_count": len(catalog.methods),
        "assembly_count": len(catalog.assemblies)
    }

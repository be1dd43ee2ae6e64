"""Correlation of loader and JIT events into per-method and per-assembly records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from nettrace_agent.decoder import AssemblyLoad, MethodJitComplete, MethodJitStart, TraceEvent


@dataclass
class MethodRecord:
    method_id: int
    il_size: int | None = None
    jit_start_time_ms: float | None = None
    jit_end_time_ms: float | None = None
    method_size: int | None = None
    module_id: int | None = None
    name: str | None = None
    namespace: str | None = None
    signature: str | None = None
    optimization_tier: str | None = None
    timestamp_ms: float | None = None
    process_id: int | None = None
    thread_id: int | None = None
    provider_name: str | None = None
    process_name: str | None = None
    clr_instance_id: int | None = None
    method_start_address: int | None = None

    @property
    def jit_duration(self) -> float | None:
        """JIT time in ms, or None unless both start and end were seen."""
        start = self.jit_start_time_ms
        end = self.jit_end_time_ms
        if start is None or end is None or start <= 0 or end <= 0:
            return None
        return end - start

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace or ''}.{self.name or ''}"

    @property
    def full_name(self) -> str:
        return f"{self.namespace or ''}.{self.name or ''}.{self.signature or ''}"


@dataclass
class AssemblyRecord:
    assembly_id: int
    timestamp_ms: float | None = None
    app_domain_id: int | None = None
    assembly_name: str | None = None
    process_id: int | None = None
    thread_id: int | None = None
    provider_name: str | None = None
    process_name: str | None = None


@dataclass
class Catalog:
    methods: dict[int, MethodRecord] = field(default_factory=dict)
    assemblies: dict[int, AssemblyRecord] = field(default_factory=dict)
    total_events: int = 0
    assembly_load_events: int = 0
    method_details_events: int = 0
    jit_start_events: int = 0
    skipped_events: int = 0


class CatalogBuilder:
    """Single-pass builder that merges partial method facts keyed by method id."""

    def __init__(self):
        self.catalog = Catalog()

    def _method(self, method_id: int) -> MethodRecord:
        record = self.catalog.methods.get(method_id)
        if record is None:
            record = MethodRecord(method_id=method_id)
            self.catalog.methods[method_id] = record
        return record

    def on_assembly_load(self, event: AssemblyLoad) -> None:
        if event.assembly_id is None:
            self.catalog.skipped_events += 1
            return
        self.catalog.assembly_load_events += 1
        self.catalog.total_events += 1
        self.catalog.assemblies[event.assembly_id] = AssemblyRecord(
            assembly_id=event.assembly_id,
            timestamp_ms=event.timestamp_ms,
            app_domain_id=event.app_domain_id,
            assembly_name=event.assembly_name,
            process_id=event.process_id,
            thread_id=event.thread_id,
            provider_name=event.provider_name,
            process_name=event.process_name
        )

    def on_jit_start(self, event: MethodJitStart) -> None:
        if event.method_id is None:
            self.catalog.skipped_events += 1
            return
        self.catalog.jit_start_events += 1
        self.catalog.total_events += 1
        record = self._method(event.method_id)
        record.jit_start_time_ms = event.timestamp_ms
        # Zero or negative IL size means the runtime did not report it.
        if event.il_size is not None and event.il_size > 0:
            record.il_size = event.il_size

    def on_jit_complete(self, event: MethodJitComplete) -> None:
        if event.method_id is None:
            self.catalog.skipped_events += 1
            return
        self.catalog.method_details_events += 1
        self.catalog.total_events += 1
        record = self._method(event.method_id)
        record.timestamp_ms = event.timestamp_ms
        record.jit_end_time_ms = event.timestamp_ms
        record.method_size = event.method_size
        record.module_id = event.module_id
        record.name = event.name
        record.namespace = event.namespace
        record.signature = event.signature
        record.optimization_tier = event.optimization_tier
        record.process_id = event.process_id
        record.thread_id = event.thread_id
        record.provider_name = event.provider_name
        record.process_name = event.process_name
        record.clr_instance_id = event.clr_instance_id
        record.method_start_address = event.method_start_address

    def add(self, event: TraceEvent) -> None:
        if isinstance(event, MethodJitStart):
            self.on_jit_start(event)
        elif isinstance(event, MethodJitComplete):
            self.on_jit_complete(event)
        elif isinstance(event, AssemblyLoad):
            self.on_assembly_load(event)
        else:
            raise TypeError(f"Unsupported trace event: {type(event).__name__}")


def build(events: Iterable[TraceEvent]) -> Catalog:
    """
    Build a catalog from an event stream, consuming it once in delivered order.

    Start and completion events for a method may arrive in either order; the
    first one seen creates the record.
    """
    builder = CatalogBuilder()
    for event in events:
        builder.add(event)
    return builder.catalog

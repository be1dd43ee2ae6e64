"""Fixed-column text rendering of method and assembly records."""

from __future__ import annotations

from typing import Sequence

from nettrace_agent.catalog import AssemblyRecord, Catalog, MethodRecord


MIN_NAME_COLUMN_WIDTH = 50
IL_SIZE_WIDTH = 15
METHOD_SIZE_WIDTH = 20
TIMESTAMP_WIDTH = 15
JIT_TIME_WIDTH = 15


def name_column_width(records: Sequence[MethodRecord]) -> int:
    """Width of the method-name column for exactly these records."""
    longest = max((len(record.full_name) for record in records), default=0)
    return max(MIN_NAME_COLUMN_WIDTH, longest + 2)


def _row(record: MethodRecord) -> str:
    jit_duration = record.jit_duration
    # Unknown or negative JIT time displays as zero; ranking uses the raw value.
    if jit_duration is None or jit_duration < 0:
        jit_duration = 0.0
    return (
        f"{record.il_size or 0:<{IL_SIZE_WIDTH}} "
        f"{record.method_size or 0:<{METHOD_SIZE_WIDTH}} "
        f"{record.timestamp_ms or 0.0:<{TIMESTAMP_WIDTH}.2f} "
        f"{jit_duration:<{JIT_TIME_WIDTH}.2f} "
        f"{record.full_name}"
    )


def render(records: Sequence[MethodRecord], title: str) -> str:
    """
    Render records as a table, in the order given.

    Args:
        records: Query result to display
        title: First line of the report

    Returns:
        Report text ending with a newline
    """
    total_width = (
        name_column_width(records)
        + IL_SIZE_WIDTH
        + METHOD_SIZE_WIDTH
        + TIMESTAMP_WIDTH
        + JIT_TIME_WIDTH
    )
    separator = "-" * total_width
    header = (
        f"{'IL Size (bytes)':<{IL_SIZE_WIDTH}} "
        f"{'Method Size (bytes)':<{METHOD_SIZE_WIDTH}} "
        f"{'Timestamp (ms)':<{TIMESTAMP_WIDTH}} "
        f"{'JIT Time (ms)':<{JIT_TIME_WIDTH}} "
        "Method Name"
    )

    lines = [title, separator, header, separator]
    lines.extend(_row(record) for record in records)
    return "\n".join(lines) + "\n"


def render_summary(catalog: Catalog, trace_path: str | None = None) -> str:
    lines = []
    if trace_path:
        lines.append(f"Processing file: {trace_path}")
    lines.append(f"Total events processed: {catalog.total_events}")
    lines.append(f"Assembly Load events found: {catalog.assembly_load_events}")
    lines.append(f"Method Details events found: {catalog.method_details_events}")
    lines.append(f"JIT Start events found: {catalog.jit_start_events}")
    if catalog.skipped_events:
        lines.append(f"Skipped events (missing identifier): {catalog.skipped_events}")
    return "\n".join(lines) + "\n"


def _hex(value: int | None) -> str:
    if value is None:
        return "unknown"
    return f"0x{value:X}"


def _known(value, suffix: str = "") -> str:
    if value is None:
        return "unknown"
    if isinstance(value, float):
        return f"{value:.2f}{suffix}"
    return f"{value}{suffix}"


def _details(record: MethodRecord) -> list[str]:
    fields = [
        ("Method ID", _hex(record.method_id)),
        ("Module ID", _hex(record.module_id)),
        ("Namespace", _known(record.namespace)),
        ("Name", _known(record.name)),
        ("Signature", _known(record.signature)),
        ("IL size", _known(record.il_size, " bytes")),
        ("Method size", _known(record.method_size, " bytes")),
        ("Optimization tier", _known(record.optimization_tier)),
        ("JIT start", _known(record.jit_start_time_ms, " ms")),
        ("JIT end", _known(record.jit_end_time_ms, " ms")),
        ("JIT time", _known(record.jit_duration, " ms")),
        ("Time to reach", _known(record.timestamp_ms, " ms")),
        ("Start address", _hex(record.method_start_address)),
        ("Process", f"{_known(record.process_name)} (pid {_known(record.process_id)})"),
        ("Thread", _known(record.thread_id)),
        ("Provider", _known(record.provider_name)),
    ]
    label_width = max(len(label) for label, _ in fields) + 1
    lines = [record.full_name]
    lines.extend(f"  {label + ':':<{label_width}} {value}" for label, value in fields)
    return lines


def render_method_stats(records: Sequence[MethodRecord], fragment: str) -> str:
    """Table plus every known fact for each method matching fragment."""
    if not records:
        return f"No methods matching '{fragment}' were found.\n"

    parts = [render(records, f"Methods matching '{fragment}' ({len(records)} found):")]
    for record in records:
        parts.append("\n".join(_details(record)) + "\n")
    return "\n".join(parts)


def render_assemblies(records: Sequence[AssemblyRecord]) -> str:
    total_width = TIMESTAMP_WIDTH + 20 + 20 + MIN_NAME_COLUMN_WIDTH
    separator = "-" * total_width
    header = f"{'Timestamp (ms)':<{TIMESTAMP_WIDTH}} {'App Domain ID':<20} {'Assembly ID':<20} Assembly Name"
    lines = [f"Loaded assemblies ({len(records)}):", separator, header, separator]
    for record in records:
        lines.append(
            f"{record.timestamp_ms or 0.0:<{TIMESTAMP_WIDTH}.2f} "
            f"{_hex(record.app_domain_id):<20} "
            f"{_hex(record.assembly_id):<20} "
            f"{record.assembly_name or ''}"
        )
    return "\n".join(lines) + "\n"

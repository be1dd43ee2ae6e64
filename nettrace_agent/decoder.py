"""Event stream adapter: read loader and JIT runtime events out of an exported trace."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from perfetto.trace_processor import TraceProcessor, TraceProcessorConfig

from nettrace_agent.errors import DecodeError


JIT_START_EVENT_NAMES = ("Method/JittingStarted", "MethodJittingStarted")
JIT_COMPLETE_EVENT_NAMES = ("Method/LoadVerbose", "MethodLoadVerbose")
ASSEMBLY_LOAD_EVENT_NAMES = ("Loader/AssemblyLoad", "AssemblyLoad")

NETTRACE_SUFFIX = ".nettrace"
INTERMEDIATE_SUFFIX = ".trace.json"


@dataclass(frozen=True)
class AssemblyLoad:
    assembly_id: int | None
    timestamp_ms: float | None
    app_domain_id: int | None = None
    assembly_name: str | None = None
    process_id: int | None = None
    thread_id: int | None = None
    provider_name: str | None = None
    process_name: str | None = None


@dataclass(frozen=True)
class MethodJitStart:
    method_id: int | None
    timestamp_ms: float | None
    il_size: int | None = None


@dataclass(frozen=True)
class MethodJitComplete:
    method_id: int | None
    timestamp_ms: float | None
    method_size: int | None = None
    module_id: int | None = None
    name: str | None = None
    namespace: str | None = None
    signature: str | None = None
    optimization_tier: str | None = None
    process_id: int | None = None
    thread_id: int | None = None
    provider_name: str | None = None
    process_name: str | None = None
    clr_instance_id: int | None = None
    method_start_address: int | None = None


TraceEvent = Union[AssemblyLoad, MethodJitStart, MethodJitComplete]


def _arg(field: str) -> str:
    return f"EXTRACT_ARG(s.arg_set_id, 'args.{field}') AS {field}"


def _quoted(names: tuple[str, ...]) -> str:
    return ", ".join(f"'{name}'" for name in names)


_PAYLOAD_FIELDS = [
    "MethodID",
    "MethodILSize",
    "MethodSize",
    "ModuleID",
    "MethodName",
    "MethodNamespace",
    "MethodSignature",
    "OptimizationTier",
    "ClrInstanceID",
    "MethodStartAddress",
    "AssemblyID",
    "AppDomainID",
    "FullyQualifiedAssemblyName",
]

_PAYLOAD_SQL = ",\n    ".join(_arg(field) for field in _PAYLOAD_FIELDS)
_NAMES_SQL = _quoted(
    JIT_START_EVENT_NAMES + JIT_COMPLETE_EVENT_NAMES + ASSEMBLY_LOAD_EVENT_NAMES
)

_EVENTS_SQL = f"""
SELECT
    s.id AS id,
    s.name AS name,
    (s.ts - (SELECT start_ts FROM trace_bounds)) / 1e6 AS ts_ms,
    COALESCE(EXTRACT_ARG(s.arg_set_id, 'args.ProviderName'), s.category) AS provider_name,
    t.tid AS tid,
    p.pid AS pid,
    p.name AS process_name,
    {_PAYLOAD_SQL}
FROM slice s
LEFT JOIN thread_track tt ON tt.id = s.track_id
LEFT JOIN thread t ON t.utid = tt.utid
LEFT JOIN process p ON p.upid = t.upid
WHERE s.name IN ({_NAMES_SQL})
ORDER BY s.ts, s.id
"""


def _q(tp: TraceProcessor, sql: str) -> list[dict]:
    """Execute a SQL query and return results as a list of dictionaries."""
    result = tp.query(sql)
    rows = []
    for row in result:
        row_dict = {col: getattr(row, col) for col in result.column_names}
        rows.append(row_dict)
    return rows


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text, 0)
    except ValueError:
        return None


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def event_from_row(row: dict) -> TraceEvent | None:
    """
    Normalize one trace processor row into a typed event.

    Returns None for rows whose name is not a loader or JIT event.
    """
    name = row.get("name")
    ts_ms = _as_float(row.get("ts_ms"))

    if name in JIT_START_EVENT_NAMES:
        return MethodJitStart(
            method_id=_as_int(row.get("MethodID")),
            timestamp_ms=ts_ms,
            il_size=_as_int(row.get("MethodILSize"))
        )

    if name in JIT_COMPLETE_EVENT_NAMES:
        return MethodJitComplete(
            method_id=_as_int(row.get("MethodID")),
            timestamp_ms=ts_ms,
            method_size=_as_int(row.get("MethodSize")),
            module_id=_as_int(row.get("ModuleID")),
            name=_as_str(row.get("MethodName")),
            namespace=_as_str(row.get("MethodNamespace")),
            signature=_as_str(row.get("MethodSignature")),
            optimization_tier=_as_str(row.get("OptimizationTier")),
            process_id=_as_int(row.get("pid")),
            thread_id=_as_int(row.get("tid")),
            provider_name=_as_str(row.get("provider_name")),
            process_name=_as_str(row.get("process_name")),
            clr_instance_id=_as_int(row.get("ClrInstanceID")),
            method_start_address=_as_int(row.get("MethodStartAddress"))
        )

    if name in ASSEMBLY_LOAD_EVENT_NAMES:
        return AssemblyLoad(
            assembly_id=_as_int(row.get("AssemblyID")),
            timestamp_ms=ts_ms,
            app_domain_id=_as_int(row.get("AppDomainID")),
            assembly_name=_as_str(row.get("FullyQualifiedAssemblyName")),
            process_id=_as_int(row.get("pid")),
            thread_id=_as_int(row.get("tid")),
            provider_name=_as_str(row.get("provider_name")),
            process_name=_as_str(row.get("process_name"))
        )

    return None


def intermediate_path(trace_path: Path) -> Path:
    """Path of the indexable export kept beside a .nettrace container."""
    return trace_path.with_suffix(INTERMEDIATE_SUFFIX)


def _convert_nettrace(trace_path: Path, output_path: Path) -> None:
    command = os.getenv("NETTRACE_CONVERTER")
    if not command:
        raise DecodeError(
            f"{trace_path} is a .nettrace container and no export was found at {output_path}; "
            "set NETTRACE_CONVERTER to a command that writes it "
            "(use {input} and {output} as placeholders)"
        )

    args = [
        part.replace("{input}", str(trace_path)).replace("{output}", str(output_path))
        for part in shlex.split(command)
    ]
    print(f"Converting {trace_path.name} to {output_path.name}", file=sys.stderr)
    try:
        completed = subprocess.run(args, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise DecodeError(f"Failed to run trace converter {args[0]!r}: {exc}") from exc

    if completed.returncode != 0:
        raise DecodeError(
            f"Trace converter exited with code {completed.returncode}: {completed.stderr.strip()}"
        )
    if not output_path.is_file():
        raise DecodeError(f"Trace converter did not produce {output_path}")


def resolve_indexable_trace(trace_path: Path) -> Path:
    """
    Return the file the trace processor should open for trace_path.

    A .nettrace container is exported once to a sibling .trace.json file; an
    export that is at least as new as the container is reused.
    """
    if trace_path.suffix.lower() != NETTRACE_SUFFIX:
        return trace_path

    output_path = intermediate_path(trace_path)
    if output_path.is_file() and output_path.stat().st_mtime >= trace_path.stat().st_mtime:
        return output_path

    _convert_nettrace(trace_path, output_path)
    return output_path


class RuntimeEventReader:
    """Wrapper for a TraceProcessor session over one exported runtime trace."""

    def __init__(self, trace_path: str | Path):
        """
        Open the trace with the trace processor.

        Args:
            trace_path: Path to an indexable trace (already converted if needed)
        """
        self.trace_path = Path(trace_path)
        bin_path = os.getenv("TRACE_PROCESSOR_BIN")
        if bin_path and not Path(bin_path).is_file():
            raise DecodeError(f"TRACE_PROCESSOR_BIN does not point to a file: {bin_path}")
        try:
            if bin_path:
                self.tp = TraceProcessor(
                    trace=str(self.trace_path),
                    config=TraceProcessorConfig(bin_path=bin_path)
                )
            else:
                self.tp = TraceProcessor(trace=str(self.trace_path))
        except OSError as exc:
            # Download, spawn and socket failures of the shell itself.
            raise DecodeError(
                f"Trace processor could not be started ({exc}); "
                "set TRACE_PROCESSOR_BIN to a local trace_processor_shell binary"
            ) from exc
        except Exception as exc:
            raise DecodeError(f"Not a recognized trace container: {self.trace_path} ({exc})") from exc

    def close(self):
        """Close the trace processor."""
        self.tp.close()

    def read_events(self) -> list[TraceEvent]:
        """
        Read loader and JIT events in capture order.

        Returns:
            List of typed events; rows of other kinds are dropped
        """
        try:
            rows = _q(self.tp, _EVENTS_SQL)
        except Exception as exc:
            raise DecodeError(f"Failed to read runtime events from {self.trace_path}: {exc}") from exc

        events = []
        for row in rows:
            event = event_from_row(row)
            if event is not None:
                events.append(event)
        return events


def load_events(trace_path: str | Path) -> list[TraceEvent]:
    """
    Decode a captured trace into the ordered event sequence the catalog is built from.

    Raises:
        DecodeError: if the file is absent, unreadable, or not a recognized container
    """
    path = Path(trace_path)
    if not path.exists():
        raise DecodeError(f"Trace file not found: {path}")
    if not path.is_file():
        raise DecodeError(f"Path is not a file: {path}")

    reader = RuntimeEventReader(resolve_indexable_trace(path))
    try:
        return reader.read_events()
    finally:
        reader.close()

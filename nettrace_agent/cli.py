"""CLI entry point for the .NET startup trace analyzer."""

import json
import typer
from typing import Optional
from pathlib import Path
from rich.console import Console
from rich.markup import escape
from nettrace_agent.catalog import Catalog, build
from nettrace_agent.decoder import load_events
from nettrace_agent.errors import DecodeError, InvalidQuery
from nettrace_agent.query import Metric, assemblies_by_load_time, find_by_name, parse_metric, top_n
from nettrace_agent.report import (
    assemblies_to_dicts,
    catalog_summary,
    records_to_dicts,
    render,
    render_assemblies,
    render_method_stats,
    render_summary
)

DEFAULT_TOP_N = 10
DEFAULT_METRIC = Metric.SIZE.value

_METRIC_TITLES = {
    Metric.SIZE: "compiled size",
    Metric.JIT_TIME: "JIT time",
    Metric.TIME_TO_REACH: "time to reach",
}

app = typer.Typer(
    help="nettrace agent - Analyze method JIT and assembly loading in .NET startup traces",
    no_args_is_help=True
)
console = Console()


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """nettrace agent - Analyze method JIT and assembly loading in .NET startup traces."""
    if ctx.invoked_subcommand is None:
        # Show help if no subcommand is provided
        pass


def _check_trace(trace: Path) -> None:
    if not trace.exists():
        console.print(f"[red]Error:[/red] Trace file not found: {escape(str(trace))}")
        raise typer.Exit(code=1)

    if not trace.is_file():
        console.print(f"[red]Error:[/red] Path is not a file: {escape(str(trace))}")
        raise typer.Exit(code=1)


def _load_catalog(trace: Path) -> Catalog:
    console.print(f"[blue]Analyzing trace:[/blue] {escape(str(trace))}")
    try:
        catalog = build(load_events(trace))
    except DecodeError as e:
        console.print(f"[red]Error decoding trace:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    typer.echo(render_summary(catalog, str(trace)))
    return catalog


def _write_json(out: Path, payload: dict) -> None:
    with open(out, "w") as f:
        json.dump(payload, f, indent=2)
    console.print(f"[green]✓[/green] JSON written to: {escape(str(out))}")


@app.command()
def top(
    trace: Path = typer.Option(..., "--trace", help="Path to the startup trace"),
    n: int = typer.Option(DEFAULT_TOP_N, "--n", help="Number of methods to list"),
    metric: str = typer.Option(DEFAULT_METRIC, "--metric", help="Sort metric: Size, JitTime or TimeToReach"),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Optional JSON output file path"),
):
    """List the top N methods ranked by size, JIT time or time to reach."""
    try:
        selected = parse_metric(metric)
    except InvalidQuery as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    _check_trace(trace)
    console.print(f"[blue]Top N methods:[/blue] {n}")
    console.print(f"[blue]Sort metric:[/blue] {selected.value}")

    catalog = _load_catalog(trace)
    methods = top_n(catalog, n, selected)
    typer.echo(render(methods, f"Top {n} methods by {_METRIC_TITLES[selected]}:"))

    if json_out is not None:
        _write_json(json_out, {
            "summary": catalog_summary(catalog, str(trace)),
            "metric": selected.value,
            "methods": records_to_dicts(methods)
        })


@app.command()
def find(
    trace: Path = typer.Option(..., "--trace", help="Path to the startup trace"),
    name: str = typer.Option(..., "--name", help="Method or namespace name fragment (case-insensitive)"),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Optional JSON output file path"),
):
    """Display everything known about methods matching a name fragment."""
    _check_trace(trace)
    console.print(f"[blue]Method name:[/blue] {escape(name)}")

    catalog = _load_catalog(trace)
    methods = find_by_name(catalog, name)
    typer.echo(render_method_stats(methods, name))

    if json_out is not None:
        _write_json(json_out, {
            "summary": catalog_summary(catalog, str(trace)),
            "fragment": name,
            "methods": records_to_dicts(methods)
        })


@app.command()
def assemblies(
    trace: Path = typer.Option(..., "--trace", help="Path to the startup trace"),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Optional JSON output file path"),
):
    """List loaded assemblies in load order."""
    _check_trace(trace)

    catalog = _load_catalog(trace)
    loaded = assemblies_by_load_time(catalog)
    typer.echo(render_assemblies(loaded))

    if json_out is not None:
        _write_json(json_out, {
            "summary": catalog_summary(catalog, str(trace)),
            "assemblies": assemblies_to_dicts(loaded)
        })


if __name__ == "__main__":
    app()

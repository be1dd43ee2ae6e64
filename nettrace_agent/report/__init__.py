"""Report rendering utilities."""

from nettrace_agent.report.export import (
    assemblies_to_dicts,
    catalog_summary,
    records_to_dicts
)
from nettrace_agent.report.table import (
    render,
    render_assemblies,
    render_method_stats,
    render_summary
)

__all__ = [
    "assemblies_to_dicts",
    "catalog_summary",
    "records_to_dicts",
    "render",
    "render_assemblies",
    "render_method_stats",
    "render_summary"
]

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from typer.testing import CliRunner

from nettrace_agent.cli import app
from nettrace_agent.decoder import AssemblyLoad, MethodJitComplete, MethodJitStart
from nettrace_agent.errors import DecodeError


def _events():
    events = [
        AssemblyLoad(assembly_id=1, timestamp_ms=0.1, assembly_name="App"),
        AssemblyLoad(assembly_id=2, timestamp_ms=0.2, assembly_name="Mono.Android"),
    ]
    for method_id, size in enumerate([120, 80, 200, 50], start=1):
        events.append(MethodJitStart(method_id=method_id, timestamp_ms=float(method_id), il_size=16))
        events.append(
            MethodJitComplete(
                method_id=method_id,
                timestamp_ms=method_id + 0.5,
                method_size=size,
                name=f"Method{method_id}",
                namespace="App.Startup",
                signature="void  ()"
            )
        )
    return events


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.trace = Path(self.tmp.name) / "startup.json"
        self.trace.write_text("[]")

    def test_top_by_size(self):
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(app, ["top", "--trace", str(self.trace), "--n", "2"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Total events processed: 10", result.output)
        self.assertIn("Top 2 methods by compiled size:", result.output)
        self.assertLess(result.output.index("Method3"), result.output.index("Method1"))
        self.assertNotIn("Method2", result.output)

    def test_top_writes_json(self):
        out = Path(self.tmp.name) / "top.json"
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(
                app,
                ["top", "--trace", str(self.trace), "--n", "3", "--metric", "SortByJitTime", "--json-out", str(out)]
            )

        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(out.read_text())
        self.assertEqual(payload["metric"], "JitTime")
        self.assertEqual(len(payload["methods"]), 3)
        self.assertEqual(payload["summary"]["assembly_load_events"], 2)

    def test_invalid_metric_fails_before_decoding(self):
        with mock.patch("nettrace_agent.cli.load_events") as load:
            result = self.runner.invoke(app, ["top", "--trace", str(self.trace), "--metric", "Color"])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid sort metric", result.output)
        load.assert_not_called()

    def test_find_reports_matches(self):
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(app, ["find", "--trace", str(self.trace), "--name", "method4"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Methods matching 'method4' (1 found):", result.output)
        self.assertIn("App.Startup.Method4", result.output)

    def test_find_without_matches_is_not_an_error(self):
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(app, ["find", "--trace", str(self.trace), "--name", "Missing"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No methods matching 'Missing' were found.", result.output)

    def test_find_with_markup_like_fragment(self):
        with mock.patch("nettrace_agent.cli.load_events", return_value=[]):
            result = self.runner.invoke(app, ["find", "--trace", str(self.trace), "--name", "List[/T]"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No methods matching 'List[/T]' were found.", result.output)

    def test_bracketed_trace_path(self):
        folder = Path(self.tmp.name) / "run["
        folder.mkdir()
        trace = folder / "b].json"
        trace.write_text("[]")
        self.assertIn("[/b]", str(trace))
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(app, ["assemblies", "--trace", str(trace)])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Loaded assemblies (2):", result.output)

    def test_assemblies(self):
        with mock.patch("nettrace_agent.cli.load_events", return_value=_events()):
            result = self.runner.invoke(app, ["assemblies", "--trace", str(self.trace)])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Loaded assemblies (2):", result.output)
        self.assertIn("Mono.Android", result.output)

    def test_decode_error(self):
        with mock.patch("nettrace_agent.cli.load_events", side_effect=DecodeError("not a trace")):
            result = self.runner.invoke(app, ["top", "--trace", str(self.trace)])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("not a trace", result.output)

    def test_missing_trace(self):
        result = self.runner.invoke(app, ["top", "--trace", str(Path(self.tmp.name) / "nope.json")])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Trace file not found", result.output)


if __name__ == "__main__":
    unittest.main()

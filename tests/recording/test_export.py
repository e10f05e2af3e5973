"""Tests for trace export."""

import json

from tracereplay.recording.export import TraceExporter
from tracereplay.recording.models import NavigateStep, Trace


class TestTraceExporter:
    """Tests for writing traces to disk."""

    def test_filename_uses_epoch_milliseconds(self, tmp_path):
        exporter = TraceExporter(tmp_path, clock=lambda: 1700000000.5)

        assert exporter.filename() == "trace-1700000000500.json"

    def test_export_writes_pretty_json(self, tmp_path):
        exporter = TraceExporter(tmp_path / "out", clock=lambda: 1700000000.5)
        trace = Trace(steps=[NavigateStep(url="https://example.com")])

        path = exporter.export(trace)

        assert path == tmp_path / "out" / "trace-1700000000500.json"
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        assert json.loads(text)["steps"][0]["url"] == "https://example.com"

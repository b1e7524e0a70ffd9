"""Tests for CLI output formatting."""

import json
from datetime import datetime, timezone

from shareaudit.cli.output import OutputFormatter, render_cell


class TestRenderCell:
    def test_risky_summary_in_level_order(self):
        summary = {"low": 3, "critical": 0, "medium": 2, "high": 1}

        assert render_cell(summary) == "critical=0 high=1 medium=2 low=3"

    def test_partial_summary_fills_zeros(self):
        assert render_cell({"high": 2}) == "critical=0 high=2 medium=0 low=0"

    def test_other_dict(self):
        assert render_cell({"type": "public_sharing", "count": 1}) == "type=public_sharing, count=1"

    def test_list_joined(self):
        assert render_cell(["Shared publicly", "Shared outside"]) == "Shared publicly; Shared outside"

    def test_scalars(self):
        assert render_cell(None) == ""
        assert render_cell(True) == "yes"
        assert render_cell(False) == "no"
        assert render_cell(42) == "42"
        when = datetime(2026, 3, 1, 12, 30, 15, 999, tzinfo=timezone.utc)
        assert render_cell(when) == "2026-03-01T12:30:15+00:00"


class TestOutputFormatter:
    ROWS = [
        {"file_id": "a", "risk_factors": ["Public link"], "risky_summary": {"high": 1}},
        {"file_id": "b", "risk_factors": [], "risky_summary": None},
    ]

    def test_json_keeps_nested_values(self, capsys):
        OutputFormatter("json").print_table(self.ROWS, columns=["file_id"])

        assert json.loads(capsys.readouterr().out) == self.ROWS

    def test_csv_flattens_cells(self, capsys):
        OutputFormatter("csv").print_table(self.ROWS, columns=["file_id", "risk_factors", "risky_summary"])

        lines = capsys.readouterr().out.strip().splitlines()
        assert lines == [
            "file_id,risk_factors,risky_summary",
            "a,Public link,critical=0 high=1 medium=0 low=0",
            "b,,",
        ]

    def test_table_clips_wide_cells(self, capsys):
        OutputFormatter("table").print_table([{"name": "x" * 80}])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].strip() == "Name"
        assert lines[2] == "x" * 47 + "..."

    def test_table_prints_header_without_rows(self, capsys):
        OutputFormatter("table").print_table([], columns=["id", "status"])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].split() == ["Id", "Status"]
        assert len(lines) == 2

    def test_print_page_footer(self, capsys):
        OutputFormatter("json").print_page([{"id": 1}], columns=["id"], total=7, noun="scans")

        out = capsys.readouterr().out
        assert out.rstrip().endswith("1 of 7 scans")

    def test_quiet_suppresses_footer(self, capsys):
        OutputFormatter("table", quiet=True).print_page([], columns=["id"], total=0, noun="files")

        assert "of 0 files" not in capsys.readouterr().out

    def test_print_single_text(self, capsys):
        OutputFormatter("text").print_single({"status": "completed", "risky_summary": {"low": 2}})

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].split() == ["status", "completed"]
        assert lines[1].split() == ["risky_summary", "critical=0", "high=0", "medium=0", "low=2"]

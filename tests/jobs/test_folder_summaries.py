"""Tests for per-folder risk aggregation."""

from dataclasses import dataclass
from typing import Optional

from shareaudit.jobs.summaries import ROOT_FOLDER_ID, ROOT_FOLDER_NAME, compute_folder_summaries


@dataclass
class Row:
    parent_folder_id: Optional[str]
    parent_folder_name: Optional[str]
    risk_level: str
    risk_score: int
    is_internal_owner: bool = True


class TestComputeFolderSummaries:

    def test_groups_by_parent_with_root_fallback(self):
        rows = [
            Row("f1", "Finance", "critical", 85),
            Row(None, None, "low", 0),
            Row("f1", "Finance", "medium", 40, is_internal_owner=False),
        ]

        aggregates = compute_folder_summaries(rows)

        assert [a.folder_id for a in aggregates] == ["f1", ROOT_FOLDER_ID]
        finance, root = aggregates
        assert finance.name == "Finance"
        assert root.name == ROOT_FOLDER_NAME

        values = finance.to_values()
        assert values["file_count"] == 2
        assert values["total_risk_score"] == 125
        assert values["highest_risk_level"] == "critical"
        assert values["risky_summary"] == {"critical": 1, "high": 0, "medium": 1, "low": 0}
        assert values["internal_stats"]["file_count"] == 1
        assert values["internal_stats"]["highest_risk_level"] == "critical"
        assert values["external_stats"]["file_count"] == 1
        assert values["external_stats"]["highest_risk_level"] == "medium"

    def test_internal_plus_external_equals_overall(self):
        rows = [
            Row("f", "F", level, score, is_internal_owner=i % 2 == 0)
            for i, (level, score) in enumerate([("low", 5), ("high", 60), ("low", 0), ("medium", 45)])
        ]

        values = compute_folder_summaries(rows)[0].to_values()

        assert (
            values["internal_stats"]["file_count"] + values["external_stats"]["file_count"]
            == values["file_count"]
        )
        assert (
            values["internal_stats"]["total_risk_score"]
            + values["external_stats"]["total_risk_score"]
            == values["total_risk_score"]
        )

    def test_unresolved_name_filled_by_later_row(self):
        rows = [Row("f", "", "low", 0), Row("f", "Later", "low", 0)]

        assert compute_folder_summaries(rows)[0].name == "Later"

    def test_empty_side_defaults_to_low(self):
        values = compute_folder_summaries([Row("f", "F", "high", 60)])[0].to_values()

        assert values["external_stats"] == {
            "file_count": 0,
            "risky_summary": {"critical": 0, "high": 0, "medium": 0, "low": 0},
            "highest_risk_level": "low",
            "total_risk_score": 0,
        }

    def test_no_files(self):
        assert compute_folder_summaries([]) == []

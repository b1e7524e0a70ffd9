"""Structured output formatting for CLI commands."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from typing import Any

import click

from shareaudit.core.types import RiskLevel

MAX_COLUMN_WIDTH = 50

_LEVEL_ORDER = [level.value for level in sorted(RiskLevel, key=lambda lvl: -lvl.rank)]


def render_cell(value: Any) -> str:
    """Render one value for a table or CSV cell.

    Risky summaries print as ``critical=0 high=1 medium=2 low=3``; lists of
    issue descriptions or emails are joined with ``; ``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, dict):
        if set(value) <= set(_LEVEL_ORDER):
            return " ".join(f"{lvl}={value.get(lvl, 0)}" for lvl in _LEVEL_ORDER)
        return ", ".join(f"{k}={v}" for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return "; ".join(render_cell(v) for v in value)
    return str(value)


class OutputFormatter:
    """Format command output as table, JSON, or CSV.

    JSON keeps nested values (risky summaries, ACL lists) intact; table
    and CSV cells are flattened through :func:`render_cell`.
    """

    def __init__(self, output_format: str = "table", quiet: bool = False) -> None:
        self.format = output_format
        self.quiet = quiet

    def _echo_json(self, data: Any) -> None:
        click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))

    def print_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str] | None = None,
    ) -> None:
        """Print *rows* as an aligned table, a JSON array, or CSV.

        The header row is printed even when there are no rows.
        """
        if self.format == "json":
            self._echo_json(rows)
            return

        if columns is None:
            columns = list(rows[0].keys()) if rows else []
        if not columns:
            return

        cells = [{c: render_cell(row.get(c)) for c in columns} for row in rows]

        if self.format == "csv":
            buf = io.StringIO()
            writer = csv.DictWriter(buf, fieldnames=columns)
            writer.writeheader()
            writer.writerows(cells)
            click.echo(buf.getvalue().rstrip())
            return

        headers = {c: c.replace("_", " ").title() for c in columns}
        widths = {
            c: min(max([len(headers[c])] + [len(r[c]) for r in cells]), MAX_COLUMN_WIDTH)
            for c in columns
        }

        header = "  ".join(headers[c].ljust(widths[c]) for c in columns)
        click.echo(header)
        click.echo("-" * len(header))
        for row in cells:
            click.echo("  ".join(_clip(row[c], widths[c]).ljust(widths[c]) for c in columns))

    def print_page(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        total: int,
        noun: str,
    ) -> None:
        """Print one page of a listing followed by an ``N of M <noun>`` footer."""
        self.print_table(rows, columns=columns)
        self.print_message(f"\n{len(rows)} of {total} {noun}")

    def print_single(self, record: dict[str, Any]) -> None:
        """Print a single key-value record."""
        if self.format == "json":
            self._echo_json(record)
            return
        width = max((len(k) for k in record), default=0)
        for key, value in record.items():
            click.echo(f"  {key.ljust(width)}  {render_cell(value)}")

    def print_message(self, message: str) -> None:
        """Print an informational message (suppressed in quiet mode)."""
        if not self.quiet:
            click.echo(message)


def _clip(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."

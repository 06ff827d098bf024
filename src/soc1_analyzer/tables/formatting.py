"""Render detected tables as prompt content.

HTML keeps the row/column structure explicit for the model: row 0 is
rendered with ``<th>`` cells, the rest with ``<td>``.
"""

import logging

from soc1_analyzer.tables.schema import Table

logger = logging.getLogger(__name__)

TABLES_MARKER = "=== DETECTED TABLES ==="

# Tables smaller than this are unlikely to hold anything worth sending to the model
MIN_PROMPT_ROWS = 2
MIN_PROMPT_COLS = 2
MIN_PROMPT_RAW_CHARS = 50


def table_to_array(table: Table) -> list[list[str]]:
    """Return the table as a dense 2-D grid, using '' for empty slots."""
    grid = [["" for _ in range(table.columns)] for _ in range(table.rows)]
    for cell in table.cells:
        grid[cell.row][cell.col] = cell.text
    return grid


def table_to_html(table: Table) -> str:
    """Convert a table to an HTML ``<table>`` with a header row."""
    grid = table_to_array(table)
    lines = ["<table>"]
    for row_idx, row in enumerate(grid):
        tag = "th" if row_idx == 0 else "td"
        lines.append("  <tr>")
        for text in row:
            lines.append(f"    <{tag}>{text.strip()}</{tag}>")
        lines.append("  </tr>")
    lines.append("</table>")
    return "\n".join(lines)


def _is_prompt_worthy(table: Table) -> bool:
    return table.rows >= MIN_PROMPT_ROWS and table.columns >= MIN_PROMPT_COLS and len(table.raw_text) > MIN_PROMPT_RAW_CHARS


def tables_as_structured_data(tables: list[Table]) -> str:
    """Build the ``=== DETECTED TABLES ===`` section appended to the report text.

    Returns an empty string when no table is large enough to be useful.
    """
    relevant = [table for table in tables if _is_prompt_worthy(table)]
    if not relevant:
        return ""

    parts = [f"\n\n{TABLES_MARKER}\n"]
    for table in relevant:
        parts.append(f"\nTable {table.id} (Page {table.page_number}):\n")
        parts.append(table_to_html(table))
        parts.append("\n")

    logger.info("Serialised %d of %d detected tables for analysis", len(relevant), len(tables))
    return "".join(parts) + "\n"

"""Table detection from grouped glyph rows.

A row "looks tabular" when it has enough glyphs and the horizontal gaps
between glyph origins are consistent.  Runs of such rows become table
candidates, and candidates that meet the size thresholds become Tables.
"""

import logging

from soc1_analyzer.tables.grouping import Y_TOLERANCE, group_glyphs_into_rows
from soc1_analyzer.tables.schema import Glyph, Row, Table, TableCandidate, TableCell

logger = logging.getLogger(__name__)

# Fraction of gaps that must sit near the mean gap for a row to qualify
TABLE_DETECTION_THRESHOLD = 0.9

# Maximum relative deviation from the mean gap for a gap to count as consistent
GAP_DEVIATION = 0.5

MIN_TABLE_ROWS = 3
MIN_TABLE_COLS = 3


# ─── Row Qualification ───────────────────────────────────────────────────────


def is_table_row(row: Row, min_cols: int = MIN_TABLE_COLS, threshold: float = TABLE_DETECTION_THRESHOLD) -> bool:
    """Return True if the row has enough glyphs and evenly spaced x-origins.

    Ordinary prose has irregular word spacing, so it fails the consistency
    test even when it has many glyphs.
    """
    if len(row) < min_cols:
        return False

    gaps = [row[i].x - row[i - 1].x for i in range(1, len(row))]
    if not gaps:
        return False

    avg_gap = sum(gaps) / len(gaps)
    if avg_gap <= 0:
        return False

    consistent = sum(1 for gap in gaps if abs(gap - avg_gap) / avg_gap < GAP_DEVIATION)
    return consistent / len(gaps) >= threshold


# ─── Candidate Detection ─────────────────────────────────────────────────────


def detect_table_structures(rows: list[Row], min_rows: int = MIN_TABLE_ROWS, min_cols: int = MIN_TABLE_COLS) -> list[TableCandidate]:
    """Return non-overlapping runs of consecutive table rows.

    A run starts only where two adjacent rows both qualify, then extends
    greedily.  Runs shorter than ``min_rows`` are skipped, and scanning always
    resumes after the run's last row.
    """
    candidates: list[TableCandidate] = []
    i = 0
    while i < len(rows) - 1:
        if is_table_row(rows[i], min_cols) and is_table_row(rows[i + 1], min_cols):
            run = [rows[i]]
            j = i + 1
            while j < len(rows) and is_table_row(rows[j], min_cols):
                run.append(rows[j])
                j += 1

            if len(run) >= min_rows:
                candidates.append(TableCandidate(rows=run, start_index=i, end_index=j - 1))

            # The row at j (if any) failed the test, so it cannot start a run either
            i = j
            continue
        i += 1

    return candidates


# ─── Table Materialisation ───────────────────────────────────────────────────


def create_table_from_candidate(candidate: TableCandidate, page_number: int, index: int) -> Table | None:
    """Build a Table from a candidate run of rows.

    Cells are placed by their ordinal position within each row, NOT by
    x-alignment across rows: a row with a missing leading cell shifts its
    remaining cells one column to the left.
    """
    rows = candidate.rows
    if not rows:
        return None

    all_glyphs = [glyph for row in rows for glyph in row]
    min_x = min(glyph.x for glyph in all_glyphs)
    max_x = max(glyph.x + glyph.width for glyph in all_glyphs)
    min_y = min(glyph.y for glyph in all_glyphs)
    max_y = max(glyph.y for glyph in all_glyphs)

    cells: list[TableCell] = []
    for row_idx, row in enumerate(rows):
        for col_idx, glyph in enumerate(row):
            cells.append(
                TableCell(
                    text=glyph.text,
                    x=glyph.x,
                    y=glyph.y,
                    width=glyph.width,
                    height=glyph.height,
                    row=row_idx,
                    col=col_idx,
                )
            )

    raw_text = "\n".join("\t".join(glyph.text for glyph in row) for row in rows)

    return Table(
        id=f"table_{page_number}_{index}",
        page_number=page_number,
        x=min_x,
        y=min_y,
        width=max_x - min_x,
        height=max_y - min_y,
        rows=len(rows),
        columns=max(len(row) for row in rows),
        cells=tuple(cells),
        raw_text=raw_text,
    )


def extract_tables(
    glyphs: list[Glyph],
    page_number: int = 1,
    y_tolerance: float = Y_TOLERANCE,
    min_rows: int = MIN_TABLE_ROWS,
    min_cols: int = MIN_TABLE_COLS,
) -> list[Table]:
    """Detect and materialise every table on one page.

    Blank glyphs are ignored.  Candidates that end up smaller than the
    row/column thresholds are dropped silently.
    """
    visible = [glyph for glyph in glyphs if glyph.text.strip()]
    if not visible:
        return []

    rows = group_glyphs_into_rows(visible, y_tolerance)
    candidates = detect_table_structures(rows, min_rows, min_cols)

    tables: list[Table] = []
    for index, candidate in enumerate(candidates):
        table = create_table_from_candidate(candidate, page_number, index)
        if table is not None and table.rows >= min_rows and table.columns >= min_cols:
            tables.append(table)

    if tables:
        logger.debug("Page %d: %d table(s) from %d candidate run(s)", page_number, len(tables), len(candidates))
    return tables

"""Cluster a page's glyphs into visual rows.

A glyph joins the first open row whose *first* glyph lies within
``y_tolerance`` of it; otherwise it opens a new row.  Rows come back
top-to-bottom (descending y) and each row left-to-right.
"""

import logging

from soc1_analyzer.tables.schema import Glyph, Row

logger = logging.getLogger(__name__)

# Maximum baseline difference (in page units) for two glyphs to share a row
Y_TOLERANCE = 3.0


def group_glyphs_into_rows(glyphs: list[Glyph], y_tolerance: float = Y_TOLERANCE) -> list[Row]:
    """Group glyphs by similar y-coordinate and return rows ordered for reading."""
    rows: list[Row] = []

    for glyph in glyphs:
        # Attach to the first row whose anchor glyph is close enough vertically
        for row in rows:
            if abs(glyph.y - row[0].y) <= y_tolerance:
                row.append(glyph)
                break
        else:
            rows.append([glyph])

    # Top of page first (bottom-left origin), then left to right within each row
    rows.sort(key=lambda row: row[0].y, reverse=True)
    for row in rows:
        row.sort(key=lambda glyph: glyph.x)

    logger.debug("Grouped %d glyphs into %d rows", len(glyphs), len(rows))
    return rows

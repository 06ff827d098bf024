"""Pydantic models for positioned glyphs and the tables reconstructed from them.

Coordinates follow the PDF convention: origin at the bottom-left of the page,
y growing upwards.
"""

from pydantic import BaseModel, ConfigDict, model_validator


class Glyph(BaseModel):
    """A positioned run of text on a page, as produced by the document reader."""

    model_config = ConfigDict(frozen=True)

    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    page: int = 1


# A visual row: glyphs sharing a baseline, ordered left-to-right
Row = list[Glyph]


class TableCandidate(BaseModel):
    """A run of consecutive table-like rows, before size thresholds are applied."""

    rows: list[Row]
    start_index: int
    end_index: int


class TableCell(BaseModel):
    """One cell of a reconstructed table, addressed by (row, col)."""

    model_config = ConfigDict(frozen=True)

    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    row: int
    col: int


class Table(BaseModel):
    """A table reconstructed from glyph geometry on a single page.

    ``x``/``y`` are the bottom-left corner of the bounding box.  The
    model_validator guarantees every cell address is unique and lies inside
    ``[0, rows) x [0, columns)``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    page_number: int
    x: float
    y: float
    width: float
    height: float
    rows: int
    columns: int
    cells: tuple[TableCell, ...]
    raw_text: str

    @model_validator(mode="after")
    def validate_cell_addresses(self) -> "Table":
        """Reject duplicate or out-of-range cell addresses."""
        seen: set[tuple[int, int]] = set()
        for cell in self.cells:
            address = (cell.row, cell.col)
            if not (0 <= cell.row < self.rows and 0 <= cell.col < self.columns):
                raise ValueError(f"Cell {address} lies outside a {self.rows}x{self.columns} table")
            if address in seen:
                raise ValueError(f"Duplicate cell address {address}")
            seen.add(address)
        return self

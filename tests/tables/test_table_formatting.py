# pylint: disable=missing-class-docstring,missing-function-docstring

from soc1_analyzer.tables.formatting import TABLES_MARKER, table_to_array, table_to_html, tables_as_structured_data
from soc1_analyzer.tables.schema import Table, TableCell


def make_table(grid: list[list[str]], table_id: str = "table_1_0", page_number: int = 1) -> Table:
    """Build a Table from a grid of strings; empty strings become empty slots."""
    cells = []
    for row_idx, row in enumerate(grid):
        for col_idx, text in enumerate(row):
            if text:
                cells.append(TableCell(text=text, x=50 + 100 * col_idx, y=700 - 20 * row_idx, row=row_idx, col=col_idx))
    raw_text = "\n".join("\t".join(text for text in row if text) for row in grid)
    return Table(
        id=table_id,
        page_number=page_number,
        x=50,
        y=700 - 20 * (len(grid) - 1),
        width=100 * max(len(row) for row in grid),
        height=20 * (len(grid) - 1),
        rows=len(grid),
        columns=max(len(row) for row in grid),
        cells=tuple(cells),
        raw_text=raw_text,
    )


CONTROL_GRID = [
    ["Control ID", "Description", "Result"],
    ["CC-1.1", "Access reviews performed quarterly", "Exception noted"],
    ["CC-2.4", "Change tickets approved before deploy", "No exceptions"],
]


# ===========================================================================
# table_to_array tests
# ===========================================================================


class TestTableToArray:

    def test_dense_grid(self):
        assert table_to_array(make_table(CONTROL_GRID)) == CONTROL_GRID

    def test_missing_cells_are_empty_strings(self):
        grid = [["a", "b", "c"], ["d", "", "f"], ["g", "h", ""]]
        assert table_to_array(make_table(grid)) == grid


# ===========================================================================
# table_to_html tests
# ===========================================================================


class TestTableToHtml:

    def test_header_row_uses_th(self):
        html = table_to_html(make_table(CONTROL_GRID))
        lines = html.split("\n")
        assert lines[0] == "<table>"
        assert lines[1] == "  <tr>"
        assert lines[2] == "    <th>Control ID</th>"
        assert lines[-1] == "</table>"

    def test_body_rows_use_td(self):
        html = table_to_html(make_table(CONTROL_GRID))
        assert "    <td>CC-1.1</td>" in html
        assert "<th>CC-1.1</th>" not in html
        assert html.count("<tr>") == 3
        assert html.count("<th>") == 3
        assert html.count("<td>") == 6

    def test_cell_text_is_stripped(self):
        html = table_to_html(make_table([["  padded  ", "b", "c"], ["d", "e", "f"]]))
        assert "<th>padded</th>" in html

    def test_empty_slots_render_empty_cells(self):
        html = table_to_html(make_table([["a", "b", "c"], ["d", "", "f"]]))
        assert "    <td></td>" in html


# ===========================================================================
# tables_as_structured_data tests
# ===========================================================================


class TestTablesAsStructuredData:

    def test_no_tables(self):
        assert tables_as_structured_data([]) == ""

    def test_small_tables_skipped(self):
        tiny = make_table([["a", "b"], ["c", "d"]])
        assert len(tiny.raw_text) <= 50
        assert tables_as_structured_data([tiny]) == ""

    def test_single_column_table_skipped(self):
        narrow = make_table([["A long single column header value"], ["Another long single column value here"], ["x"]])
        assert len(narrow.raw_text) > 50
        assert tables_as_structured_data([narrow]) == ""

    def test_section_layout(self):
        table = make_table(CONTROL_GRID, table_id="table_4_0", page_number=4)
        section = tables_as_structured_data([table])
        expected = f"\n\n{TABLES_MARKER}\n" + "\nTable table_4_0 (Page 4):\n" + table_to_html(table) + "\n" + "\n"
        assert section == expected

    def test_only_relevant_tables_included(self):
        big = make_table(CONTROL_GRID, table_id="table_2_0", page_number=2)
        tiny = make_table([["a", "b"], ["c", "d"]], table_id="table_2_1", page_number=2)
        section = tables_as_structured_data([big, tiny])
        assert "Table table_2_0 (Page 2):" in section
        assert "table_2_1" not in section
        assert section.count(TABLES_MARKER) == 1

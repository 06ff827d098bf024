"""Geometric table detection over positioned text glyphs.

Submodules:
  schema      -- Glyph, TableCandidate, TableCell and Table Pydantic models
  grouping    -- cluster glyphs into visual rows
  detection   -- table-row heuristic, candidate runs, Table materialisation
  formatting  -- grid and HTML rendering for prompt content
"""

"""Table reconstruction and LLM-backed SOC1 compliance extraction.

Subpackages:
  tables    -- glyph row grouping, table detection, table markup
  document  -- PDF reading (glyphs, page text, detected tables)
  analysis  -- model transport, response normalisation, parsing, chunking
"""

"""PDF reading: per-page glyphs, plain text and detected tables."""

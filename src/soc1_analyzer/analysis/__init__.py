"""LLM analysis of extracted report text.

Submodules:
  schema     -- StructuredRecord, findings and the flattened AnalysisReport
  errors     -- transport / merge error taxonomy
  normalize  -- response envelope -> plain text
  parsing    -- cascading JSON recovery with natural-language fallback
  chunking   -- size-budget splitting and partial-record merging
  prompts    -- system prompts
  client     -- OpenAI-compatible transport
  analyzer   -- single / multi-chunk orchestration
"""

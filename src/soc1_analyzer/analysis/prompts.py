"""Prompt templates used for SOC1 report analysis."""

_RESPONSE_SCHEMA = """\
{
  "executiveSummary": {
    "reportPeriod": "extract the report period from the document",
    "serviceOrganization": "extract the service organization name",
    "auditor": "extract the auditor firm name",
    "opinion": "extract the opinion type (unqualified, qualified, adverse, disclaimer)"
  },
  "controlFailures": [
    {
      "id": "CF-1",
      "description": "describe the control failure",
      "type": "preventive or detective or corrective",
      "effectiveness": "ineffective or not_tested",
      "exceptions": ["list any exceptions found"],
      "pageNumbers": [1],
      "sourceTable": "table_id_if_from_structured_data"
    }
  ],
  "exclusions": [
    {
      "id": "EX-1",
      "description": "describe what is excluded",
      "reason": "reason for exclusion",
      "pageNumbers": [1],
      "sourceTable": "table_id_if_from_structured_data"
    }
  ],
  "carveOuts": [
    {
      "id": "CO-1",
      "description": "describe the sub-service provider carved out",
      "provider": "provider name",
      "reason": "reason for carve-out",
      "pageNumbers": [1],
      "sourceTable": "table_id_if_from_structured_data"
    }
  ],
  "detectedTables": [
    {
      "id": "table_id",
      "page": 1,
      "type": "control_matrix or exception_list or other",
      "summary": "brief description of table contents",
      "relevantData": ["key data points from table"]
    }
  ]
}"""

_TABLE_RULES = """\
1. Pay special attention to HTML tables in "=== DETECTED TABLES ===" sections.
2. HTML tables preserve the original structure with <table>, <tr>, <th>, and <td> tags; \
the first row of each table holds the column headers.
3. For table data, include the table ID in the "sourceTable" field.
4. Extract control failures, exclusions, and carve-outs from both the text and the HTML tables.
5. Include detected tables in the "detectedTables" array with their type and summary.
6. Use page numbers from the "--- Page N ---" markers or the table metadata."""

# Local models get the full schema plus strict formatting rules
LOCAL_SYSTEM_PROMPT = f"""You are a SOC1 compliance analyst. Analyze the SOC1 report and extract the \
following information. The document may contain HTML tables in "=== DETECTED TABLES ===" sections. \
These tables preserve the original structure and relationships. Use both the regular text and the \
HTML table data. Return your response in this EXACT JSON format with no additional text:

{_RESPONSE_SCHEMA}

IMPORTANT:
{_TABLE_RULES}
7. Start your response with {{ and end with }}.
8. Use proper JSON syntax with quotes around all keys and string values.
9. If no control failures, exclusions, or carve-outs are found, use empty arrays [].
10. Extract actual information from the document; never use placeholder text.
11. Return ONLY the JSON, no other text."""

REMOTE_SYSTEM_PROMPT = f"""Extract SOC1 compliance issues from the document. The document may contain \
HTML tables in "=== DETECTED TABLES ===" sections. These tables preserve the original structure and \
relationships. Use both the regular text and the HTML table data. Return JSON only.

{_RESPONSE_SCHEMA}

Instructions:
{_TABLE_RULES}
7. Only report actual control failures, exclusions, and carve-outs found in the document."""

USER_MESSAGE_TEMPLATE = "Please analyze this SOC1 report:\n\n{text}"


def system_prompt(use_local_model: bool) -> str:
    """Return the system prompt suited to the endpoint type."""
    return LOCAL_SYSTEM_PROMPT if use_local_model else REMOTE_SYSTEM_PROMPT

"""Recover a StructuredRecord from free-form model output.

Model answers arrive as clean JSON, JSON wrapped in prose or code fences,
JSON with small syntax slips, or plain sentences.  ``parse_structured_result``
runs an ordered list of fallible strategies and stops at the first one that
yields a JSON object with at least one record key.  When none does, it
falls back to regex extraction over the prose, and finally to a
low-confidence stub record, so it never raises.
"""

import json
import logging
import re
from collections.abc import Callable

from pydantic import ValidationError

from soc1_analyzer.analysis.schema import (
    EXTRACTED_CONFIDENCE,
    LOW_CONFIDENCE,
    NOT_SPECIFIED,
    UNKNOWN,
    CarveOut,
    ControlFailure,
    ExecutiveSummary,
    Exclusion,
    StructuredRecord,
    has_record_keys,
)

logger = logging.getLogger(__name__)

# A strategy takes the raw text and returns a JSON object, or None / raises on failure
Strategy = Callable[[str], dict | None]

PREVIEW_CHARS = 1000
STUB_TEXT = "Unable to extract - see raw content"

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")

# Aggressive repairs for smaller local models
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_TRAILING_COMMA_OBJECT_RE = re.compile(r",\s*}")
_TRAILING_COMMA_ARRAY_RE = re.compile(r",\s*]")
_BARE_KEY_RE = re.compile(r"([{,]\s*)(\w+):")
_BARE_VALUE_RE = re.compile(r':\s*([^",{\[\s][^,}\]]*?)([,}\]])')


# ─── Structural Strategies ───────────────────────────────────────────────────


def _loads_object(candidate: str) -> dict | None:
    """Strict JSON parse that only accepts a top-level object carrying record keys."""
    result = json.loads(candidate)
    if not isinstance(result, dict):
        return None
    if not has_record_keys(result):
        logger.debug("Parsed JSON object has no record keys: %s", sorted(result)[:10])
        return None
    return result


def _brace_span(text: str) -> str | None:
    """Return the slice from the first '{' to the last '}', or None if there is none."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    return text[start : end + 1]


def _trim_to_braces(text: str) -> str:
    """Drop everything before the first '{' and after the last '}'."""
    span = _brace_span(text)
    return span.strip() if span is not None else ""


def parse_brace_span(text: str) -> dict | None:
    """Parse the greedy span from the first '{' to the last '}'."""
    span = _brace_span(text)
    return _loads_object(span) if span is not None else None


def parse_whole_text(text: str) -> dict | None:
    return _loads_object(text)


def parse_fenced_block(text: str) -> dict | None:
    """Parse the interior of a ```json fenced code block."""
    match = _FENCED_BLOCK_RE.search(text)
    return _loads_object(match.group(1)) if match else None


def parse_trimmed(text: str) -> dict | None:
    cleaned = _trim_to_braces(text)
    if cleaned.startswith("{") and cleaned.endswith("}"):
        return _loads_object(cleaned)
    return None


def repair_json(text: str) -> str:
    """Apply the aggressive clean-ups: blank lines, trailing commas, bare keys and values."""
    cleaned = _trim_to_braces(text)
    cleaned = _BLANK_LINES_RE.sub("\n", cleaned)
    cleaned = _TRAILING_COMMA_OBJECT_RE.sub("}", cleaned)
    cleaned = _TRAILING_COMMA_ARRAY_RE.sub("]", cleaned)
    cleaned = _BARE_KEY_RE.sub(r'\1"\2":', cleaned.strip())
    return _BARE_VALUE_RE.sub(r': "\1"\2', cleaned)


def parse_repaired(text: str) -> dict | None:
    cleaned = repair_json(text)
    if cleaned.startswith("{") and cleaned.endswith("}"):
        return _loads_object(cleaned)
    return None


STRATEGIES: list[tuple[str, Strategy]] = [
    ("brace span", parse_brace_span),
    ("whole text", parse_whole_text),
    ("fenced block", parse_fenced_block),
    ("trimmed", parse_trimmed),
]
AGGRESSIVE_STRATEGIES: list[tuple[str, Strategy]] = [("aggressive repair", parse_repaired)]


def run_strategies(text: str, strategies: list[tuple[str, Strategy]]) -> dict | None:
    """Try each strategy in order and return the first JSON object produced."""
    for name, strategy in strategies:
        try:
            result = strategy(text)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.debug("Strategy '%s' failed: %s", name, exc)
            continue
        if result is not None:
            logger.debug("Strategy '%s' produced a JSON object", name)
            return result
    return None


# ─── Natural-Language Fallback ───────────────────────────────────────────────

# Ordered patterns per summary field; the first match with a usable capture wins
_SUMMARY_PATTERNS: dict[str, list[re.Pattern]] = {
    "service_organization": [
        re.compile(r"service organization[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"organization[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"company[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"entity[:\s]*([^.\n]+)", re.IGNORECASE),
    ],
    "auditor": [
        re.compile(r"auditor[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"audit firm[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"cpa firm[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"examiner[:\s]*([^.\n]+)", re.IGNORECASE),
    ],
    "report_period": [
        re.compile(r"report period[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"period[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"as of[:\s]*([^.\n]+)", re.IGNORECASE),
        re.compile(r"through[:\s]*([^.\n]+)", re.IGNORECASE),
    ],
}

_OPINION_LABEL_RE = re.compile(r"opinion[:\s]*([^.\n]+)", re.IGNORECASE)
_OPINION_KEYWORD_RES = [re.compile(rf"\b{word}\b", re.IGNORECASE) for word in ("unqualified", "qualified", "adverse", "disclaimer")]

_CONTROL_FAILURE_RE = re.compile(r"control failure[^.\n]*", re.IGNORECASE)
_EXCLUSION_RE = re.compile(r"exclusion[^.\n]*", re.IGNORECASE)
_CARVE_OUT_RE = re.compile(r"carve.out[^.\n]*", re.IGNORECASE)

_EXTRACTED_REASON = "Extracted from natural language response"


def _first_capture(patterns: list[re.Pattern], content: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(content)
        if match and len(match.group(1).strip()) > 2:
            return match.group(1).strip()
    return None


def _extract_opinion(content: str) -> str | None:
    match = _OPINION_LABEL_RE.search(content)
    if match and match.group(1).strip():
        return match.group(1).strip()
    for keyword_re in _OPINION_KEYWORD_RES:
        match = keyword_re.search(content)
        if match:
            return match.group(0)
    return None


def extract_from_natural_language(content: str) -> StructuredRecord | None:
    """Pull summary fields and keyword sentences out of a prose answer.

    Returns None when nothing moved off its default.
    """
    summary_fields = {field: _first_capture(patterns, content) for field, patterns in _SUMMARY_PATTERNS.items()}
    summary_fields["opinion"] = _extract_opinion(content)
    summary = ExecutiveSummary(**{field: value for field, value in summary_fields.items() if value})

    control_failures = [
        ControlFailure(
            id=f"extracted-control-failure-{index}",
            description=match.group(0).strip(),
            type=UNKNOWN,
            effectiveness="not_tested",
            exceptions=["Extracted from natural language"],
            confidence_score=EXTRACTED_CONFIDENCE,
        )
        for index, match in enumerate(_CONTROL_FAILURE_RE.finditer(content), start=1)
    ]
    exclusions = [
        Exclusion(
            id=f"extracted-exclusion-{index}",
            description=match.group(0).strip(),
            reason=_EXTRACTED_REASON,
            confidence_score=EXTRACTED_CONFIDENCE,
        )
        for index, match in enumerate(_EXCLUSION_RE.finditer(content), start=1)
    ]
    carve_outs = [
        CarveOut(
            id=f"extracted-carveout-{index}",
            description=match.group(0).strip(),
            provider=UNKNOWN,
            reason=_EXTRACTED_REASON,
            confidence_score=EXTRACTED_CONFIDENCE,
        )
        for index, match in enumerate(_CARVE_OUT_RE.finditer(content), start=1)
    ]

    record = StructuredRecord(executive_summary=summary, control_failures=control_failures, exclusions=exclusions, carve_outs=carve_outs)
    if record.is_empty():
        return None
    return record


# ─── Terminal Fallback ───────────────────────────────────────────────────────


def create_fallback_record(content: str) -> StructuredRecord:
    """Build the stub record returned when nothing could be extracted."""
    preview = content[:PREVIEW_CHARS] + "..." if len(content) > PREVIEW_CHARS else content
    return StructuredRecord(
        executive_summary=ExecutiveSummary(
            report_period=STUB_TEXT,
            service_organization=STUB_TEXT,
            auditor=STUB_TEXT,
            opinion=STUB_TEXT,
        ),
        control_failures=[
            ControlFailure(
                id="fallback-control-failure-1",
                description=f"Raw AI response could not be parsed as JSON. Response length: {len(content)} characters.",
                type=UNKNOWN,
                effectiveness="not_tested",
                exceptions=["JSON parsing failed"],
                confidence_score=LOW_CONFIDENCE,
            )
        ],
        exclusions=[
            Exclusion(
                id="fallback-exclusion-1",
                description=f"AI response parsing failed. Raw content preview: {preview or NOT_SPECIFIED}",
                reason="The model may not be following the expected JSON format. Check the logs for the full response.",
                confidence_score=LOW_CONFIDENCE,
            )
        ],
        carve_outs=[
            CarveOut(
                id="fallback-carveout-1",
                description="Unable to extract carve-outs due to JSON parsing error",
                provider=UNKNOWN,
                reason="Model response format issue. Check the logs for the actual response.",
                confidence_score=LOW_CONFIDENCE,
            )
        ],
    )


# ─── Entry Point ─────────────────────────────────────────────────────────────


def parse_structured_result(content: str, aggressive: bool = False) -> StructuredRecord:
    """Return a StructuredRecord for *content*; never raises.

    ``aggressive`` enables the extra JSON repairs meant for less reliable
    local models.
    """
    content = content if isinstance(content, str) else ""
    logger.debug("Response length: %d", len(content))
    logger.debug("First 200 chars: %s", content[:200])
    logger.debug("Last 200 chars: %s", content[-200:])

    strategies = STRATEGIES + AGGRESSIVE_STRATEGIES if aggressive else STRATEGIES
    parsed = run_strategies(content, strategies)
    if parsed is not None:
        try:
            return StructuredRecord.from_raw(parsed)
        except ValidationError as exc:
            logger.warning("Parsed JSON did not fit the record schema: %s", exc)

    logger.warning("All JSON parsing strategies failed (%d chars); trying natural-language extraction", len(content))
    try:
        extracted = extract_from_natural_language(content)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Natural-language extraction failed: %s", exc)
        extracted = None
    if extracted is not None:
        return extracted

    logger.warning("No structure recovered from model response; returning fallback record")
    return create_fallback_record(content)

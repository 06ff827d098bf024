"""Pydantic models for the structured analysis output.

``StructuredRecord`` mirrors the JSON the model is asked to produce (camelCase
keys via aliases, snake_case attributes).  Model output is untrusted, so every
record field coerces loosely-typed input and falls back to an explicit
"Not specified" / "Unknown" default instead of being omitted.

``AnalysisReport`` is the flattened, display-oriented view of a record: one
``Finding`` row per control failure, exclusion, carve-out and summary.
"""

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"
UNKNOWN = "Unknown"

# Confidence attached to entries synthesised without structured model output
EXTRACTED_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.1

CATEGORIES = ["Control Failures", "Exclusions", "Carve-Outs", "Executive Summary"]

_INT_RE = re.compile(r"\d+")


# ─── Loose Coercion Helpers ──────────────────────────────────────────────────


def _coerce_page_numbers(value: Any) -> list[int]:
    """Accept an int, a numeric string, or a list of either; keep positive page numbers only."""
    items = value if isinstance(value, (list, tuple)) else [value]
    pages: list[int] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, (int, float)):
            candidates = [int(item)]
        else:
            candidates = [int(match) for match in _INT_RE.findall(str(item))]
        pages.extend(page for page in candidates if page > 0)
    return pages


def _coerce_text_list(value: Any) -> list[str]:
    items = value if isinstance(value, (list, tuple)) else [value]
    return [str(item) for item in items if item is not None and str(item).strip()]


def _coerce_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _INT_RE.search(str(value))
    return int(match.group()) if match else None


class _RecordModel(BaseModel):
    """Base for record models: camelCase aliases plus lenient field coercion."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_loose_value(cls, value: Any, info: ValidationInfo) -> Any:
        """Replace missing or mistyped values with the field's default."""
        field = cls.model_fields[info.field_name]
        default = field.get_default(call_default_factory=True)
        if value is None or (isinstance(value, str) and not value.strip()):
            return default

        annotation = field.annotation
        if info.field_name == "confidence_score":
            return _coerce_float(value)
        if annotation is str:
            return value if isinstance(value, str) else str(value)
        if annotation == list[int]:
            return _coerce_page_numbers(value) or default
        if annotation == list[str]:
            return _coerce_text_list(value)
        if annotation is int:
            coerced = _coerce_int(value)
            return default if coerced is None else coerced
        return value


# ─── Structured Record ───────────────────────────────────────────────────────


class ExecutiveSummary(_RecordModel):
    """Report-level facts from the auditor's opinion section."""

    report_period: str = NOT_SPECIFIED
    service_organization: str = NOT_SPECIFIED
    auditor: str = NOT_SPECIFIED
    opinion: str = NOT_SPECIFIED

    def is_default(self) -> bool:
        """Return True if no field carries extracted information."""
        return all(value == NOT_SPECIFIED for value in self.model_dump().values())


class ControlFailure(_RecordModel):
    """A control that was ineffective or not tested."""

    id: str = NOT_SPECIFIED
    description: str = NOT_SPECIFIED
    type: str = UNKNOWN
    effectiveness: str = NOT_SPECIFIED
    exceptions: list[str] = Field(default_factory=list)
    page_numbers: list[int] = Field(default_factory=lambda: [1])
    source_table: str = NOT_SPECIFIED
    confidence_score: float | None = None


class Exclusion(_RecordModel):
    """Something the report explicitly excludes from scope."""

    id: str = NOT_SPECIFIED
    description: str = NOT_SPECIFIED
    reason: str = NOT_SPECIFIED
    page_numbers: list[int] = Field(default_factory=lambda: [1])
    source_table: str = NOT_SPECIFIED
    confidence_score: float | None = None


class CarveOut(_RecordModel):
    """A sub-service organisation carved out of the examination."""

    id: str = NOT_SPECIFIED
    description: str = NOT_SPECIFIED
    provider: str = UNKNOWN
    reason: str = NOT_SPECIFIED
    page_numbers: list[int] = Field(default_factory=lambda: [1])
    source_table: str = NOT_SPECIFIED
    confidence_score: float | None = None


class DetectedTableSummary(_RecordModel):
    """The model's description of one table from the DETECTED TABLES section."""

    id: str = NOT_SPECIFIED
    page: int = 1
    type: str = "other"
    summary: str = NOT_SPECIFIED
    relevant_data: list[str] = Field(default_factory=list)


# Record attribute -> item model, in the order categories are reported
LIST_FIELDS: dict[str, type[_RecordModel]] = {
    "control_failures": ControlFailure,
    "exclusions": Exclusion,
    "carve_outs": CarveOut,
    "detected_tables": DetectedTableSummary,
}

# Top-level keys that mark a JSON object as an analysis record
RECORD_KEYS = frozenset(key for name in ("executive_summary", *LIST_FIELDS) for key in (name, to_camel(name)))


class StructuredRecord(_RecordModel):
    """Summary plus categorised findings extracted from (part of) a report.

    ``executive_summary`` is None only on a per-chunk record whose source said
    nothing about it, so that chunk merging can tell "absent" from "present
    but empty".  Records handed to callers go through ``with_default_summary``.
    """

    executive_summary: ExecutiveSummary | None = None
    control_failures: list[ControlFailure] = Field(default_factory=list)
    exclusions: list[Exclusion] = Field(default_factory=list)
    carve_outs: list[CarveOut] = Field(default_factory=list)
    detected_tables: list[DetectedTableSummary] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, data: dict) -> "StructuredRecord":
        """Build a record from a parsed JSON object, dropping items that cannot be salvaged."""
        summary_raw = data.get("executiveSummary", data.get("executive_summary"))
        summary = ExecutiveSummary.model_validate(summary_raw) if isinstance(summary_raw, dict) else None

        lists: dict[str, list] = {}
        for name, item_model in LIST_FIELDS.items():
            raw_items = data.get(to_camel(name), data.get(name)) or []
            if not isinstance(raw_items, list):
                raw_items = [raw_items]

            items = []
            for raw_item in raw_items:
                if isinstance(raw_item, str):
                    raw_item = {"description": raw_item}
                if not isinstance(raw_item, dict):
                    logger.warning("Dropping non-object %s entry: %r", name, raw_item)
                    continue
                try:
                    items.append(item_model.model_validate(raw_item))
                except ValidationError as exc:
                    logger.warning("Dropping malformed %s entry: %s", name, exc)
            lists[name] = items

        return cls(executive_summary=summary, **lists)

    def is_empty(self) -> bool:
        """Return True if the record carries no summary and no findings."""
        no_summary = self.executive_summary is None or self.executive_summary.is_default()
        return no_summary and not any(getattr(self, name) for name in LIST_FIELDS)

    def with_default_summary(self) -> "StructuredRecord":
        """Return this record with an all-default summary in place of a missing one."""
        if self.executive_summary is not None:
            return self
        return self.model_copy(update={"executive_summary": ExecutiveSummary()})


def has_record_keys(data: dict) -> bool:
    """Return True if a parsed JSON object carries at least one record key (camelCase or snake_case)."""
    return any(key in data for key in RECORD_KEYS)


# ─── Flattened Report ────────────────────────────────────────────────────────


class Finding(BaseModel):
    """One display row of an analysis report."""

    id: str
    attribute_name: str
    description: str
    value: str | dict[str, str]
    page_numbers: list[int]
    confidence: float
    category: str
    data_type: str = "string"
    critical: bool = False


class AnalysisReport(BaseModel):
    """Flattened findings for display, plus the record they were built from."""

    findings: list[Finding]
    categories: list[str] = Field(default_factory=lambda: list(CATEGORIES))
    record: StructuredRecord


def build_report(record: StructuredRecord) -> AnalysisReport:
    """Flatten a StructuredRecord into display findings; the summary row is always present."""
    record = record.with_default_summary()
    findings: list[Finding] = []

    for index, control in enumerate(record.control_failures):
        findings.append(
            Finding(
                id=f"control-failure-{index}",
                attribute_name=control.id if control.id != NOT_SPECIFIED else f"Control Failure {index + 1}",
                description=control.description,
                value=control.effectiveness,
                page_numbers=control.page_numbers,
                confidence=control.confidence_score if control.confidence_score is not None else 0.8,
                category="Control Failures",
                critical=control.effectiveness.lower() == "ineffective",
            )
        )

    for index, exclusion in enumerate(record.exclusions):
        findings.append(
            Finding(
                id=f"exclusion-{index}",
                attribute_name=exclusion.id if exclusion.id != NOT_SPECIFIED else f"Exclusion {index + 1}",
                description=exclusion.description,
                value=exclusion.reason,
                page_numbers=exclusion.page_numbers,
                confidence=exclusion.confidence_score if exclusion.confidence_score is not None else 0.9,
                category="Exclusions",
            )
        )

    for index, carve_out in enumerate(record.carve_outs):
        findings.append(
            Finding(
                id=f"carveout-{index}",
                attribute_name=carve_out.id if carve_out.id != NOT_SPECIFIED else f"Carve-Out {index + 1}",
                description=carve_out.description,
                value=f"{carve_out.provider} - {carve_out.reason}",
                page_numbers=carve_out.page_numbers,
                confidence=carve_out.confidence_score if carve_out.confidence_score is not None else 0.9,
                category="Carve-Outs",
            )
        )

    findings.append(
        Finding(
            id="executive-summary",
            attribute_name="Executive Summary",
            description="SOC1 Report Executive Summary",
            value=record.executive_summary.model_dump(by_alias=True),
            page_numbers=[1],
            confidence=1.0,
            category="Executive Summary",
            data_type="object",
        )
    )

    return AnalysisReport(findings=findings, record=record)

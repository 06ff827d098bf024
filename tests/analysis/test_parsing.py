"""Unit tests for recovering structured records from model output.

Covers each JSON recovery strategy, the aggressive repairs used for local
models, the natural-language fallback, the terminal stub record, and the
lenient coercion applied by StructuredRecord.from_raw.
"""

# pylint: disable=missing-class-docstring,missing-function-docstring

import json

import pytest

from soc1_analyzer.analysis.normalize import normalize_content
from soc1_analyzer.analysis.parsing import (
    AGGRESSIVE_STRATEGIES,
    STRATEGIES,
    STUB_TEXT,
    create_fallback_record,
    extract_from_natural_language,
    parse_brace_span,
    parse_fenced_block,
    parse_structured_result,
    repair_json,
    run_strategies,
)
from soc1_analyzer.analysis.schema import EXTRACTED_CONFIDENCE, LOW_CONFIDENCE, NOT_SPECIFIED, UNKNOWN, ExecutiveSummary, StructuredRecord

SAMPLE_RESPONSE = {
    "executiveSummary": {
        "reportPeriod": "January 1, 2024 to December 31, 2024",
        "serviceOrganization": "Acme Payments Inc",
        "auditor": "Deloitte & Touche LLP",
        "opinion": "qualified",
    },
    "controlFailures": [
        {
            "id": "CF-1",
            "description": "Quarterly user access reviews were not performed",
            "type": "detective",
            "effectiveness": "ineffective",
            "exceptions": ["Q2 review missing", "Q3 review missing"],
            "pageNumbers": [14, 15],
            "sourceTable": "table_14_0",
            "confidenceScore": 0.95,
        }
    ],
    "exclusions": [
        {
            "id": "EX-1",
            "description": "Payroll processing",
            "reason": "Out of scope",
            "pageNumbers": [3],
            "sourceTable": "text",
            "confidenceScore": 0.9,
        }
    ],
    "carveOuts": [
        {
            "id": "CO-1",
            "description": "Data center hosting",
            "provider": "Equinix",
            "reason": "Sub-service",
            "pageNumbers": [8],
            "sourceTable": "table_8_1",
            "confidenceScore": 0.85,
        }
    ],
    "detectedTables": [
        {
            "id": "table_14_0",
            "page": 14,
            "type": "control_testing",
            "summary": "Results of tests of operating effectiveness",
            "relevantData": ["CF-1"],
        }
    ],
}


def assert_is_stub(record: StructuredRecord) -> None:
    assert record.executive_summary.auditor == STUB_TEXT
    assert [item.id for item in record.control_failures] == ["fallback-control-failure-1"]
    assert [item.id for item in record.exclusions] == ["fallback-exclusion-1"]
    assert [item.id for item in record.carve_outs] == ["fallback-carveout-1"]
    for item in record.control_failures + record.exclusions + record.carve_outs:
        assert item.confidence_score == LOW_CONFIDENCE


# ===========================================================================
# JSON strategy tests
# ===========================================================================


class TestParseStructuredResultJson:

    @pytest.mark.parametrize(
        "content",
        [
            json.dumps(SAMPLE_RESPONSE),
            "Here is the analysis you asked for:\n" + json.dumps(SAMPLE_RESPONSE, indent=2) + "\nLet me know if you need more.",
            "```json\n" + json.dumps(SAMPLE_RESPONSE) + "\n```\nReplace {placeholder} with your own values.",
        ],
        ids=["clean", "prose-wrapped", "fenced-with-trailing-braces"],
    )
    def test_full_record_recovered(self, content):
        assert parse_structured_result(content).model_dump(by_alias=True) == SAMPLE_RESPONSE

    def test_sparse_record_filled_with_defaults(self):
        record = parse_structured_result('{"controlFailures": [{"id": "CF-9"}]}')
        assert record.with_default_summary().model_dump(by_alias=True) == {
            "executiveSummary": {"reportPeriod": NOT_SPECIFIED, "serviceOrganization": NOT_SPECIFIED, "auditor": NOT_SPECIFIED, "opinion": NOT_SPECIFIED},
            "controlFailures": [
                {
                    "id": "CF-9",
                    "description": NOT_SPECIFIED,
                    "type": UNKNOWN,
                    "effectiveness": NOT_SPECIFIED,
                    "exceptions": [],
                    "pageNumbers": [1],
                    "sourceTable": NOT_SPECIFIED,
                    "confidenceScore": None,
                }
            ],
            "exclusions": [],
            "carveOuts": [],
            "detectedTables": [],
        }

    def test_fence_without_language_tag(self):
        assert parse_fenced_block('notes\n```\n{"exclusions": []}\n```') == {"exclusions": []}

    def test_missing_lists_default_to_empty(self):
        record = parse_structured_result('{"executiveSummary": {"auditor": "EY"}}')
        assert record.executive_summary.auditor == "EY"
        assert record.executive_summary.opinion == NOT_SPECIFIED
        assert not record.control_failures
        assert not record.carve_outs

    def test_missing_summary_left_for_merge(self):
        record = parse_structured_result('{"controlFailures": [{"id": "CF-9"}]}')
        assert record.executive_summary is None
        assert record.with_default_summary().executive_summary == ExecutiveSummary()

    def test_snake_case_record_keys_accepted(self):
        record = parse_structured_result('{"carve_outs": [{"id": "CO-2"}]}')
        assert [item.id for item in record.carve_outs] == ["CO-2"]


# ===========================================================================
# Record-key check tests
# ===========================================================================


class TestNonRecordObjects:

    def test_object_without_record_keys_gives_stub(self):
        assert_is_stub(parse_structured_result('Sure! {"status": "ok"}'))

    def test_object_without_record_keys_rejected_by_every_strategy(self):
        assert run_strategies('Sure! {"status": "ok"}', STRATEGIES + AGGRESSIVE_STRATEGIES) is None

    def test_empty_reply_message_dump_gives_stub(self):
        content = normalize_content({"choices": [{"message": {"role": "assistant", "content": ""}}]})
        assert_is_stub(parse_structured_result(content))

    def test_non_record_object_falls_through_to_natural_language(self):
        record = parse_structured_result('{"note": "Auditor: KPMG LLP"}')
        assert record.executive_summary.auditor.startswith("KPMG LLP")


# ===========================================================================
# Brace span tests
# ===========================================================================


class TestBraceSpan:

    def test_span_from_first_open_to_last_close(self):
        assert parse_brace_span('prefix {"exclusions": [{"id": "EX-1"}]} suffix') == {"exclusions": [{"id": "EX-1"}]}

    def test_close_before_open(self):
        assert parse_brace_span('} {"exclusions": []') is None

    def test_no_braces(self):
        assert parse_brace_span("no json here") is None

    def test_unbalanced_open_braces_are_linear(self):
        assert parse_brace_span("{" * 50000) is None

    def test_repair_trims_to_braces(self):
        assert repair_json('Result: {"exclusions": []} thanks') == '{"exclusions": []}'
        assert repair_json("} nothing {") == ""


# ===========================================================================
# Aggressive repair tests
# ===========================================================================


class TestAggressiveRepair:

    MALFORMED = '{executiveSummary: {auditor: "Deloitte",}, controlFailures: [],}'

    def test_repair_json_output_is_valid(self):
        repaired = repair_json(self.MALFORMED)
        assert json.loads(repaired) == {"executiveSummary": {"auditor": "Deloitte"}, "controlFailures": []}

    def test_aggressive_recovers_bare_keys_and_trailing_commas(self):
        record = parse_structured_result(self.MALFORMED, aggressive=True)
        assert record.executive_summary.auditor == "Deloitte"
        assert not record.control_failures

    def test_bare_values_quoted(self):
        content = 'Result:\n{"controlFailures": [{"id": CF-1, "effectiveness": ineffective}]}'
        record = parse_structured_result(content, aggressive=True)
        assert record.control_failures[0].id == "CF-1"
        assert record.control_failures[0].effectiveness == "ineffective"

    def test_blank_lines_removed(self):
        repaired = repair_json('{\n\n  "a": "x",\n\n  "b": "y"\n}')
        assert "\n\n" not in repaired
        assert json.loads(repaired) == {"a": "x", "b": "y"}

    def test_repairs_not_applied_by_default(self):
        record = parse_structured_result(self.MALFORMED)
        assert not any(item.id == "CF-1" for item in record.control_failures)
        assert record.executive_summary.auditor != "Deloitte"


# ===========================================================================
# run_strategies tests
# ===========================================================================


class TestRunStrategies:

    def test_first_success_wins(self):
        calls = []

        def failing(text):
            calls.append("failing")
            raise ValueError(text)

        def empty(_text):
            calls.append("empty")
            return None

        def good(_text):
            calls.append("good")
            return {"ok": True}

        def never(_text):
            calls.append("never")
            return {"ok": False}

        strategies = [("failing", failing), ("empty", empty), ("good", good), ("never", never)]
        assert run_strategies("x", strategies) == {"ok": True}
        assert calls == ["failing", "empty", "good"]

    def test_all_fail(self):
        assert run_strategies("x", [("none", lambda _text: None)]) is None


# ===========================================================================
# Natural-language fallback tests
# ===========================================================================


class TestNaturalLanguageFallback:

    PROSE = (
        "Service organization: Acme Payments Inc. Auditor: KPMG LLP. Opinion: Unqualified.\n"
        "One control failure was noted in the logical access review process.\n"
        "There is an exclusion for the payroll system.\n"
        "A carve-out applies to the data center provider."
    )

    def test_summary_fields(self):
        record = extract_from_natural_language(self.PROSE)
        assert record.executive_summary.service_organization == "Acme Payments Inc"
        assert record.executive_summary.auditor == "KPMG LLP"
        assert record.executive_summary.opinion == "Unqualified"

    def test_keyword_sentences(self):
        record = extract_from_natural_language(self.PROSE)
        assert [item.id for item in record.control_failures] == ["extracted-control-failure-1"]
        assert record.control_failures[0].description == "control failure was noted in the logical access review process"
        assert record.control_failures[0].confidence_score == EXTRACTED_CONFIDENCE
        assert [item.id for item in record.exclusions] == ["extracted-exclusion-1"]
        assert [item.id for item in record.carve_outs] == ["extracted-carveout-1"]

    def test_opinion_from_keyword(self):
        record = extract_from_natural_language("The auditor issued a qualified report")
        assert record.executive_summary.opinion == "qualified"

    def test_short_capture_ignored(self):
        assert extract_from_natural_language("auditor: EY") is None

    def test_nothing_found(self):
        assert extract_from_natural_language("The quick brown fox jumps over the lazy dog.") is None

    def test_parse_uses_natural_language_when_json_fails(self):
        record = parse_structured_result(self.PROSE)
        assert record.executive_summary.auditor == "KPMG LLP"
        assert record.control_failures[0].id.startswith("extracted-")


# ===========================================================================
# Terminal fallback tests
# ===========================================================================


class TestFallbackRecord:

    def test_empty_content(self):
        assert_is_stub(parse_structured_result(""))

    def test_unrelated_prose(self):
        assert_is_stub(parse_structured_result("The quick brown fox jumps over the lazy dog."))

    def test_top_level_array(self):
        assert_is_stub(parse_structured_result("[1, 2, 3]"))

    def test_non_string_content(self):
        assert_is_stub(parse_structured_result(None))

    def test_preview_is_bounded(self):
        record = create_fallback_record("z" * 5000)
        description = record.exclusions[0].description
        assert "z" * 1000 + "..." in description
        assert "z" * 1001 not in description
        assert "5000 characters" in record.control_failures[0].description


# ===========================================================================
# StructuredRecord.from_raw coercion tests
# ===========================================================================


class TestFromRaw:

    def test_snake_case_keys_accepted(self):
        record = StructuredRecord.from_raw({"executive_summary": {"service_organization": "Acme"}, "carve_outs": [{"provider": "AWS"}]})
        assert record.executive_summary.service_organization == "Acme"
        assert record.carve_outs[0].provider == "AWS"

    def test_missing_fields_get_defaults(self):
        record = StructuredRecord.from_raw({"controlFailures": [{"description": "x", "id": None, "type": ""}]})
        control = record.control_failures[0]
        assert control.id == NOT_SPECIFIED
        assert control.type == "Unknown"
        assert control.page_numbers == [1]
        assert control.exceptions == []
        assert control.confidence_score is None

    def test_page_numbers_coerced(self):
        record = StructuredRecord.from_raw(
            {
                "exclusions": [
                    {"id": "A", "pageNumbers": "3, 4"},
                    {"id": "B", "pageNumbers": 7},
                    {"id": "C", "pageNumbers": ["p. 9", 0, -2]},
                    {"id": "D", "pageNumbers": "n/a"},
                ]
            }
        )
        assert [item.page_numbers for item in record.exclusions] == [[3, 4], [7], [9], [1]]

    def test_confidence_coerced(self):
        record = StructuredRecord.from_raw({"exclusions": [{"confidenceScore": "0.95"}, {"confidenceScore": "high"}]})
        assert record.exclusions[0].confidence_score == 0.95
        assert record.exclusions[1].confidence_score is None

    def test_scalar_values_stringified(self):
        record = StructuredRecord.from_raw({"controlFailures": [{"id": 12, "exceptions": "only one"}]})
        assert record.control_failures[0].id == "12"
        assert record.control_failures[0].exceptions == ["only one"]

    def test_string_items_become_descriptions(self):
        record = StructuredRecord.from_raw({"exclusions": ["Payroll is out of scope"]})
        assert record.exclusions[0].description == "Payroll is out of scope"
        assert record.exclusions[0].id == NOT_SPECIFIED

    def test_non_object_items_dropped(self):
        record = StructuredRecord.from_raw({"carveOuts": [42, {"id": "CO-1"}, ["nested"]]})
        assert [item.id for item in record.carve_outs] == ["CO-1"]

    def test_single_object_wrapped(self):
        record = StructuredRecord.from_raw({"controlFailures": {"id": "CF-1"}})
        assert [item.id for item in record.control_failures] == ["CF-1"]

    def test_detected_table_page_coerced(self):
        record = StructuredRecord.from_raw({"detectedTables": [{"id": "table_7_0", "page": "Page 7", "relevantData": "CF-1"}]})
        assert record.detected_tables[0].page == 7
        assert record.detected_tables[0].relevant_data == ["CF-1"]

    def test_non_object_summary_ignored(self):
        assert StructuredRecord.from_raw({"executiveSummary": "Acme"}).executive_summary is None

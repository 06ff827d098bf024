"""End-to-end SOC1 report analysis: PDF -> text + table markup -> model -> report.

Usage:
    python -m soc1_analyzer.pipeline report.pdf
    python -m soc1_analyzer.pipeline report.pdf --model openai/gpt-4o-mini --output findings.json
"""

import argparse
import logging
import sys
from pathlib import Path

from soc1_analyzer.analysis.analyzer import Analyzer, ProgressCallback
from soc1_analyzer.analysis.errors import AnalysisError
from soc1_analyzer.analysis.schema import AnalysisReport, build_report
from soc1_analyzer.config import APIConfig, get_api_config, get_default_model, validate_config
from soc1_analyzer.document.reader import DocumentInfo, DocumentReadError, read_pdf
from soc1_analyzer.tables.formatting import tables_as_structured_data

logger = logging.getLogger(__name__)


def build_analysis_input(info: DocumentInfo) -> str:
    """Concatenate the page text with the serialised table section."""
    return info.text + tables_as_structured_data(info.tables)


def run(
    pdf_path: Path | str,
    model_id: str | None = None,
    config: APIConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> AnalysisReport:
    """Read a PDF, analyze it, and return the flattened report."""
    config = config or get_api_config()
    is_valid, errors = validate_config(config)
    if not is_valid:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    info = read_pdf(pdf_path)
    analysis_input = build_analysis_input(info)
    logger.info("Prepared %d chars of analysis input (%d tables)", len(analysis_input), len(info.tables))

    analyzer = Analyzer(config)
    record = analyzer.analyze(analysis_input, model_id or get_default_model(config.use_local_model), on_progress)
    return build_report(record)


def _log_progress(percent: float, message: str) -> None:
    logger.info("[%3.0f%%] %s", percent, message)


def main():
    """Analyze one PDF from the command line and write the report as JSON."""
    parser = argparse.ArgumentParser(description="Extract SOC1 control failures, exclusions and carve-outs from a PDF")
    parser.add_argument("pdf", type=Path, help="Path to the SOC1 report PDF")
    parser.add_argument("--model", default=None, help="Model id (defaults to the configured local or remote model)")
    parser.add_argument("--output", type=Path, default=None, help="Write the report JSON here instead of stdout")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        report = run(args.pdf, args.model, on_progress=_log_progress)
    except (AnalysisError, DocumentReadError, ValueError) as exc:
        logger.error("Analysis failed: %s", exc)
        sys.exit(1)

    output = report.model_dump_json(indent=2, by_alias=True)
    if args.output is None:
        print(output)
    else:
        args.output.write_text(output, encoding="utf-8")
        logger.info("Wrote %d findings to %s", len(report.findings), args.output)


if __name__ == "__main__":
    main()

"""Single- and multi-chunk analysis of report text.

Text within the per-call budget is analyzed in one request.  Larger text is
split into chunks that are analyzed strictly in order; a chunk whose request
fails is logged and skipped, and the partial records are merged at the end.
The only fatal outcome of a multi-chunk run is that no chunk succeeded.
"""

import logging
from collections.abc import Callable

from soc1_analyzer.analysis.chunking import estimate_tokens, merge_records, split_text_into_chunks
from soc1_analyzer.analysis.client import ModelClient
from soc1_analyzer.analysis.errors import TransportError
from soc1_analyzer.analysis.normalize import normalize_content
from soc1_analyzer.analysis.parsing import parse_structured_result
from soc1_analyzer.analysis.prompts import USER_MESSAGE_TEMPLATE, system_prompt
from soc1_analyzer.analysis.schema import StructuredRecord
from soc1_analyzer.config import APIConfig

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

# Multi-chunk runs spread per-chunk progress over this band
CHUNK_BAND_START = 15.0
CHUNK_BAND_WIDTH = 70.0


class ProgressReporter:
    """Forward progress updates, clamped to [0, 100] and never decreasing."""

    def __init__(self, callback: ProgressCallback | None = None):
        self._callback = callback
        self.percent = 0.0

    def __call__(self, percent: float, message: str) -> None:
        self.percent = max(self.percent, min(100.0, max(0.0, percent)))
        if self._callback is not None:
            self._callback(self.percent, message)


class Analyzer:
    """Run SOC1 analysis requests against the configured model endpoint."""

    def __init__(self, config: APIConfig, client: ModelClient | None = None):
        self.config = config
        self.client = client or ModelClient(config)

    def test_connection(self) -> bool:
        return self.client.test_connection()

    def analyze(self, text: str, model_id: str, on_progress: ProgressCallback | None = None) -> StructuredRecord:
        """Analyze report text and return the structured record.

        Raises a ``TransportError`` when a single-request analysis fails, and
        ``NoValidResultsError`` when every chunk of a large document fails.
        """
        progress = ProgressReporter(on_progress)
        progress(5, "Preparing analysis request...")

        estimated_tokens = estimate_tokens(text)
        if estimated_tokens <= self.config.max_tokens_per_chunk:
            record = self._analyze_single_chunk(text, model_id, progress)
        else:
            logger.info("Estimated %d tokens exceeds %d; analyzing in chunks", estimated_tokens, self.config.max_tokens_per_chunk)
            record = self._analyze_multiple_chunks(text, model_id, progress)
        return record.with_default_summary()

    def _analyze_single_chunk(self, text: str, model_id: str, progress: Callable[[float, str], None]) -> StructuredRecord:
        progress(10, "Preparing analysis request...")
        prompt = system_prompt(self.config.use_local_model)

        progress(30, "Sending request to AI model...")
        payload = self.client.complete(prompt, USER_MESSAGE_TEMPLATE.format(text=text), model_id)

        progress(70, "Processing AI response...")
        content = normalize_content(payload)

        progress(90, "Parsing results...")
        record = parse_structured_result(content, aggressive=self.config.use_local_model)

        progress(100, "Analysis complete!")
        return record

    def _analyze_multiple_chunks(self, text: str, model_id: str, progress: ProgressReporter) -> StructuredRecord:
        progress(10, "Splitting document into chunks...")
        chunks = split_text_into_chunks(text, self.config.max_tokens_per_chunk)
        total = len(chunks)
        progress(CHUNK_BAND_START, f"Analyzing {total} document sections...")

        records: list[StructuredRecord] = []
        chunk_width = CHUNK_BAND_WIDTH / total
        for chunk in chunks:
            chunk_start = CHUNK_BAND_START + chunk.index * chunk_width
            label = f"Section {chunk.index + 1}"
            progress(chunk_start, f"Analyzing section {chunk.index + 1} of {total}...")

            def chunk_progress(percent: float, message: str, start: float = chunk_start, prefix: str = label) -> None:
                progress(start + percent / 100 * chunk_width, f"{prefix}: {message}")

            try:
                records.append(self._analyze_single_chunk(chunk.text, model_id, chunk_progress))
            except TransportError as exc:
                logger.warning("Failed to analyze chunk %d/%d (%s): %s", chunk.index + 1, total, exc.kind, exc)

        logger.info("%d of %d chunks analyzed successfully", len(records), total)
        progress(90, "Combining results from all sections...")
        merged = merge_records(records)

        progress(100, "Analysis complete!")
        return merged

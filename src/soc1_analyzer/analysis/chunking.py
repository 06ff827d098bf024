"""Split oversized report text into chunks and merge per-chunk records.

Splitting prefers blank-line paragraph boundaries and only falls back to
sentence boundaries (and, for a single runaway sentence, a hard cut) when a
paragraph alone is over budget.  Every chunk fits the character budget, and
the chunks reproduce the source text apart from whitespace at the seams.
"""

import logging
import math
import re

from pydantic import BaseModel

from soc1_analyzer.analysis.errors import NoValidResultsError
from soc1_analyzer.analysis.schema import LIST_FIELDS, NOT_SPECIFIED, StructuredRecord
from soc1_analyzer.config import CHARS_PER_TOKEN

logger = logging.getLogger(__name__)

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


class Chunk(BaseModel):
    """A bounded slice of the report text."""

    index: int
    text: str


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _accumulate(pieces: list[str], separator: str, max_chars: int) -> list[str]:
    """Greedily pack pieces into groups whose joined length stays within *max_chars*."""
    groups: list[str] = []
    current = ""
    for piece in pieces:
        if current and len(current) + len(separator) + len(piece) > max_chars:
            groups.append(current)
            current = piece
        else:
            current = current + separator + piece if current else piece
    if current.strip():
        groups.append(current)
    return groups


def _split_oversize(chunk: str, max_chars: int) -> list[str]:
    """Re-split a chunk that is over budget on sentence boundaries, then by hard cuts."""
    sentences: list[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(chunk):
        if len(sentence) <= max_chars:
            sentences.append(sentence)
        else:
            sentences.extend(sentence[start : start + max_chars] for start in range(0, len(sentence), max_chars))
    return _accumulate(sentences, SENTENCE_SEPARATOR, max_chars)


def split_text_into_chunks(text: str, max_tokens: int) -> list[Chunk]:
    """Split *text* into chunks of at most ``max_tokens * 4`` characters.

    Text already within budget comes back unchanged as a single chunk.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return [Chunk(index=0, text=text)]

    paragraphs = [paragraph.strip() for paragraph in _PARAGRAPH_SPLIT_RE.split(text)]
    paragraphs = [paragraph for paragraph in paragraphs if paragraph]

    pieces: list[str] = []
    for chunk in _accumulate(paragraphs, PARAGRAPH_SEPARATOR, max_chars):
        if len(chunk) > max_chars:
            pieces.extend(_split_oversize(chunk, max_chars))
        else:
            pieces.append(chunk)

    chunks = [Chunk(index=index, text=piece.strip()) for index, piece in enumerate(pieces)]
    logger.info("Split %d chars into %d chunks (budget %d chars)", len(text), len(chunks), max_chars)
    return chunks


def _dedupe_by_id(items: list) -> list:
    """Keep the first item per id; items without a declared id are always kept."""
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id != NOT_SPECIFIED:
            if item.id in seen:
                continue
            seen.add(item.id)
        unique.append(item)
    return unique


def merge_records(records: list[StructuredRecord]) -> StructuredRecord:
    """Combine per-chunk records in chunk order.

    The first executive summary seen wins; finding lists are concatenated
    and de-duplicated by id, keeping the first occurrence.
    """
    if not records:
        raise NoValidResultsError()

    # A summary from prose extraction or the fallback stub counts as present and wins over later chunks
    summary = next((record.executive_summary for record in records if record.executive_summary is not None), None)
    merged_lists: dict[str, list] = {}
    for name in LIST_FIELDS:
        combined = [item for record in records for item in getattr(record, name)]
        merged_lists[name] = _dedupe_by_id(combined)
        if len(combined) != len(merged_lists[name]):
            logger.info("Merged %s: dropped %d duplicate id(s)", name, len(combined) - len(merged_lists[name]))

    return StructuredRecord(executive_summary=summary, **merged_lists)

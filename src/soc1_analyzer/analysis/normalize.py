"""Reduce a chat-completion envelope to the text the model produced.

OpenAI-compatible servers disagree on where the answer lives.  The known
shapes are modelled as a tagged union (``Envelope``), checked in priority
order, with a final catch-all variant that carries a bounded, cycle-safe JSON
dump of whatever came back.  ``normalize_content`` never raises.
"""

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MAX_DUMP_DEPTH = 3
MAX_DUMP_STRING = 1000
MAX_DUMP_ITEMS = 100

CIRCULAR_MARKER = "[Circular Reference]"
DEPTH_MARKER = "[Max Depth Reached]"
STRING_TRUNCATED_SUFFIX = "...[Truncated]"
ARRAY_TRUNCATED_MARKER = f"[Array Truncated - showing first {MAX_DUMP_ITEMS} items]"


# ─── Envelope Variants ───────────────────────────────────────────────────────


class MessageContent(BaseModel):
    """``choices[0].message.content`` is a non-blank string (the common case)."""

    kind: Literal["message_content"] = "message_content"
    text: str


class ChoiceContent(BaseModel):
    """``choices[0].content`` is a non-blank string."""

    kind: Literal["choice_content"] = "choice_content"
    text: str


class ContentParts(BaseModel):
    """``choices[0].message.content`` is a list of string or ``{"text": ...}`` parts."""

    kind: Literal["content_parts"] = "content_parts"
    parts: list[str]


class MessageDump(BaseModel):
    """No usable content, but the message object has other fields (e.g. tool calls)."""

    kind: Literal["message_dump"] = "message_dump"
    dump: str


class EnvelopeDump(BaseModel):
    """Catch-all: a safe dump of the whole envelope."""

    kind: Literal["envelope_dump"] = "envelope_dump"
    dump: str


Envelope = Annotated[
    Union[MessageContent, ChoiceContent, ContentParts, MessageDump, EnvelopeDump],
    Field(discriminator="kind"),
]


# ─── Safe Dump ───────────────────────────────────────────────────────────────


def _bounded(value: Any, depth: int, max_depth: int, ancestors: set[int]) -> Any:
    """Return a JSON-ready copy of *value* with cycles, depth, strings and arrays bounded."""
    if isinstance(value, str):
        if len(value) > MAX_DUMP_STRING:
            return value[:MAX_DUMP_STRING] + STRING_TRUNCATED_SUFFIX
        return value
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if not isinstance(value, (dict, list, tuple)):
        return str(value)

    if id(value) in ancestors:
        return CIRCULAR_MARKER
    if depth > max_depth:
        return DEPTH_MARKER

    ancestors = ancestors | {id(value)}
    if isinstance(value, dict):
        return {str(key): _bounded(item, depth + 1, max_depth, ancestors) for key, item in value.items()}

    items = [_bounded(item, depth + 1, max_depth, ancestors) for item in value[:MAX_DUMP_ITEMS]]
    if len(value) > MAX_DUMP_ITEMS:
        items.append(ARRAY_TRUNCATED_MARKER)
    return items


def safe_dump(obj: Any, max_depth: int = MAX_DUMP_DEPTH) -> str:
    """Serialise arbitrary response data to indented JSON, bounded in size.

    The top-level object sits at depth 0; containers nested deeper than
    *max_depth* are replaced by a marker.  Returns '' if serialisation fails.
    """
    try:
        return json.dumps(_bounded(obj, 0, max_depth, set()), indent=2)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.warning("safe_dump failed: %s", exc)
        return ""


# ─── Classification ──────────────────────────────────────────────────────────


def _join_parts(content: list) -> list[str]:
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            parts.append(part["text"])
    return parts


def _has_other_fields(message: dict) -> bool:
    """Return True if a message carries a non-empty value under any key besides ``content``."""
    return any(value is not None and value != "" and value != [] and value != {} for key, value in message.items() if key != "content")


def classify_envelope(payload: Any) -> Envelope:
    """Return the first envelope variant that matches *payload*, in priority order."""
    choices = payload.get("choices") if isinstance(payload, dict) else None
    choice = choices[0] if isinstance(choices, list) and choices else {}
    choice = choice if isinstance(choice, dict) else {}
    message = choice.get("message")
    message = message if isinstance(message, dict) else {}

    content = message.get("content")
    if isinstance(content, str) and content.strip():
        return MessageContent(text=content)

    choice_content = choice.get("content")
    if isinstance(choice_content, str) and choice_content.strip():
        return ChoiceContent(text=choice_content)

    if isinstance(content, list):
        parts = _join_parts(content)
        if "".join(parts).strip():
            return ContentParts(parts=parts)

    if _has_other_fields(message):
        return MessageDump(dump=safe_dump(message))

    return EnvelopeDump(dump=safe_dump(payload))


def envelope_text(envelope: Envelope) -> str:
    """Return the textual payload carried by an envelope variant."""
    if isinstance(envelope, (MessageContent, ChoiceContent)):
        return envelope.text
    if isinstance(envelope, ContentParts):
        return "".join(envelope.parts)
    return envelope.dump


def normalize_content(payload: Any) -> str:
    """Best-effort text content of a response envelope; never raises."""
    try:
        envelope = classify_envelope(payload)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.warning("Could not classify response envelope: %s", exc)
        return ""
    logger.debug("Response envelope classified as %s", envelope.kind)
    return envelope_text(envelope)

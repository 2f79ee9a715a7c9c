"""
Splits a model reply into plain text segments and typed widgets.

A reply is markdown with optional fenced ```json blocks. Each block whose
envelope validates against one of the widget schemas becomes a Widget; any
other fenced block (bad JSON, unknown type, invalid data) is kept verbatim in
the text so nothing the model wrote is lost.

The output always alternates TextSegment / Widget and starts and ends with a
TextSegment, so N widgets yield N + 1 (possibly empty) text segments.
"""

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from pydantic import ValidationError

from .logger import logger
from .schemas import WIDGET_KINDS, WidgetKind, WidgetPayload, widget_block_adapter

JSON_FENCE_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")
XP_TAG_PATTERN = re.compile(r"\[XP:\s*\+(\d+)\]")

_ANY_FENCE_PATTERN = re.compile(r"```[\s\S]*?```")
_MARKDOWN_SYMBOLS = re.compile(r"[#*`_]")
_NEWLINES = re.compile(r"\n+")


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class Widget:
    kind: WidgetKind
    payload: WidgetPayload


ContentBlock = Union[TextSegment, Widget]


def strip_xp_tags(text: str) -> str:
    """Remove every XP reward tag from text."""
    return XP_TAG_PATTERN.sub("", text)


def _decode_widget(body: str) -> Optional[Widget]:
    """Validate one fenced JSON body; None means "render as literal text"."""
    try:
        raw = json.loads(body)
    except json.JSONDecodeError as e:
        logger.debug(f"Fenced block is not valid JSON, keeping as text: {e}")
        return None

    if not isinstance(raw, dict) or raw.get("type") not in WIDGET_KINDS:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        logger.debug(f"Fenced block has unrecognized type {kind!r}, keeping as text")
        return None

    try:
        block = widget_block_adapter.validate_python(raw)
    except ValidationError as e:
        logger.debug(f"Invalid {raw['type']} payload, keeping as text ({e.error_count()} errors)")
        return None

    return Widget(kind=block.type, payload=block.data)


def parse_reply(text: str) -> List[ContentBlock]:
    """
    Parse a model reply into an ordered list of content blocks.

    Never raises for malformed content. Pure function of its input.
    """
    clean = strip_xp_tags(text)
    blocks: List[ContentBlock] = []
    buffer: List[str] = []
    last_index = 0

    for match in JSON_FENCE_PATTERN.finditer(clean):
        buffer.append(clean[last_index:match.start()])
        widget = _decode_widget(match.group(1))
        if widget is None:
            buffer.append(match.group(0))
        else:
            blocks.append(TextSegment("".join(buffer)))
            blocks.append(widget)
            buffer = []
        last_index = match.end()

    buffer.append(clean[last_index:])
    blocks.append(TextSegment("".join(buffer)))
    return blocks


def widgets_of(blocks: List[ContentBlock]) -> List[Widget]:
    return [b for b in blocks if isinstance(b, Widget)]


def visible_text(blocks: List[ContentBlock]) -> str:
    """Concatenated text segments (widgets contribute nothing)."""
    return "".join(b.text for b in blocks if isinstance(b, TextSegment))


def speakable_text(text: str, max_chars: int = 500) -> str:
    """
    Prepare reply text for speech synthesis.

    Code blocks are announced rather than read, XP tags and markdown symbols
    are dropped, and line breaks become sentence pauses.
    """
    spoken = _ANY_FENCE_PATTERN.sub(" Code block omitted. ", text)
    spoken = strip_xp_tags(spoken)
    spoken = _MARKDOWN_SYMBOLS.sub("", spoken)
    spoken = _NEWLINES.sub(". ", spoken).strip()
    return spoken[:max_chars]

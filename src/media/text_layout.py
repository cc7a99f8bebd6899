"""Text measurement-driven layout: wrapping and alignment inside an element box.

The engine only needs a ``measure(text) -> width`` callable, so it can be
driven by a Pillow font in production and by a fixed-width stub in tests.
"""
import re
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple
from urllib.parse import unquote

from src.specs.common.enums import TextAlign, VerticalAlign, WhiteSpace
from src.specs.models.style import Box, ResolvedStyle

Measure = Callable[[str], float]

# Pillow anchors: horizontal (l/m/r) + "a" (top of the ascender box)
_ANCHORS = {
    TextAlign.LEFT: "la",
    TextAlign.CENTER: "ma",
    TextAlign.RIGHT: "ra",
}
_ESCAPED_NEWLINE = re.compile(r"\\n|%0a", re.IGNORECASE)


class LayoutLine(NamedTuple):
    text: str
    x: float
    y: float


@dataclass(frozen=True)
class TextLayout:
    lines: List[LayoutLine] = field(default_factory=list)
    block_height: float = 0.0
    anchor: str = "la"
    line_pitch: float = 0.0


def decode_text(raw: str) -> str:
    """Decode query text: percent-decoding, ``_`` -> space, escaped newlines -> ``\\n``."""
    if not raw:
        return ""
    text = unquote(str(raw))
    text = text.replace("_", " ")
    return _ESCAPED_NEWLINE.sub("\n", text)


def wrap_line(line: str, max_width: float, measure: Measure) -> List[str]:
    """Greedy word wrap of a single hard line.

    A word wider than ``max_width`` stays on its own line; a line is only
    flushed when it already holds something.
    """
    if max_width <= 0 or measure(line) <= max_width:
        return [line]
    wrapped: List[str] = []
    current = ""
    for word in line.split(" "):
        candidate = f"{current} {word}" if current else word
        if measure(candidate) > max_width and current:
            wrapped.append(current)
            current = word
        else:
            current = candidate
    if current:
        wrapped.append(current)
    return wrapped


def break_lines(text: str, max_width: float, white_space: WhiteSpace, measure: Measure) -> List[str]:
    hard_lines = text.split("\n")
    if white_space in (WhiteSpace.NOWRAP, WhiteSpace.PRE):
        return hard_lines
    lines: List[str] = []
    for hard_line in hard_lines:
        lines.extend(wrap_line(hard_line, max_width, measure))
    return lines


def layout_text(text: str, box: Box, style: ResolvedStyle, measure: Measure) -> TextLayout:
    """Lay out already-decoded ``text`` inside ``box``.

    Returns one ``LayoutLine`` per output line, positioned at the anchor
    point for ``style.text_align`` with ``y`` at the top of the line.
    """
    pad = style.padding
    content_left = box.x + pad.left
    content_top = box.y + pad.top
    content_width = box.width - pad.left - pad.right
    content_height = box.height - pad.top - pad.bottom

    lines = break_lines(text, content_width, style.white_space, measure)
    pitch = style.font_size * style.line_height
    block_height = len(lines) * pitch

    start_y = content_top
    if style.vertical_align == VerticalAlign.MIDDLE:
        start_y += max(0.0, (content_height - block_height) / 2)
    elif style.vertical_align == VerticalAlign.BOTTOM:
        start_y += max(0.0, content_height - block_height)

    anchor_x = content_left
    if style.text_align == TextAlign.CENTER:
        anchor_x += content_width / 2
    elif style.text_align == TextAlign.RIGHT:
        anchor_x += content_width

    return TextLayout(
        lines=[LayoutLine(line, anchor_x, start_y + i * pitch) for i, line in enumerate(lines)],
        block_height=block_height,
        anchor=_ANCHORS[style.text_align],
        line_pitch=pitch,
    )

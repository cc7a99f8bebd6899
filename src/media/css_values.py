"""Parsers for the CSS-like values found in layout descriptors.

All functions are pure and total: malformed input degrades to a documented
default instead of raising, so a bad style never aborts a render.
"""
import re
from typing import Any, Optional, Tuple

from PIL import ImageColor

from src.specs.models.style import Color, Padding, Rgba

_RGBA_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(\d*\.?\d+)\s*)?\)$",
    re.IGNORECASE,
)
_PX_RE = re.compile(r"^(-?\d*\.?\d+)(px)?$", re.IGNORECASE)

RgbaTuple = Tuple[int, int, int, int]


def parse_color(value: Any) -> Optional[Color]:
    """Parse ``rgba(r,g,b[,a])`` into :class:`Rgba`; pass other tokens through.

    >>> parse_color("rgba(255,0,0,0.5)")
    Rgba(r=255, g=0, b=0, a=0.5)
    >>> parse_color("#ff0000")
    '#ff0000'
    """
    if value is None:
        return None
    token = str(value).strip()
    if not token:
        return None
    match = _RGBA_RE.match(token)
    if not match:
        return token
    r, g, b, a = match.groups()
    alpha = 1.0 if a is None else min(max(float(a), 0.0), 1.0)
    return Rgba(r=min(int(r), 255), g=min(int(g), 255), b=min(int(b), 255), a=alpha)


def to_pil_color(color: Optional[Color], fallback: RgbaTuple = (0, 0, 0, 255)) -> RgbaTuple:
    """Convert a resolved color into an RGBA tuple Pillow can draw with."""
    if color is None:
        return fallback
    if isinstance(color, Rgba):
        return color.as_tuple()
    try:
        return ImageColor.getcolor(color, "RGBA")  # type: ignore[return-value]
    except ValueError:
        return fallback


def parse_px(value: Any) -> float:
    """Parse a single ``"Npx"`` length (bare numbers allowed); invalid or negative -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return max(float(value), 0.0)
    match = _PX_RE.match(str(value).strip())
    if not match:
        return 0.0
    return max(float(match.group(1)), 0.0)


def parse_padding(value: Any) -> Padding:
    """Parse CSS padding shorthand.

    1 token -> all sides, 2 tokens -> (vertical, horizontal),
    4 tokens -> (top, right, bottom, left). Any other count -> all zero.
    """
    if value is None or isinstance(value, bool):
        return Padding()
    if isinstance(value, (int, float)):
        side = max(float(value), 0.0)
        return Padding(top=side, right=side, bottom=side, left=side)
    tokens = str(value).split()
    sides = [parse_px(t) for t in tokens]
    if len(sides) == 1:
        (all_,) = sides
        return Padding(top=all_, right=all_, bottom=all_, left=all_)
    if len(sides) == 2:
        vertical, horizontal = sides
        return Padding(top=vertical, right=horizontal, bottom=vertical, left=horizontal)
    if len(sides) == 4:
        top, right, bottom, left = sides
        return Padding(top=top, right=right, bottom=bottom, left=left)
    return Padding()

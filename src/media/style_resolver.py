"""Resolve element styles: engine defaults <- document ``defaultStyle`` <- element ``style``."""
from typing import Any, Dict, Optional

from src.specs.common.enums import TextAlign, VerticalAlign, WhiteSpace
from src.specs.models.layout import StyleRecord
from src.specs.models.style import ResolvedStyle
from src.media.css_values import parse_color, parse_padding, parse_px

ENGINE_DEFAULTS: Dict[str, Any] = {
    "fontSize": 24,
    "fontFamily": "sans-serif",
    "fill": "#000000",
    "stroke": "#ffffff",
    "strokeWidth": 0,
    "textAlign": TextAlign.LEFT.value,
    "verticalAlign": VerticalAlign.TOP.value,
    "lineHeight": 1.2,
    "fontWeight": "normal",
    "borderColor": "#000000",
    "whiteSpace": WhiteSpace.PRE_WRAP.value,
}

_TEXT_ALIGN_ALIASES = {"start": TextAlign.LEFT, "end": TextAlign.RIGHT}
_VERTICAL_ALIGN_ALIASES = {"center": VerticalAlign.MIDDLE}


def merge_styles(default_style: Optional[StyleRecord], element_style: Optional[StyleRecord]) -> Dict[str, Any]:
    """Shallow merge; keys set on the element win, ``null`` counts as unset."""
    merged = dict(ENGINE_DEFAULTS)
    for record in (default_style, element_style):
        if record is not None:
            merged.update(record.model_dump(exclude_none=True))
    return merged


def _text_align(value: Any) -> TextAlign:
    key = str(value).strip().lower()
    if key in _TEXT_ALIGN_ALIASES:
        return _TEXT_ALIGN_ALIASES[key]
    try:
        return TextAlign(key)
    except ValueError:
        return TextAlign.LEFT


def _vertical_align(value: Any) -> VerticalAlign:
    key = str(value).strip().lower()
    if key in _VERTICAL_ALIGN_ALIASES:
        return _VERTICAL_ALIGN_ALIASES[key]
    try:
        return VerticalAlign(key)
    except ValueError:
        return VerticalAlign.TOP


def _white_space(value: Any) -> WhiteSpace:
    try:
        return WhiteSpace(str(value).strip().lower())
    except ValueError:
        return WhiteSpace.PRE_WRAP


def _positive(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def resolve_style(default_style: Optional[StyleRecord], element_style: Optional[StyleRecord]) -> ResolvedStyle:
    merged = merge_styles(default_style, element_style)
    filter_expr = str(merged.get("filter") or "").strip()
    return ResolvedStyle(
        font_size=_positive(merged["fontSize"], ENGINE_DEFAULTS["fontSize"]),
        font_family=str(merged["fontFamily"]).strip() or ENGINE_DEFAULTS["fontFamily"],
        fill=parse_color(merged["fill"]) or ENGINE_DEFAULTS["fill"],
        stroke=parse_color(merged["stroke"]) or ENGINE_DEFAULTS["stroke"],
        stroke_width=parse_px(merged["strokeWidth"]),
        text_align=_text_align(merged["textAlign"]),
        vertical_align=_vertical_align(merged["verticalAlign"]),
        line_height=_positive(merged["lineHeight"], ENGINE_DEFAULTS["lineHeight"]),
        font_weight=str(merged["fontWeight"]).strip().lower() or "normal",
        background_color=parse_color(merged.get("backgroundColor")),
        padding=parse_padding(merged.get("padding")),
        border_radius=parse_px(merged.get("borderRadius")),
        border_width=parse_px(merged.get("borderWidth")),
        border_color=parse_color(merged["borderColor"]) or ENGINE_DEFAULTS["borderColor"],
        filter=filter_expr if filter_expr and filter_expr.lower() != "none" else None,
        white_space=_white_space(merged["whiteSpace"]),
    )

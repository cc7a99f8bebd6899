"""Paint one element: background, filter, border, then text.

Background, filter and border are built on a scratch layer the size of the
element box and composited onto the surface at the box origin; text is drawn
last, stroke under fill.
"""
from typing import Optional, Tuple

from PIL import Image, ImageChops, ImageDraw

from src.shared import logging_utils as log
from src.specs.common.enums import DiagnosticCode
from src.specs.common.errors import FilterApplicationError
from src.specs.models.diagnostics import RenderDiagnostics
from src.specs.models.style import Box, ResolvedStyle
from src.media.css_values import to_pil_color
from src.media.filters import apply_filter
from src.media.fonts import PillowFont
from src.media.text_layout import TextLayout

TRANSPARENT = (0, 0, 0, 0)


def _box_rect(box: Box) -> Tuple[int, int, int, int]:
    x, y = int(round(box.x)), int(round(box.y))
    w, h = max(int(round(box.width)), 1), max(int(round(box.height)), 1)
    return x, y, w, h


def _radius(style: ResolvedStyle, w: int, h: int) -> int:
    return int(min(style.border_radius, w / 2, h / 2))


def _shape_mask(size: Tuple[int, int], radius: int) -> Image.Image:
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    w, h = size
    if radius > 0:
        draw.rounded_rectangle((0, 0, w - 1, h - 1), radius=radius, fill=255)
    else:
        draw.rectangle((0, 0, w - 1, h - 1), fill=255)
    return mask


def composite_at(surface: Image.Image, layer: Image.Image, x: int, y: int) -> None:
    """Alpha-composite ``layer`` onto ``surface`` in place, clipping at the edges."""
    if x >= surface.width or y >= surface.height or x + layer.width <= 0 or y + layer.height <= 0:
        return
    src_x, src_y = max(-x, 0), max(-y, 0)
    surface.alpha_composite(layer, dest=(max(x, 0), max(y, 0)), source=(src_x, src_y))


def extract_region(surface: Image.Image, x: int, y: int, w: int, h: int) -> Image.Image:
    if x < 0 or y < 0 or x + w > surface.width or y + h > surface.height:
        raise FilterApplicationError(
            "Filter region is outside the surface",
            details={"box": [x, y, w, h], "surface": list(surface.size)},
        )
    return surface.crop((x, y, x + w, y + h))


def _filter_layer(
    surface: Image.Image,
    style: ResolvedStyle,
    rect: Tuple[int, int, int, int],
    diagnostics: Optional[RenderDiagnostics],
    element: Optional[str],
) -> Optional[Image.Image]:
    x, y, w, h = rect
    try:
        region = extract_region(surface, x, y, w, h)
        filtered, unsupported = apply_filter(region, style.filter or "")
    except Exception as exc:
        log.warning(None, "render:filter_failed", element=element, filter=style.filter, error=str(exc))
        if diagnostics is not None:
            diagnostics.add(DiagnosticCode.FILTER_FAILED, str(exc), element=element, filter=style.filter)
        return None
    if unsupported:
        log.warning(None, "render:filter_unsupported", element=element, functions=unsupported)
        if diagnostics is not None:
            diagnostics.add(
                DiagnosticCode.FILTER_UNSUPPORTED,
                f"Unsupported filter functions skipped: {', '.join(unsupported)}",
                element=element,
                functions=unsupported,
            )
    mask = _shape_mask((w, h), _radius(style, w, h))
    filtered.putalpha(ImageChops.multiply(filtered.getchannel("A"), mask))
    return filtered


def paint_box(
    surface: Image.Image,
    box: Box,
    style: ResolvedStyle,
    *,
    diagnostics: Optional[RenderDiagnostics] = None,
    element: Optional[str] = None,
) -> None:
    """Background, filter and border for one element box."""
    if not style.needs_scratch_surface:
        return
    rect = _box_rect(box)
    x, y, w, h = rect
    radius = _radius(style, w, h)
    scratch = Image.new("RGBA", (w, h), TRANSPARENT)

    if style.background_color is not None:
        fill = Image.new("RGBA", (w, h), to_pil_color(style.background_color, TRANSPARENT))
        scratch.paste(fill, (0, 0), _shape_mask((w, h), radius))

    if style.filter:
        filtered = _filter_layer(surface, style, rect, diagnostics, element)
        if filtered is not None:
            scratch.alpha_composite(filtered)

    border = int(round(style.border_width))
    if border > 0:
        # Pillow strokes inward from the bounds, which matches a centered
        # stroke on a rectangle inset by half the border width.
        layer = Image.new("RGBA", (w, h), TRANSPARENT)
        draw = ImageDraw.Draw(layer)
        color = to_pil_color(style.border_color)
        if radius > 0:
            draw.rounded_rectangle((0, 0, w - 1, h - 1), radius=radius, outline=color, width=border)
        else:
            draw.rectangle((0, 0, w - 1, h - 1), outline=color, width=border)
        scratch.alpha_composite(layer)

    composite_at(surface, scratch, x, y)


def paint_text(surface: Image.Image, layout: TextLayout, style: ResolvedStyle, font: PillowFont) -> None:
    if not layout.lines:
        return
    layer = Image.new("RGBA", surface.size, TRANSPARENT)
    draw = ImageDraw.Draw(layer)
    fill = to_pil_color(style.fill)
    # Canvas strokes are centered on the outline; Pillow grows them outward.
    stroke_width = int(round(style.stroke_width / 2)) if style.stroke_width > 0 else 0
    if style.stroke_width > 0:
        stroke_width = max(stroke_width, 1)
    stroke_fill = to_pil_color(style.stroke) if stroke_width else None
    for line in layout.lines:
        if not line.text:
            continue
        draw.text(
            (line.x, line.y),
            line.text,
            font=font,
            fill=fill,
            anchor=layout.anchor,
            stroke_width=stroke_width,
            stroke_fill=stroke_fill,
        )
    surface.alpha_composite(layer)


def paint_element(
    surface: Image.Image,
    box: Box,
    style: ResolvedStyle,
    layout: TextLayout,
    font: PillowFont,
    *,
    diagnostics: Optional[RenderDiagnostics] = None,
    element: Optional[str] = None,
) -> None:
    paint_box(surface, box, style, diagnostics=diagnostics, element=element)
    paint_text(surface, layout, style, font)

import base64
import io
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from src.shared import logging_utils as log
from src.specs.common.enums import DiagnosticCode
from src.specs.common.errors import EncodingError
from src.specs.models.diagnostics import RenderDiagnostics
from src.media.fonts import FontResolver, PillowFont

WEBP = "image/webp"
PNG = "image/png"

ERROR_IMAGE_SIZE = (800, 600)
ERROR_BACKGROUND = "#C5C5C5"
ERROR_TEXT_COLOR = "#000000"
ERROR_MAX_TEXT_WIDTH = 700

# 1x1 PNG used when even the error placeholder cannot be encoded
MINIMAL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def encode_webp(image: Image.Image, quality: int = 100) -> bytes:
    buf = io.BytesIO()
    try:
        image.save(buf, format="WEBP", quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodingError(f"WebP encoding failed: {exc}") from exc
    return buf.getvalue()


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    try:
        image.save(buf, format="PNG")
    except (OSError, ValueError, KeyError) as exc:
        raise EncodingError(f"PNG encoding failed: {exc}") from exc
    return buf.getvalue()


def encode_image(
    image: Image.Image,
    *,
    quality: int = 100,
    diagnostics: Optional[RenderDiagnostics] = None,
) -> Tuple[bytes, str]:
    """Encode as WebP, falling back to PNG. Returns (bytes, content type)."""
    try:
        return encode_webp(image, quality), WEBP
    except EncodingError as exc:
        log.warning(None, "render:webp_failed", error=str(exc))
        if diagnostics is not None:
            diagnostics.add(DiagnosticCode.ENCODING_FALLBACK, str(exc))
    return encode_png(image), PNG


def _wrap_text(text: str, draw: ImageDraw.ImageDraw, max_width: int, font: PillowFont) -> List[str]:
    lines = []
    line = ""
    for w in text.split(" "):
        test = f"{line} {w}" if line else w
        if draw.textlength(test, font=font) > max_width and line:
            lines.append(line)
            line = w
        else:
            line = test
    if line:
        lines.append(line)
    return lines


def render_error_image(message: str, fonts: Optional[FontResolver] = None) -> Image.Image:
    """Grey 800x600 card with "Error" and the wrapped message."""
    fonts = fonts or FontResolver()
    w, h = ERROR_IMAGE_SIZE
    img = Image.new("RGB", (w, h), color=ERROR_BACKGROUND)
    draw = ImageDraw.Draw(img)

    title_font = fonts.get_font("Arial", "bold", 48)
    draw.text((w / 2, 250), "Error", fill=ERROR_TEXT_COLOR, font=title_font, anchor="ms")

    body_font = fonts.get_font("Arial", "normal", 24)
    y = 320
    for line in _wrap_text(message or "", draw, ERROR_MAX_TEXT_WIDTH, body_font):
        draw.text((w / 2, y), line, fill=ERROR_TEXT_COLOR, font=body_font, anchor="ms")
        y += 30
    return img


def generate_error_image(message: str, *, quality: int = 100, fonts: Optional[FontResolver] = None) -> Tuple[bytes, str]:
    """Encoded error placeholder; never raises.

    Returns (image bytes, content type).
    """
    try:
        img = render_error_image(message, fonts)
        return encode_image(img, quality=quality)
    except Exception as exc:
        log.error(None, "render:error_image_failed", error=str(exc))
        return MINIMAL_PNG, PNG

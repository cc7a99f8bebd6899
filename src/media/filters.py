"""CSS ``filter`` expressions applied to Pillow images."""
import re
from typing import Callable, Dict, List, NamedTuple, Tuple

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from src.specs.common.errors import FilterApplicationError

_FUNCTION_RE = re.compile(r"([a-zA-Z-]+)\(\s*([^)]*?)\s*\)")
_AMOUNT_RE = re.compile(r"^(-?\d*\.?\d+)(%|px|deg)?$", re.IGNORECASE)

_SEPIA_MATRIX = (
    0.393, 0.769, 0.189, 0,
    0.349, 0.686, 0.168, 0,
    0.272, 0.534, 0.131, 0,
)

# CSS initial value when the function is written without an argument
_DEFAULT_AMOUNTS: Dict[str, float] = {
    "blur": 0.0,
    "brightness": 1.0,
    "contrast": 1.0,
    "grayscale": 1.0,
    "saturate": 1.0,
    "sepia": 1.0,
    "invert": 1.0,
    "opacity": 1.0,
}


class FilterOp(NamedTuple):
    name: str
    amount: float


def _amount(name: str, raw: str) -> float:
    if not raw:
        return _DEFAULT_AMOUNTS.get(name, 1.0)
    match = _AMOUNT_RE.match(raw.strip())
    if not match:
        raise FilterApplicationError(f"Invalid argument for {name}(): {raw!r}", details={"filter": name})
    value = float(match.group(1))
    if match.group(2) == "%":
        value /= 100.0
    return max(value, 0.0)


def parse_filter(expr: str) -> Tuple[List[FilterOp], List[str]]:
    """Split a filter list into supported operations and unsupported function names."""
    functions = _FUNCTION_RE.findall(expr or "")
    if not functions:
        raise FilterApplicationError(f"Unparseable filter expression: {expr!r}", details={"filter": expr})
    ops: List[FilterOp] = []
    unsupported: List[str] = []
    for name, raw in functions:
        name = name.lower()
        if name not in _DEFAULT_AMOUNTS:
            unsupported.append(name)
            continue
        ops.append(FilterOp(name, _amount(name, raw)))
    return ops, unsupported


def _on_rgb(image: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    alpha = image.getchannel("A")
    out = fn(image.convert("RGB")).convert("RGBA")
    out.putalpha(alpha)
    return out


def _mix(image: Image.Image, effect: Callable[[Image.Image], Image.Image], amount: float) -> Image.Image:
    amount = min(amount, 1.0)
    if amount <= 0:
        return image
    return _on_rgb(image, lambda rgb: Image.blend(rgb, effect(rgb), amount))


def _opacity(image: Image.Image, amount: float) -> Image.Image:
    amount = min(amount, 1.0)
    out = image.copy()
    out.putalpha(image.getchannel("A").point(lambda a: int(a * amount)))
    return out


def apply_op(image: Image.Image, op: FilterOp) -> Image.Image:
    name, amount = op
    if name == "blur":
        return image.filter(ImageFilter.GaussianBlur(amount)) if amount > 0 else image
    if name == "brightness":
        return _on_rgb(image, lambda rgb: ImageEnhance.Brightness(rgb).enhance(amount))
    if name == "contrast":
        return _on_rgb(image, lambda rgb: ImageEnhance.Contrast(rgb).enhance(amount))
    if name == "saturate":
        return _on_rgb(image, lambda rgb: ImageEnhance.Color(rgb).enhance(amount))
    if name == "grayscale":
        return _mix(image, lambda rgb: ImageOps.grayscale(rgb).convert("RGB"), amount)
    if name == "sepia":
        return _mix(image, lambda rgb: rgb.convert("RGB", _SEPIA_MATRIX), amount)
    if name == "invert":
        return _mix(image, ImageOps.invert, amount)
    if name == "opacity":
        return _opacity(image, amount)
    raise FilterApplicationError(f"Unsupported filter function: {name}")


def apply_filter(image: Image.Image, expr: str) -> Tuple[Image.Image, List[str]]:
    """Apply ``expr`` to an RGBA image; returns the result and skipped function names."""
    ops, unsupported = parse_filter(expr)
    out = image.convert("RGBA")
    for op in ops:
        out = apply_op(out, op)
    return out, unsupported

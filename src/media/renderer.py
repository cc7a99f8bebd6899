"""Render orchestration: descriptor + base image + query text -> encoded image.

``compose`` and ``render_overlay`` are the network-free engine. ``OverlayRenderer``
wraps them with the upstream fetches and font registration for one request.
"""
import asyncio
import io
import json
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from src.shared import logging_utils as log
from src.shared.path_resolver import build_resource_url
from src.shared.settings import Settings, load_settings
from src.shared.upstream import UpstreamClient
from src.specs.common.enums import DiagnosticCode, FontMode, RenderPhase
from src.specs.common.errors import UpstreamFetchError
from src.specs.models.diagnostics import RenderDiagnostics
from src.specs.models.layout import ElementSpec, LayoutDescriptor, StyleRecord
from src.specs.models.render import RenderRequest, RenderResult
from src.specs.models.style import Box
from src.media.compositor import paint_element
from src.media.fonts import FontRegistry, FontResolver
from src.media.image_generator import encode_image
from src.media.style_resolver import resolve_style
from src.media.text_layout import decode_text, layout_text

RESERVED_PARAMS = frozenset({"baseUrl"})
FALLBACK_SURFACE_SIZE = (800, 600)


def _valid_elements(
    items: List[Any],
    diagnostics: Optional[RenderDiagnostics],
    request_id: Optional[str],
) -> List[Dict[str, Any]]:
    """Drop elements that fail validation; the rest of the layout still renders."""
    valid = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        try:
            ElementSpec.model_validate(item)
        except ValidationError as exc:
            query = item.get("query") if isinstance(item.get("query"), str) else None
            errors = exc.errors(include_url=False, include_context=False, include_input=False)
            log.warning(request_id, "render:invalid_element", index=index, element=query, errors=errors)
            if diagnostics is not None:
                diagnostics.add(
                    DiagnosticCode.INVALID_ELEMENT,
                    f"Element {index} is invalid: {exc.error_count()} error(s)",
                    element=query,
                    index=index,
                    errors=errors,
                )
            continue
        valid.append(item)
    return valid


def parse_descriptor(
    raw: Any,
    diagnostics: Optional[RenderDiagnostics] = None,
    request_id: Optional[str] = None,
) -> LayoutDescriptor:
    if isinstance(raw, (bytes, bytearray, str)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise UpstreamFetchError(f"Layout config is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise UpstreamFetchError("Layout config must be a JSON object")
    if isinstance(raw.get("elements"), list):
        raw = {**raw, "elements": _valid_elements(raw["elements"], diagnostics, request_id)}
    try:
        return LayoutDescriptor.model_validate(raw)
    except ValidationError as exc:
        raise UpstreamFetchError(
            f"Layout config is invalid: {exc.error_count()} error(s)",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def decode_base_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise UpstreamFetchError(f"Base image could not be decoded: {exc}") from exc
    return image.convert("RGBA")


def surface_size(descriptor: LayoutDescriptor, image: Optional[Image.Image]) -> Tuple[int, int]:
    """``imageSize`` from the config, else the base image size, else 800x600."""
    size = descriptor.imageSize
    width = (size.width if size else None) or (image.width if image else None) or FALLBACK_SURFACE_SIZE[0]
    height = (size.height if size else None) or (image.height if image else None) or FALLBACK_SURFACE_SIZE[1]
    return width, height


def create_surface(image: Optional[Image.Image], size: Tuple[int, int]) -> Image.Image:
    surface = Image.new("RGBA", size, (0, 0, 0, 0))
    if image is not None:
        base = image if image.size == size else image.resize(size, Image.LANCZOS)
        surface.alpha_composite(base.convert("RGBA"))
    return surface


def text_params(params: Mapping[str, str]) -> Dict[str, str]:
    return {k: v for k, v in params.items() if k not in RESERVED_PARAMS}


def select_elements(
    descriptor: LayoutDescriptor,
    params: Mapping[str, str],
    diagnostics: Optional[RenderDiagnostics] = None,
    request_id: Optional[str] = None,
) -> List[ElementSpec]:
    """Elements whose ``query`` key was supplied, in paint order."""
    available = text_params(params)
    selected = [el for el in descriptor.elements if el.query and el.query in available]
    if descriptor.elements and not selected:
        queries = [el.query for el in descriptor.elements if el.query]
        log.warning(request_id, "render:no_matching_elements", available=queries, received=sorted(available))
        if diagnostics is not None:
            diagnostics.add(
                DiagnosticCode.NO_MATCHING_ELEMENTS,
                "No element query matched the request parameters",
                available=queries,
                received=sorted(available),
            )
    return selected


def _first_set(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None


def element_box(
    element: ElementSpec,
    size: Tuple[int, int],
    default_style: Optional[StyleRecord] = None,
) -> Box:
    """Box from the element, then its style, then ``defaultStyle``, then the surface."""
    layers = [element, element.style, default_style or StyleRecord()]
    x = _first_set(*(layer.x for layer in layers))
    y = _first_set(*(layer.y for layer in layers))
    width = _first_set(*(layer.width for layer in layers))
    height = _first_set(*(layer.height for layer in layers))
    return Box(
        x=x or 0,
        y=y or 0,
        width=width if width and width > 0 else size[0],
        height=height if height and height > 0 else size[1],
    )


def compose(
    descriptor: LayoutDescriptor,
    image: Optional[Image.Image],
    params: Mapping[str, str],
    fonts: FontResolver,
    *,
    custom_font_family: Optional[str] = None,
    diagnostics: Optional[RenderDiagnostics] = None,
    request_id: Optional[str] = None,
) -> Image.Image:
    """Paint every matching element over the base image and return the surface.

    ``custom_font_family`` is the registered family used by elements flagged
    ``useR2Font``; pass ``None`` when the config font is unavailable.
    """
    size = surface_size(descriptor, image)
    surface = create_surface(image, size)
    use_config_font = descriptor.fontSettings.mode == FontMode.R2.value and custom_font_family is not None

    for element in select_elements(descriptor, params, diagnostics, request_id):
        style = resolve_style(descriptor.defaultStyle, element.style)
        if element.useR2Font and use_config_font:
            style = style.model_copy(update={"font_family": custom_font_family})

        text = decode_text(params[element.query])
        if not text.strip():
            log.warning(request_id, "render:empty_text", element=element.query)
            if diagnostics is not None:
                diagnostics.add(DiagnosticCode.EMPTY_TEXT, "Text is empty after decoding", element=element.query)
            continue

        log.info(request_id, "render:draw_text", element=element.query, text=log.preview(text))
        box = element_box(element, size, descriptor.defaultStyle)
        font = fonts.get_font(style.font_family, style.font_weight, style.font_size)
        layout = layout_text(text, box, style, measure=font.getlength)
        paint_element(surface, box, style, layout, font, diagnostics=diagnostics, element=element.query)

    return surface


def render_overlay(
    config: Any,
    image_bytes: bytes,
    params: Mapping[str, str],
    fonts: Optional[FontResolver] = None,
    *,
    custom_font_family: Optional[str] = None,
    quality: int = 100,
    diagnostics: Optional[RenderDiagnostics] = None,
    request_id: Optional[str] = None,
) -> RenderResult:
    """Network-free engine entry point; raises ``OverlayError`` subclasses."""
    diagnostics = diagnostics if diagnostics is not None else RenderDiagnostics()
    descriptor = parse_descriptor(config, diagnostics, request_id)
    image = decode_base_image(image_bytes)
    surface = compose(
        descriptor,
        image,
        params,
        fonts or FontResolver(),
        custom_font_family=custom_font_family,
        diagnostics=diagnostics,
        request_id=request_id,
    )
    body, content_type = encode_image(surface, quality=quality, diagnostics=diagnostics)
    return RenderResult(
        body=body,
        contentType=content_type,
        width=surface.width,
        height=surface.height,
        diagnostics=diagnostics,
    )


class OverlayRenderer:
    """Runs one overlay request end to end against the upstream origin."""

    def __init__(
        self,
        upstream: Optional[UpstreamClient] = None,
        registry: Optional[FontRegistry] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.upstream = upstream or UpstreamClient(timeout=self.settings.upstream_timeout_seconds)
        self.registry = registry or FontRegistry(
            self.settings.font_cache_dir,
            self.upstream.fetch_font,
            max_files=self.settings.font_cache_max_files,
        )
        self.fonts = FontResolver(self.registry)

    def _phase(self, request_id: str, phase: RenderPhase, **dimensions: Any) -> None:
        log.info(request_id, f"render:{phase.value}", **dimensions)

    async def _register_config_font(self, font_url: str, request_id: str, diagnostics: RenderDiagnostics) -> bool:
        family = self.settings.custom_font_family
        try:
            await asyncio.to_thread(self.registry.ensure_registered, font_url, family)
            return True
        except Exception as exc:
            log.warning(request_id, "render:font_unavailable", fontUrl=font_url, error=str(exc))
            diagnostics.add(DiagnosticCode.FONT_UNAVAILABLE, str(exc), fontUrl=font_url)
            return False

    async def render(self, request: RenderRequest, request_id: Optional[str] = None) -> RenderResult:
        request_id = request_id or uuid.uuid4().hex
        diagnostics = RenderDiagnostics()
        path = request.path
        self._phase(request_id, RenderPhase.PATH_RESOLVED, bucket=path.bucketName, imagePath=path.imagePath)

        config_url = build_resource_url(request.baseUrl, path.bucketName, path.configKey)
        image_url = build_resource_url(request.baseUrl, path.bucketName, path.imagePath)
        self._phase(request_id, RenderPhase.FETCHING, configUrl=config_url, imageUrl=image_url)
        raw_config, image_bytes = await self.upstream.fetch_render_inputs(config_url, image_url)

        descriptor = parse_descriptor(raw_config, diagnostics, request_id)
        self._phase(request_id, RenderPhase.CONFIG_PARSED, elements=len(descriptor.elements))

        font_ok = False
        if descriptor.fontSettings.uses_config_font:
            font_url = build_resource_url(
                request.baseUrl,
                path.bucketName,
                f"{path.font_dir}/{descriptor.fontSettings.r2FontFilename}",
            )
            self._phase(request_id, RenderPhase.FONT_RESOLVING, fontUrl=font_url)
            image, font_ok = await asyncio.gather(
                asyncio.to_thread(decode_base_image, image_bytes),
                self._register_config_font(font_url, request_id, diagnostics),
            )
        else:
            image = await asyncio.to_thread(decode_base_image, image_bytes)

        self._phase(request_id, RenderPhase.COMPOSITING, width=image.width, height=image.height)
        surface = await asyncio.to_thread(
            compose,
            descriptor,
            image,
            request.params,
            self.fonts,
            custom_font_family=self.settings.custom_font_family if font_ok else None,
            diagnostics=diagnostics,
            request_id=request_id,
        )

        self._phase(request_id, RenderPhase.ENCODING)
        body, content_type = await asyncio.to_thread(
            encode_image, surface, quality=self.settings.webp_quality, diagnostics=diagnostics
        )
        self._phase(
            request_id,
            RenderPhase.DONE,
            size=len(body),
            contentType=content_type,
            diagnostics=[c.value for c in diagnostics.codes],
        )
        return RenderResult(
            body=body,
            contentType=content_type,
            width=surface.width,
            height=surface.height,
            diagnostics=diagnostics,
        )

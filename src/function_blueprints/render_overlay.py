import uuid
from functools import lru_cache
from typing import Dict, Optional
from urllib.parse import urlparse

import azure.functions as func

from src.function_blueprints.health import CORS_HEADERS, build_health_response
from src.media.image_generator import generate_error_image
from src.media.renderer import OverlayRenderer, text_params
from src.shared.logging_utils import info as log_info, error as log_error
from src.shared.path_resolver import resolve_path
from src.specs.common.enums import RenderPhase
from src.specs.common.errors import OverlayError
from src.specs.models.render import RenderRequest


bp = func.Blueprint()

HEALTH_PATH = "/health"
IGNORED_PREFIXES = ("/favicon", "/.well-known")
IGNORED_PATHS = frozenset({"/robots.txt"})
CACHE_CONTROL = "public, max-age=3600"


@lru_cache(maxsize=1)
def get_renderer() -> OverlayRenderer:
    # One renderer per worker process; it owns the font registry.
    return OverlayRenderer()


def request_pathname(req: func.HttpRequest) -> str:
    return urlparse(req.url).path or "/"


def is_ignored_path(pathname: str) -> bool:
    """Browser housekeeping requests that are answered with a bare 404."""
    return pathname in IGNORED_PATHS or pathname.startswith(IGNORED_PREFIXES)


def image_response(body: bytes, content_type: str, status_code: int, *, cacheable: bool) -> func.HttpResponse:
    headers: Dict[str, str] = dict(CORS_HEADERS)
    headers["Content-Length"] = str(len(body))
    if cacheable:
        headers["Cache-Control"] = CACHE_CONTROL
    return func.HttpResponse(body=body, status_code=status_code, mimetype=content_type, headers=headers)


def error_response(message: str, renderer: Optional[OverlayRenderer] = None) -> func.HttpResponse:
    if renderer is None:
        body, content_type = generate_error_image(message)
    else:
        body, content_type = generate_error_image(
            message, quality=renderer.settings.webp_quality, fonts=renderer.fonts
        )
    return image_response(body, content_type, 500, cacheable=False)


async def handle_overlay_request(
    req: func.HttpRequest,
    renderer: Optional[OverlayRenderer] = None,
) -> func.HttpResponse:
    pathname = request_pathname(req)
    if pathname == HEALTH_PATH:
        return build_health_response()
    if is_ignored_path(pathname):
        return func.HttpResponse(status_code=404, headers=dict(CORS_HEADERS))

    request_id = uuid.uuid4().hex
    log_info(request_id, "overlay:request", path=pathname, query=sorted(req.params.keys()))
    try:
        renderer = renderer or get_renderer()
        path = resolve_path(pathname)
        params = dict(req.params)
        base_url = params.get("baseUrl") or renderer.settings.base_url
        result = await renderer.render(
            RenderRequest(path=path, params=text_params(params), baseUrl=base_url),
            request_id=request_id,
        )
    except OverlayError as exc:
        log_error(request_id, f"render:{RenderPhase.FAILED.value}", error=exc.to_dict())
        return error_response(str(exc), renderer)
    except Exception as exc:
        log_error(request_id, "overlay:unexpected_error", error=repr(exc))
        return error_response(str(exc), renderer)

    log_info(request_id, "overlay:completed", size=len(result.body), width=result.width, height=result.height)
    return image_response(result.body, result.contentType, 200, cacheable=True)


@bp.function_name(name="render_overlay")
@bp.route(route="{*path}", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
async def render_overlay(req: func.HttpRequest) -> func.HttpResponse:
    return await handle_overlay_request(req)

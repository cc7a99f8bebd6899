import io
import json
from typing import Dict, List, Optional, Tuple, Union

import pytest
import requests
from PIL import Image, ImageFont

from src.shared.settings import Settings
from src.shared.upstream import UpstreamClient
from src.media.fonts import FontRegistry
from src.media.renderer import OverlayRenderer

ORIGIN = "https://origin.test"


def make_image_bytes(size=(800, 600), color="white", fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class FakeSession:
    """Stands in for ``requests.Session``; unknown URLs answer 404."""

    def __init__(self, routes: Optional[Dict[str, Union[Tuple[int, bytes], Exception]]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[str] = []

    def get(self, url: str, timeout=None) -> FakeResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, b"not found")
        if isinstance(route, Exception):
            raise route
        status, body = route
        return FakeResponse(status, body)


@pytest.fixture
def font_bytes() -> bytes:
    font = ImageFont.load_default(size=12)
    data = getattr(font, "font_bytes", None)
    if not data:
        pytest.skip("Pillow built without FreeType; no scalable default font")
    return data


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(base_url=ORIGIN, port=3000, font_cache_dir=tmp_path / "fonts", webp_quality=90)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def renderer(settings, fake_session) -> OverlayRenderer:
    upstream = UpstreamClient(session=fake_session)
    registry = FontRegistry(settings.font_cache_dir, upstream.fetch_font, max_files=settings.font_cache_max_files)
    return OverlayRenderer(upstream=upstream, registry=registry, settings=settings)


def layout_json(elements, **extra) -> bytes:
    doc = {"elements": elements}
    doc.update(extra)
    return json.dumps(doc).encode("utf-8")


@pytest.fixture
def connection_error() -> Exception:
    return requests.ConnectionError("connection refused")

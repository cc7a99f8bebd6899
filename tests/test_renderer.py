import asyncio
import json

import pytest
from PIL import Image, ImageChops

from src.media.fonts import FontResolver
from src.media.renderer import compose, element_box, parse_descriptor, render_overlay, select_elements, surface_size
from src.shared.path_resolver import resolve_path
from src.specs.common.enums import DiagnosticCode
from src.specs.common.errors import UpstreamFetchError
from src.specs.models.diagnostics import RenderDiagnostics
from src.specs.models.layout import ElementSpec, StyleRecord
from src.specs.models.render import RenderRequest

from conftest import ORIGIN, layout_json, make_image_bytes, open_image

IMAGE_PATH = "/kbd/A/A/EMO/A/1.webp"
CONFIG_URL = f"{ORIGIN}/kbd/A/A/EMO/A.json"
IMAGE_URL = f"{ORIGIN}/kbd/A/A/EMO/A/1.webp"
FONT_URL = f"{ORIGIN}/kbd/A/A/EMO/fonts/Title.ttf"

TITLE_ELEMENT = {"query": "title", "x": 10, "y": 10, "width": 200, "height": 50, "style": {"textAlign": "center"}}


def ink_bbox(img, background="white"):
    base = Image.new("RGB", img.size, background)
    diff = ImageChops.difference(img.convert("RGB"), base).convert("L")
    return diff.point(lambda v: 255 if v > 64 else 0).getbbox()


def test_centered_title_end_to_end():
    descriptor = parse_descriptor(layout_json([TITLE_ELEMENT]))
    base = Image.new("RGBA", (800, 600), "white")
    out = compose(descriptor, base, {"title": "Hello%20World"}, FontResolver())
    assert out.size == (800, 600)
    left, top, right, bottom = ink_bbox(out)
    assert left >= 10 and right <= 210
    assert top >= 10 and bottom <= 60
    assert abs((left + right) / 2 - 110) <= 4


def test_render_overlay_encodes_webp():
    result = render_overlay(layout_json([TITLE_ELEMENT]), make_image_bytes(), {"title": "Hello_World"})
    assert result.contentType == "image/webp"
    img = open_image(result.body)
    assert img.format == "WEBP"
    assert img.size == (800, 600)
    assert ink_bbox(img) is not None


def test_image_size_overrides_base_dimensions():
    descriptor = parse_descriptor({"imageSize": {"width": 320, "height": 200}, "elements": []})
    assert surface_size(descriptor, Image.new("RGB", (800, 600))) == (320, 200)
    assert surface_size(parse_descriptor({}), Image.new("RGB", (64, 48))) == (64, 48)
    assert surface_size(parse_descriptor({}), None) == (800, 600)


def test_elements_without_matching_query_are_skipped():
    descriptor = parse_descriptor(
        {"elements": [{"query": "a"}, {"query": "b"}, {"x": 5}, "junk"]}
    )
    assert [el.query for el in select_elements(descriptor, {"b": "x", "baseUrl": "h"})] == ["b"]


def test_no_matching_elements_is_diagnosed_not_fatal():
    diagnostics = RenderDiagnostics()
    result = render_overlay(layout_json([TITLE_ELEMENT]), make_image_bytes((40, 30)), {"other": "x"}, diagnostics=diagnostics)
    assert diagnostics.codes == [DiagnosticCode.NO_MATCHING_ELEMENTS]
    assert (result.width, result.height) == (40, 30)
    assert ink_bbox(open_image(result.body)) is None


def test_empty_text_is_skipped():
    result = render_overlay(layout_json([TITLE_ELEMENT]), make_image_bytes(), {"title": "___"})
    assert result.diagnostics.has(DiagnosticCode.EMPTY_TEXT)
    assert ink_bbox(open_image(result.body)) is None


def test_later_elements_paint_over_earlier_ones():
    elements = [
        {"query": "a", "x": 0, "y": 0, "width": 50, "height": 50, "style": {"backgroundColor": "#ff0000", "textAlign": "right"}},
        {"query": "b", "x": 25, "y": 0, "width": 50, "height": 50, "style": {"backgroundColor": "#0000ff", "textAlign": "right"}},
    ]
    out = compose(parse_descriptor({"elements": elements}), Image.new("RGBA", (100, 50), "white"), {"a": " .", "b": " ."}, FontResolver())
    assert out.getpixel((5, 46))[:3] == (255, 0, 0)
    assert out.getpixel((30, 46))[:3] == (0, 0, 255)


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", json.dumps({"elements": {"query": "x"}}).encode()])
def test_unparseable_config_is_an_upstream_error(raw):
    with pytest.raises(UpstreamFetchError):
        parse_descriptor(raw)


def test_undecodable_base_image_is_an_upstream_error():
    with pytest.raises(UpstreamFetchError, match="decoded"):
        render_overlay(layout_json([]), b"not an image", {})


def _request(params):
    return RenderRequest(path=resolve_path(IMAGE_PATH), params=params, baseUrl=ORIGIN)


def test_orchestrator_fetches_config_and_image(renderer, fake_session):
    fake_session.routes[CONFIG_URL] = (200, layout_json([TITLE_ELEMENT]))
    fake_session.routes[IMAGE_URL] = (200, make_image_bytes())
    result = asyncio.run(renderer.render(_request({"title": "Hello"})))
    assert sorted(fake_session.calls) == sorted([CONFIG_URL, IMAGE_URL])
    assert result.contentType == "image/webp"
    assert open_image(result.body).size == (800, 600)
    assert result.diagnostics.events == []


def test_orchestrator_fails_when_config_is_missing(renderer, fake_session):
    fake_session.routes[IMAGE_URL] = (200, make_image_bytes())
    with pytest.raises(UpstreamFetchError) as info:
        asyncio.run(renderer.render(_request({"title": "Hello"})))
    assert info.value.status == 404
    assert info.value.url == CONFIG_URL


def test_orchestrator_fails_on_transport_error(renderer, fake_session, connection_error):
    fake_session.routes[CONFIG_URL] = (200, layout_json([]))
    fake_session.routes[IMAGE_URL] = connection_error
    with pytest.raises(UpstreamFetchError, match="image"):
        asyncio.run(renderer.render(_request({})))


def test_font_failure_falls_back_to_declared_family(renderer, fake_session):
    config = layout_json(
        [dict(TITLE_ELEMENT, useR2Font=True)],
        fontSettings={"mode": "r2", "r2FontFilename": "Title.ttf"},
    )
    fake_session.routes[CONFIG_URL] = (200, config)
    fake_session.routes[IMAGE_URL] = (200, make_image_bytes())
    result = asyncio.run(renderer.render(_request({"title": "Hello"})))
    assert FONT_URL in fake_session.calls
    assert result.diagnostics.codes == [DiagnosticCode.FONT_UNAVAILABLE]
    assert not renderer.registry.is_registered(renderer.settings.custom_font_family)
    assert ink_bbox(open_image(result.body)) is not None


def test_config_font_is_registered_once(renderer, fake_session, font_bytes):
    config = layout_json(
        [dict(TITLE_ELEMENT, useR2Font=True)],
        fontSettings={"mode": "r2", "r2FontFilename": "Title.ttf"},
    )
    fake_session.routes[CONFIG_URL] = (200, config)
    fake_session.routes[IMAGE_URL] = (200, make_image_bytes())
    fake_session.routes[FONT_URL] = (200, font_bytes)

    for _ in range(2):
        result = asyncio.run(renderer.render(_request({"title": "Hello"})))
        assert result.diagnostics.events == []
    assert fake_session.calls.count(FONT_URL) == 1
    assert renderer.registry.is_registered("CustomR2Font")


def test_box_can_come_from_style():
    element = {"query": "t", "style": {"x": 300, "y": 300, "width": 100, "height": 40, "backgroundColor": "#ff0000"}}
    out = compose(parse_descriptor({"elements": [element]}), Image.new("RGBA", (800, 600), "white"), {"t": " ."}, FontResolver())
    assert out.getpixel((5, 5))[:3] == (255, 255, 255)
    assert out.getpixel((395, 336))[:3] == (255, 0, 0)
    assert out.getpixel((405, 336))[:3] == (255, 255, 255)


def test_box_precedence():
    element = ElementSpec.model_validate({"x": 5, "style": {"x": 300, "y": "40px"}})
    box = element_box(element, (800, 600), StyleRecord(width=100, height=20, y=7))
    assert (box.x, box.y, box.width, box.height) == (5, 40, 100, 20)

    bare = element_box(ElementSpec(), (800, 600), StyleRecord())
    assert (bare.x, bare.y, bare.width, bare.height) == (0, 0, 800, 600)


@pytest.mark.parametrize(
    "image_size, expected",
    [
        ({"width": 0, "height": 0}, (64, 48)),
        ({"width": 320.7, "height": "200px"}, (320, 200)),
        ({"width": -5, "height": "abc"}, (64, 48)),
        ("800x600", (64, 48)),
    ],
)
def test_unusable_image_size_falls_back_to_base_image(image_size, expected):
    descriptor = parse_descriptor({"imageSize": image_size, "elements": []})
    assert surface_size(descriptor, Image.new("RGB", (64, 48))) == expected


def test_zero_image_size_renders_at_base_size():
    result = render_overlay(b'{"imageSize": {"width": 0, "height": 0}, "elements": []}', make_image_bytes((64, 48)), {})
    assert (result.width, result.height) == (64, 48)


def test_invalid_element_does_not_abort_render():
    elements = [
        TITLE_ELEMENT,
        {"query": "b", "style": {"textAlign": 1}},
        {"query": "c", "style": "bold"},
    ]
    result = render_overlay(layout_json(elements), make_image_bytes(), {"title": "hello", "b": "x", "c": "y"})
    assert result.diagnostics.codes == [DiagnosticCode.INVALID_ELEMENT, DiagnosticCode.INVALID_ELEMENT]
    assert [e.element for e in result.diagnostics.events] == ["b", "c"]
    bbox = ink_bbox(open_image(result.body))
    assert bbox is not None
    assert bbox[2] <= 210

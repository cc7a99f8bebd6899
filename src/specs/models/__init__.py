from __future__ import annotations

from typing import Dict, Type

from pydantic import BaseModel

from .http import HealthResponse
from .layout import ElementSpec, FontSettings, ImageSize, LayoutDescriptor, StyleRecord
from .path import PathDescriptor
from .diagnostics import DiagnosticEvent, RenderDiagnostics
from .render import RenderRequest, RenderResult
from .style import Box, Color, Padding, ResolvedStyle, Rgba


# Registry mapping output schema filenames to models for generation
SCHEMA_MODELS: Dict[str, Type[BaseModel]] = {
    "layout.descriptor.schema.json": LayoutDescriptor,
    "layout.element.schema.json": ElementSpec,
    "layout.style.schema.json": StyleRecord,
    "path.descriptor.schema.json": PathDescriptor,
    "render.diagnostics.schema.json": RenderDiagnostics,
    "health.response.schema.json": HealthResponse,
}

__all__ = [
    "HealthResponse",
    "ElementSpec",
    "FontSettings",
    "ImageSize",
    "LayoutDescriptor",
    "StyleRecord",
    "PathDescriptor",
    "DiagnosticEvent",
    "RenderDiagnostics",
    "RenderRequest",
    "RenderResult",
    "Box",
    "Color",
    "Padding",
    "ResolvedStyle",
    "Rgba",
    "SCHEMA_MODELS",
]

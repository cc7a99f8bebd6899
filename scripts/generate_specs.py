#!/usr/bin/env python3
"""
Generate JSON Schemas, YAML variants, and OpenAPI from Pydantic models.

Outputs under src/specs/:
 - schemas/*.json (and *.yaml)
 - openapi.yaml and openapi.json
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

try:
    import yaml  # type: ignore
except Exception as exc:  # pragma: no cover
    print("PyYAML is required: pip install pyyaml", file=sys.stderr)
    raise


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
SPECS = SRC / "specs"
SCHEMAS_DIR = SPECS / "schemas"

sys.path.insert(0, str(ROOT))

from src.specs.models import (  # noqa: E402
    SCHEMA_MODELS,
    HealthResponse,
    LayoutDescriptor,
)


def write_json_yaml(obj: dict, json_path: Path) -> None:
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
    yaml_path = json_path.with_suffix(".yaml")
    with yaml_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(obj, f, sort_keys=False)


def generate_model_schemas() -> None:
    for filename, model in SCHEMA_MODELS.items():
        schema = model.model_json_schema()
        write_json_yaml(schema, SCHEMAS_DIR / filename)


def _image_response(description: str) -> dict:
    return {
        "description": description,
        "content": {
            "image/webp": {"schema": {"type": "string", "format": "binary"}},
            "image/png": {"schema": {"type": "string", "format": "binary"}},
        },
    }


def build_openapi() -> dict:
    components = {
        "schemas": {
            "LayoutDescriptor": LayoutDescriptor.model_json_schema(),
            "HealthResponse": HealthResponse.model_json_schema(),
        }
    }

    spec = {
        "openapi": "3.0.3",
        "info": {
            "title": "Image Text Overlay API",
            "version": "0.1.0",
            "description": "Renders query text over stored images using a JSON layout stored next to them.",
        },
        "servers": [
            {"url": "http://localhost:7071", "description": "Local Functions host"}
        ],
        "paths": {
            "/health": {
                "get": {
                    "summary": "Liveness check",
                    "operationId": "health",
                    "responses": {
                        "200": {
                            "description": "Service is up",
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/HealthResponse"}
                                }
                            },
                        }
                    },
                }
            },
            "/{bucket}/{path}": {
                "get": {
                    "summary": "Render query text over {bucket}/{path}",
                    "description": (
                        "The layout is read from {configDir}/{folderName}.json next to the image. "
                        "Every query parameter except baseUrl is a candidate text value."
                    ),
                    "operationId": "renderOverlay",
                    "parameters": [
                        {"in": "path", "name": "bucket", "schema": {"type": "string"}, "required": True},
                        {"in": "path", "name": "path", "schema": {"type": "string"}, "required": True},
                        {
                            "in": "query",
                            "name": "baseUrl",
                            "schema": {"type": "string"},
                            "required": False,
                            "description": "Overrides the upstream origin for this request",
                        },
                    ],
                    "responses": {
                        "200": _image_response("Rendered image"),
                        "500": _image_response("Error placeholder image"),
                    },
                }
            },
        },
        "components": components,
    }
    return spec


def generate_openapi() -> None:
    spec = build_openapi()
    write_json_yaml(spec, SPECS / "openapi.json")


def main() -> None:
    generate_model_schemas()
    generate_openapi()
    print("Specs generated under src/specs/")


if __name__ == "__main__":
    main()

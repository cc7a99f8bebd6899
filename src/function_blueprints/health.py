from datetime import datetime, timezone
from typing import Dict, Optional

import azure.functions as func

from src.shared.settings import Settings, load_settings
from src.specs.models.http import HealthResponse


bp = func.Blueprint()

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def build_health_response(settings: Optional[Settings] = None) -> func.HttpResponse:
    settings = settings or load_settings()
    resp = HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        baseUrl=settings.base_url,
        port=settings.port,
    )
    return func.HttpResponse(
        body=resp.model_dump_json(),
        mimetype="application/json",
        status_code=200,
        headers=dict(CORS_HEADERS),
    )


@bp.function_name(name="health")
@bp.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health(req: func.HttpRequest) -> func.HttpResponse:
    return build_health_response()

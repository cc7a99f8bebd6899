from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness payload served on /health."""

    status: str = "ok"
    timestamp: str
    baseUrl: str
    port: int


__all__ = ["HealthResponse"]

import asyncio
import json
from typing import Any, Optional, Tuple

import requests

from src.shared import logging_utils as log
from src.specs.common.errors import UpstreamFetchError


class UpstreamClient:
    """HTTP access to the object-storage origin (config, base image, fonts)."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = 15.0) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def fetch_bytes(self, url: str, *, what: str = "resource") -> bytes:
        try:
            resp = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"Could not fetch {what}: {url} ({exc})", url=url) from exc
        if not resp.ok:
            raise UpstreamFetchError(
                f"Could not fetch {what}: {url} ({resp.status_code})",
                url=url,
                status=resp.status_code,
            )
        log.info(None, "upstream:fetched", what=what, url=url, size=len(resp.content))
        return resp.content

    def fetch_json(self, url: str, *, what: str = "config") -> Any:
        body = self.fetch_bytes(url, what=what)
        try:
            return json.loads(body)
        except ValueError as exc:
            raise UpstreamFetchError(f"Invalid JSON in {what}: {url} ({exc})", url=url) from exc

    def fetch_font(self, url: str) -> bytes:
        return self.fetch_bytes(url, what="font")

    async def fetch_render_inputs(self, config_url: str, image_url: str) -> Tuple[Any, bytes]:
        """Fetch the layout config and the base image concurrently; both must succeed."""
        config, image = await asyncio.gather(
            asyncio.to_thread(self.fetch_json, config_url, what="config"),
            asyncio.to_thread(self.fetch_bytes, image_url, what="image"),
        )
        return config, image

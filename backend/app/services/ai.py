"""Client for the AI analysis / generation service.

Every call is a JSON POST.  Failures (network, timeout, non-2xx, bad
JSON) are logged and returned as None: callers treat AI output as an
enhancement and carry on without it.

Endpoints:
  POST /analyze-risks        → {"risks": [...], "regional_info": "..."}
  POST /customize-guides     → {"customizations": {hazard: {...}}}
  POST /generate-map-image   → {"image_url": "..."}
  POST /generate-promo       → {"headline", "body", "image_url"?}
"""

import logging
from typing import Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class AIServiceClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(path, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"AI service call {path} failed: {e}")
            return None
        if not isinstance(body, dict):
            logger.warning(f"AI service call {path} returned non-object JSON")
            return None
        return body

    async def analyze_risks(
        self,
        location: str,
        latitude: float | None,
        longitude: float | None,
    ) -> dict[str, Any] | None:
        return await self._post(
            "/analyze-risks",
            {"location": location, "latitude": latitude, "longitude": longitude},
        )

    async def customize_guides(
        self,
        location: str,
        latitude: float | None,
        longitude: float | None,
        selected_risks: list[str],
        ai_analysis: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        body = await self._post(
            "/customize-guides",
            {
                "location": location,
                "latitude": latitude,
                "longitude": longitude,
                "selected_risks": selected_risks,
                "ai_analysis": ai_analysis,
            },
        )
        if body is None:
            return None
        return body.get("customizations") or None

    async def generate_map_image(
        self,
        region_polygon: list[dict[str, float]],
        meeting_point: dict[str, float] | None = None,
    ) -> str | None:
        body = await self._post(
            "/generate-map-image",
            {"region_polygon": region_polygon, "meeting_point": meeting_point},
        )
        return body.get("image_url") if body else None

    async def generate_promo(
        self,
        community_name: str,
        location: str,
        description: str,
        risks: list[str],
    ) -> dict[str, Any] | None:
        return await self._post(
            "/generate-promo",
            {
                "community_name": community_name,
                "location": location,
                "description": description,
                "risks": risks,
            },
        )


_client: AIServiceClient | None = None


def get_ai_client() -> AIServiceClient:
    global _client
    if _client is None:
        _client = AIServiceClient(settings.ai_service_url, timeout=settings.ai_timeout_seconds)
    return _client

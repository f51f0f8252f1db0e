"""Promotional material for a newly created community.

A QR code of the join link is always produced (SVG via segno).  Headline,
body copy and images come from the AI service and are simply omitted
when it is unavailable.
"""

import io
import logging
from typing import Any

import segno

from app.config import settings
from app.schemas.wizard import WizardData
from app.services.ai import AIServiceClient

logger = logging.getLogger(__name__)


def join_link(community_id: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/join/{community_id}"


def join_qr_svg(community_id: str, dark: str = "#000000") -> str:
    """Scannable SVG QR code of the community's join link."""
    qr = segno.make(join_link(community_id), error="m")
    buf = io.BytesIO()
    qr.save(buf, kind="svg", scale=4, dark=dark, border=2, xmldecl=False)
    return buf.getvalue().decode("utf-8")


async def build_promo(
    ai: AIServiceClient,
    community_id: str,
    data: WizardData,
) -> dict[str, Any]:
    promo: dict[str, Any] = {
        "join_link": join_link(community_id),
        "qr_svg": join_qr_svg(community_id),
    }

    generated = await ai.generate_promo(
        community_name=data.community_name,
        location=data.location or data.meeting_point_address,
        description=data.description,
        risks=list(data.selected_risks),
    )
    if generated:
        for key in ("headline", "body", "image_url"):
            if generated.get(key):
                promo[key] = generated[key]
    else:
        logger.info("Promo copy unavailable for community %s", community_id)

    if data.region_polygon:
        meeting_point = None
        if data.meeting_point_lat is not None and data.meeting_point_lng is not None:
            meeting_point = {"lat": data.meeting_point_lat, "lng": data.meeting_point_lng}
        map_url = await ai.generate_map_image(
            [p.model_dump() for p in data.region_polygon], meeting_point
        )
        if map_url:
            promo["map_image_url"] = map_url

    return promo

"""
Community endpoints.

GET /community/{zip_code}          CommunityData for a zip (optionally audience-scoped)
GET /community/{zip_code}/context  content context: rotated categories, monthly
                                   events section, city description

Both read the orchestrator from app.state and return the API envelope.
"""

import re
import uuid

from fastapi import APIRouter, HTTPException, Query, Request

router = APIRouter(prefix="/community", tags=["community"])

_ZIP_RE = re.compile(r"^\d{5}$")


def _require_zip(zip_code: str) -> str:
    zip_code = zip_code.strip()
    if not _ZIP_RE.match(zip_code):
        raise HTTPException(
            status_code=422,
            detail={
                "success": False,
                "error": {"code": "INVALID_ZIP", "message": "zip_code must be a 5-digit postal code."},
            },
        )
    return zip_code


def _service_areas(raw: list[str] | None) -> list[str] | None:
    areas = [area.strip() for area in raw or [] if area and area.strip()]
    return areas or None


@router.get("/{zip_code}")
async def get_community_data(
    request: Request,
    zip_code: str,
    audience: str | None = Query(None, max_length=64),
    service_area: list[str] | None = Query(None, description="Repeatable service-area city name"),
    city: str | None = Query(None, max_length=100),
    state: str | None = Query(None, max_length=2),
) -> dict:
    zip_code = _require_zip(zip_code)
    orchestrator = request.app.state.community_orchestrator
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    data = await orchestrator.get_community_data_by_zip_and_audience(
        zip_code,
        audience=audience,
        service_areas=_service_areas(service_area),
        preferred_city=city,
        preferred_state=state,
    )
    if data is None:
        raise HTTPException(
            status_code=404,
            detail={
                "success": False,
                "error": {"code": "NOT_FOUND", "message": f"No community data for {zip_code}."},
            },
        )

    return {
        "success": True,
        "data": data.model_dump(mode="json"),
        "requestId": request_id,
    }


@router.get("/{zip_code}/context")
async def get_community_context(
    request: Request,
    zip_code: str,
    user_id: str = Query(..., min_length=1, max_length=128),
    category: str = Query("community", pattern=r"^(community|seasonal)$"),
    audience: str | None = Query(None, max_length=64),
    service_area: list[str] | None = Query(None),
    city: str | None = Query(None, max_length=100),
    state: str | None = Query(None, max_length=2),
) -> dict:
    zip_code = _require_zip(zip_code)
    orchestrator = request.app.state.community_orchestrator
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    context = await orchestrator.get_community_content_context(
        user_id=user_id,
        category=category,
        zip_code=zip_code,
        audience=audience,
        service_areas=_service_areas(service_area),
        preferred_city=city,
        preferred_state=state,
    )

    return {
        "success": True,
        "data": {
            "communityData": (
                context.community_data.model_dump(mode="json") if context.community_data else None
            ),
            "cityDescription": context.city_description,
            "communityCategoryKeys": context.community_category_keys,
            "seasonalExtraSections": context.seasonal_extra_sections,
        },
        "requestId": request_id,
    }

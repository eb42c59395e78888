"""API routes for city weather reports."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictBool, StrictStr

from services.weather import weather_report_orchestrator
from services.weather.cities import SUPPORTED_CITIES
from services.weather.errors import BadRequest, FallbackUnavailable
from utils.logger import api_logger as logger

router = APIRouter()


class WeatherRequest(BaseModel):
    city: StrictStr = Field(..., min_length=1)
    forceRefresh: StrictBool = False
    prompt: Optional[StrictStr] = None


@router.post("/weather")
async def get_weather(request: WeatherRequest):
    """Report for one city, from cache or freshly fetched."""
    city = request.city.strip()
    if not city:
        raise BadRequest("city must not be blank")

    logger.info(
        "Weather requested",
        city=city,
        force_refresh=request.forceRefresh,
        has_prompt=bool(request.prompt),
    )
    try:
        result = await weather_report_orchestrator.get_weather(
            city,
            force_refresh=request.forceRefresh,
            prompt=request.prompt,
        )
    except FallbackUnavailable as exc:
        logger.error("Weather request failed", city=city, details=exc.details)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to get weather data", "details": exc.details},
        )
    return result.to_response()


@router.post("/clear-cache")
async def clear_cache():
    removed = weather_report_orchestrator.clear_cache()
    logger.info("Cache cleared via API", removed=removed)
    return {"success": True, "message": "Cache cleared"}


@router.get("/weather/cities")
async def list_cities():
    return {
        "cities": [
            {"id": c.id, "displayName": c.display_name, "uiVariant": c.ui_variant}
            for c in SUPPORTED_CITIES
        ]
    }


@router.get("/weather/status")
async def weather_status():
    return weather_report_orchestrator.get_status()

"""Streaming endpoint for investor discovery runs."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Mapping
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.config import settings
from app.models.discovery import DiscoveryConfig, DiscoveryStrategy
from app.services.discovery.pipeline import DiscoveryPipeline
from app.services.discovery.service import DiscoveryService, get_discovery_service
from app.services.discovery.streaming import encode_event_stream

router = APIRouter()
logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@router.post("/outreach/discover")
async def discover_investors(
    request: Request,
    service: DiscoveryService = Depends(get_discovery_service),
):
    """Run a discovery pass and stream its events as ``text/event-stream``."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid request"}, status_code=status.HTTP_400_BAD_REQUEST)
    if not isinstance(body, Mapping):
        return JSONResponse(
            {"error": "Request body must be a JSON object"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    config = build_discovery_config(body)
    cancel_event = asyncio.Event()
    pipeline = service.new_run(config, cancel_event=cancel_event)
    logger.info(
        "discovery.api.started",
        extra={
            "strategies": sorted(strategy.value for strategy in config.strategies),
            "max_results": config.max_results,
            "min_fit_score": config.min_fit_score,
        },
    )
    return StreamingResponse(
        _stream_frames(request, pipeline, cancel_event),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


async def _stream_frames(
    request: Request,
    pipeline: DiscoveryPipeline,
    cancel_event: asyncio.Event,
) -> AsyncIterator[str]:
    try:
        async for frame in encode_event_stream(pipeline.run()):
            if cancel_event.is_set():
                continue
            if await request.is_disconnected():
                logger.info("discovery.api.client_disconnected", extra={"state": pipeline.state.value})
                cancel_event.set()
                continue
            yield frame
    finally:
        cancel_event.set()


def build_discovery_config(body: Mapping[str, Any]) -> DiscoveryConfig:
    """Apply request defaults; accepts camelCase or snake_case keys."""
    keywords = _field(body, "focusKeywords", "focus_keywords")
    geography = _field(body, "geographyFilter", "geography_filter")
    stage = _field(body, "stageFilter", "stage_filter")
    min_fit_score = _number(_field(body, "minFitScore", "min_fit_score"))
    max_results = _number(_field(body, "maxResults", "max_results"))

    if min_fit_score is None:
        min_fit_score = settings.discovery_default_min_fit_score
    if max_results is None:
        max_results = settings.discovery_default_max_results

    return DiscoveryConfig(
        strategies=_validate_strategies(body.get("strategies")),
        focus_keywords=[str(item) for item in keywords] if isinstance(keywords, list) else [],
        geography_filter=geography if isinstance(geography, str) else "",
        stage_filter=stage if isinstance(stage, str) and stage.strip() else settings.discovery_default_stage_filter,
        min_fit_score=max(0, min(100, min_fit_score)),
        max_results=max(1, min(max_results, settings.discovery_max_results_cap)),
    )


def _validate_strategies(value: Any) -> frozenset[DiscoveryStrategy]:
    """Missing or empty selects every strategy; unknown names are dropped."""
    if not isinstance(value, list) or not value:
        return frozenset(DiscoveryStrategy)
    valid = {strategy.value for strategy in DiscoveryStrategy}
    return frozenset(DiscoveryStrategy(item) for item in value if isinstance(item, str) and item in valid)


def _field(body: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in body:
            return body[key]
    return None


def _number(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)

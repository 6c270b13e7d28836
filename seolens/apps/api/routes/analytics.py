from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from seolens.apps.api.deps import get_pipeline
from seolens.domain.query import AnalyticsRequest
from seolens.services.analytics.pipeline import AnalyticsPipeline


logger = logging.getLogger(__name__)

router = APIRouter(tags=["analytics"])

# How often the route checks whether the client is still connected.
_DISCONNECT_POLL_S = 0.1


class AnalyticsQueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    session_id: str | None = Field(default=None, alias="sessionId")


def _bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "BAD_REQUEST", "message": message},
    )


@router.post("/ai/analytics")
async def run_analytics(
    payload: AnalyticsQueryRequest,
    http_request: Request,
    pipeline: AnalyticsPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    if not payload.message or not payload.message.strip():
        raise _bad_request("Message is required")
    if not payload.user_id:
        raise _bad_request("User ID is required")

    request_id = getattr(http_request.state, "request_id", None)
    analytics_request = AnalyticsRequest(
        message=payload.message.strip(),
        tenant_id=payload.user_id,
        session_id=payload.session_id,
    )
    task = asyncio.create_task(pipeline.run(analytics_request, request_id=request_id))
    try:
        while not task.done():
            if await http_request.is_disconnected():
                # Abandon the run; nothing has been persisted before the final stage.
                logger.info("analytics_client_disconnected request_id=%s", request_id)
                task.cancel()
                break
            await asyncio.wait({task}, timeout=_DISCONNECT_POLL_S)
    finally:
        if not task.done():
            task.cancel()
    # Raises CancelledError for abandoned runs and re-raises pipeline errors for the handlers.
    response = await task
    return jsonable_encoder(response.to_payload())

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from seolens.services.telemetry import counters, external_error_rate, p95_latency

router = APIRouter(tags=["health"])

# Window for the rolling latency and error-rate figures.
_WINDOW_S = 300


class HealthResponse(BaseModel):
    status: str
    counters: dict[str, int]
    p95_latency_ms: float | None = None
    external_error_rate: dict[str, float]


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        counters=counters(),
        p95_latency_ms=p95_latency(_WINDOW_S, path_prefix="/v1/ai"),
        external_error_rate=external_error_rate(_WINDOW_S),
    )

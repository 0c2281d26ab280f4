"""
Event ingest: puts events on the worker's input binding
"""

import logging
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from ..schemas.event import Event, EventBatch

logger = logging.getLogger("app")

router = APIRouter(tags=["Events"])

RETRY_AFTER_SECONDS = 2

def _backpressure(accepted: int) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "backpressure", "accepted": accepted, "retry_after": RETRY_AFTER_SECONDS},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)}
    )

@router.post("/events", summary="Submit one event")
async def ingest_event(event: Event, request: Request):
    bus = request.app.state.bus
    if not bus.publish(request.app.state.input_binding, event, {}):
        return _backpressure(0)
    return {"accepted": 1}

@router.post("/events/batch", summary="Submit a batch of events")
async def ingest_batch(batch: EventBatch, request: Request):
    bus = request.app.state.bus
    binding = request.app.state.input_binding
    accepted = 0
    for event in batch.events:
        if not bus.publish(binding, event, dict(batch.properties)):
            logger.warning("Batch truncated by backpressure", extra={
                "component": "api",
                "accepted": accepted,
                "submitted": len(batch.events)
            })
            return _backpressure(accepted)
        accepted += 1
    return {"accepted": accepted}

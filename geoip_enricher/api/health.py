from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])

@router.get("/health")
async def health(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "providers": state.providers.get_status(),
        "refresher": state.refresher.get_status(),
        "queues": state.bus.get_queue_stats()
    }

# Minimal probe for kube/docker HEALTHCHECKs
@router.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}

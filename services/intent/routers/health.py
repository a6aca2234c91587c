"""GET /health -- liveness plus a view of which backends came up."""

from fastapi import APIRouter, Request

from services.intent.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    state = request.app.state
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": settings.app_version,
            "redis": getattr(state, "redis", None) is not None,
            "database": getattr(state, "db", None) is not None,
        },
        "requestId": request.state.request_id,
    }

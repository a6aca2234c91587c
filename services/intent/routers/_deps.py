"""Shared dependencies for the intent routers."""
from fastapi import HTTPException, Request

from services.intent.pipeline import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    """The Pipeline built in lifespan. 503 until the app is fully started."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Pipeline not initialised."},
        )
    return pipeline


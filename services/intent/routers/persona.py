"""
Persona read / reset.

GET    /persona/{user_id}  dominant persona, all scores, behavior summary, profile
DELETE /persona/{user_id}  clear every persona score for the visitor
"""

from fastapi import APIRouter, Depends, Request

from services.intent.errors import StorageError
from services.intent.pipeline import Pipeline
from services.intent.routers._deps import get_pipeline

router = APIRouter(prefix="/persona", tags=["persona"])


@router.get("/{user_id}")
async def get_persona(
    user_id: str,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    return {
        "success": True,
        "data": await pipeline.resolver.full_analysis(user_id),
        "requestId": request.state.request_id,
    }


@router.delete("/{user_id}")
async def reset_persona(
    user_id: str,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    if not await pipeline.scores.reset(user_id):
        raise StorageError(f"persona reset failed for {user_id}")
    return {
        "success": True,
        "data": {"user_identifier": user_id, "reset": True},
        "requestId": request.state.request_id,
    }

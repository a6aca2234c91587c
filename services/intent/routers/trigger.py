"""
GET /trigger/{user_id} -- should the assistant open proactively right now?

?stats=true adds the gate diagnostics (score percentage, event count).
?suggest=true runs one assistant turn when the trigger fires and returns
its opener under "suggestion"; `page` is the visitor's current page.
"""

from fastapi import APIRouter, Depends, Query, Request

from services.intent.pipeline import Pipeline
from services.intent.routers._deps import get_pipeline

router = APIRouter(prefix="/trigger", tags=["trigger"])


@router.get("/{user_id}")
async def evaluate_trigger(
    user_id: str,
    request: Request,
    stats: bool = Query(default=False),
    suggest: bool = Query(default=False),
    page: str = Query(default="", max_length=300),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    decision = await pipeline.evaluate_trigger(user_id)
    data = decision.to_dict()
    if stats:
        data["stats"] = await pipeline.trigger.trigger_stats(user_id)
    if suggest and decision.trigger:
        data["suggestion"] = await pipeline.suggest_opener(user_id, page)
    return {
        "success": True,
        "data": data,
        "requestId": request.state.request_id,
    }

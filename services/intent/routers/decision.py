"""
POST /decision -- one assistant turn.

Rate limit: ai bucket. The reply is always HTTP 200: upstream trouble,
blocked visitors and malformed model output come back as
data.success=False with a Persian message the widget can show as-is.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator

from services.intent.inference.prompts import MAX_INPUT_CHARS
from services.intent.pipeline import Pipeline
from services.intent.routers._deps import get_pipeline

router = APIRouter(tags=["decision"])


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------

class DecisionRequest(BaseModel):
    user_identifier: str = Field(..., min_length=1, max_length=100)
    message: str = Field(default="", max_length=MAX_INPUT_CHARS * 2)
    current_page: str = Field(default="", max_length=500)
    current_element: str = Field(default="", max_length=500)
    user_role_context: str | None = Field(default=None, max_length=500)
    messages: list[dict[str, Any]] | None = Field(default=None, max_length=50)
    form_data: dict[str, Any] | None = None

    @field_validator("user_identifier")
    @classmethod
    def strip_user(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_identifier must not be empty")
        return stripped


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post("/decision")
async def generate_decision(
    body: DecisionRequest,
    request: Request,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    result = await pipeline.generate_decision(body.model_dump())
    return {
        "success": bool(result.get("success")),
        "data": result,
        "requestId": request.state.request_id,
    }

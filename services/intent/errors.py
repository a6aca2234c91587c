"""
Error taxonomy for the intent pipeline.

  ValidationError  -- missing / malformed required input (no user identifier,
                      malformed AI response). Caller returns a structured failure.
  UpstreamError    -- AI provider unreachable, non-200, or malformed body.
                      Mapped to the graceful Persian apology fallback.
  StorageError     -- score / event persistence failure. Non-fatal; the
                      operation reports False and the caller degrades.
  SecurityBlock    -- blocked visitor. Short-circuits before any AI or
                      storage work with a fixed "access restricted" reply.

Components catch at their own boundary and convert these into typed
result objects. Only routers ever turn them into HTTP errors.
"""

from __future__ import annotations


# User-facing strings. These are the only texts that may reach a visitor
# when something fails -- never raw upstream bodies or tracebacks.
GENERIC_APOLOGY = "متأسفانه در حال حاضر نمی‌توانم پاسخگوی شما باشم."
UPSTREAM_APOLOGY = "متأسفانه در حال حاضر امکان پاسخگویی وجود ندارد. لطفاً بعداً تلاش کنید."
ACCESS_RESTRICTED = "دسترسی شما به دستیار موقتاً محدود شده است."


class PipelineError(Exception):
    """Base class. Carries a machine-readable code and a user-safe message."""

    code = "PIPELINE_ERROR"
    user_message = GENERIC_APOLOGY

    def __init__(self, detail: str = "", *, code: str | None = None) -> None:
        super().__init__(detail or self.code)
        self.detail = detail
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.user_message}


class ValidationError(PipelineError):
    code = "VALIDATION_ERROR"


class UpstreamError(PipelineError):
    code = "UPSTREAM_ERROR"
    user_message = UPSTREAM_APOLOGY


class StorageError(PipelineError):
    code = "STORAGE_ERROR"


class SecurityBlock(PipelineError):
    code = "ACCESS_RESTRICTED"
    user_message = ACCESS_RESTRICTED

"""
Storefront intent service -- event ingestion, persona scoring, AI decisions, leads, tickets.

Entrypoint: uvicorn services.intent.main:app --host 0.0.0.0 --port 8000

Backends are optional at boot. Whatever fails to connect is left as None
on app.state and the dependent features degrade:

  redis        -> no rate limiting, no persona score cache
  asyncpg pool -> events / scores / action log report storage failures
  SA engine    -> /leads and /tickets answer 503
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from starlette.responses import JSONResponse

from services.intent.config import settings
from services.intent.context.knowledge import KnowledgeBase
from services.intent.db.engine import create_engine
from services.intent.errors import PipelineError, SecurityBlock, StorageError, UpstreamError, ValidationError
from services.intent.middleware.cors import setup_cors
from services.intent.middleware.rate_limit import RateLimitMiddleware
from services.intent.pipeline import build_pipeline
from services.intent.routers import decision, events, health, leads, persona, tickets, trigger

logger = logging.getLogger(__name__)

# Set in lifespan, read per request by the rate limiter
_redis_holder: dict = {"client": None}

# POST paths whose declared body size is checked before routing
_SIZE_LIMITED_PATHS = frozenset({"/events", "/events/batch"})


# ---------------------------------------------------------------------------
# Backend connections
# ---------------------------------------------------------------------------

async def _connect_redis() -> Any:
    if not settings.redis_url:
        return None
    try:
        client = aioredis.from_url(settings.redis_url, decode_responses=True, socket_connect_timeout=5)
        await client.ping()
    except Exception:
        logger.warning("redis unreachable at startup; rate limiting and score cache off", exc_info=True)
        return None
    return client


async def _connect_pool() -> asyncpg.Pool | None:
    if not settings.database_url:
        return None
    try:
        return await asyncpg.create_pool(settings.database_url, min_size=2, max_size=10, command_timeout=30)
    except Exception:
        logger.warning("asyncpg pool unavailable; event and score storage will fail soft", exc_info=True)
        return None


def _lead_engine() -> AsyncEngine | None:
    if not settings.database_url:
        return None
    try:
        return create_engine()
    except Exception:
        logger.warning("SA engine failed to init; lead endpoints disabled", exc_info=True)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_client = await _connect_redis()
    _redis_holder["client"] = redis_client

    sa_engine = _lead_engine()
    if sa_engine is not None:
        app.state.db_engine = sa_engine
        app.state.db_session_factory = async_sessionmaker(sa_engine, expire_on_commit=False)

    db_pool = await _connect_pool()
    http_client = httpx.AsyncClient(timeout=settings.ai_timeout_s)
    knowledge = KnowledgeBase(settings.knowledge_base_dir)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.db = db_pool
    app.state.http_client = http_client
    app.state.knowledge = knowledge
    app.state.pipeline = build_pipeline(db_pool, redis=redis_client, http_client=http_client, knowledge=knowledge)
    logger.info(
        "intent service up redis=%s pool=%s leads=%s ai_key=%s",
        redis_client is not None, db_pool is not None, sa_engine is not None, bool(settings.gemini_api_key),
    )

    yield

    await http_client.aclose()
    if db_pool is not None:
        await db_pool.close()
    if sa_engine is not None:
        await sa_engine.dispose()
    if redis_client is not None:
        await redis_client.aclose()
    _redis_holder["client"] = None


app = FastAPI(
    title="Storefront Intent API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

for module in (health, events, persona, trigger, decision, leads, tickets):
    app.include_router(module.router)


# ---------------------------------------------------------------------------
# Envelope helpers
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "requestId": _request_id(request),
        },
    )


def _declared_too_large(request: Request) -> bool:
    if request.method != "POST" or request.url.path not in _SIZE_LIMITED_PATHS:
        return False
    declared = request.headers.get("content-length", "")
    return declared.isdigit() and int(declared) > settings.events_request_max_bytes


# ---------------------------------------------------------------------------
# Middleware (last added runs outermost)
# ---------------------------------------------------------------------------

@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

    if _declared_too_large(request):
        response = _error_response(
            request, 413, "PAYLOAD_TOO_LARGE",
            f"Request body exceeds {settings.events_request_max_bytes} bytes.",
        )
    else:
        response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


class _LazyRateLimitMiddleware(RateLimitMiddleware):
    """Reads the Redis client from _redis_holder on every request, since it only exists after lifespan."""

    def __init__(self, app):
        super().__init__(app, redis_client=None)

    async def dispatch(self, request, call_next):
        self.redis = _redis_holder.get("client")
        return await super().dispatch(request, call_next)


app.add_middleware(_LazyRateLimitMiddleware)
setup_cors(app)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

def _detail(exc, default_code: str, default_message: str) -> tuple[str, str]:
    detail = getattr(exc, "detail", None)
    if isinstance(detail, dict):
        return detail.get("code", default_code), detail.get("message", default_message)
    return default_code, default_message


_PIPELINE_STATUS: dict[type, int] = {
    ValidationError: 422,
    SecurityBlock: 403,
    UpstreamError: 502,
    StorageError: 503,
}


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = _PIPELINE_STATUS.get(type(exc), 500)
    logger.warning("pipeline error code=%s detail=%s path=%s", exc.code, exc.detail, request.url.path)
    return _error_response(request, status_code, exc.code, exc.user_message)


@app.exception_handler(404)
async def not_found_handler(request: Request, exc) -> JSONResponse:
    code, message = _detail(exc, "NOT_FOUND", "Resource not found.")
    return _error_response(request, 404, code, message)


@app.exception_handler(RequestValidationError)
@app.exception_handler(422)
async def validation_error_handler(request: Request, exc) -> JSONResponse:
    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid')}" if location else "Validation error."
    else:
        message = str(exc.detail) if hasattr(exc, "detail") else "Validation error."
    return _error_response(request, 422, "VALIDATION_ERROR", message)


@app.exception_handler(503)
async def unavailable_handler(request: Request, exc) -> JSONResponse:
    code, message = _detail(exc, "SERVICE_UNAVAILABLE", "Service temporarily unavailable.")
    return _error_response(request, 503, code, message)


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    logger.error("unhandled error path=%s", request.url.path, exc_info=exc)
    return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")

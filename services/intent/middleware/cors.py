"""CORS for the storefront widget, which calls this API from the shop's own origin."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.intent.config import settings

EXPOSED_HEADERS = [
    "X-Request-ID",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
]


def setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["content-type", "x-request-id", "x-user-identifier"],
        expose_headers=EXPOSED_HEADERS,
        max_age=600,
    )

import json
import logging
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .core.config import get_settings, setup_logging
from .handlers import HANDLERS, PROBE_HANDLERS, Handler
from .masking import mask_password

# Configuration (loaded once)
settings = get_settings()

logger = setup_logging(settings.log_level)

FUNCTION_PREFIXES = ("/.netlify/functions", "/api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application"""
    logger.info(f"Starting mongo-uri-doctor on {settings.server_host}:{settings.server_port}")
    if settings.mongo_uri:
        logger.info(f"✓ Connection string configured: {mask_password(settings.mongo_uri)}")
    else:
        logger.warning("⚠ MONGO_URI is not set - diagnostic functions will answer 500")
    logger.info(f"Probe timeout: {settings.probe_timeout_ms}ms, rate limit: {settings.probe_rate_limit}")
    logger.info(f"CORS origins: {list(settings.cors_origins)}")

    yield

    logger.info("Shutting down mongo-uri-doctor")


# Rate limiting for functions that open database connections
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="mongo-uri-doctor",
    description="Connection string diagnostics for MongoDB",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["accept", "content-type", "origin"],
)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(f"Rate limit exceeded for {request.client.host}: {exc.detail}")
    return Response(
        content=json.dumps({
            "detail": "Too many requests. Please try again later.",
            "error": "rate_limit_exceeded"
        }),
        status_code=429,
        media_type="application/json"
    )


async def request_to_event(request: Request) -> Dict[str, Any]:
    """Translate a FastAPI request into a serverless platform event."""
    body = await request.body()
    return {
        "httpMethod": request.method,
        "path": request.url.path,
        "headers": dict(request.headers),
        "queryStringParameters": dict(request.query_params),
        "body": body.decode("utf-8", errors="replace") if body else None,
    }


async def invoke_handler(name: str, handler: Handler, request: Request) -> Response:
    """Run a handler in the threadpool (probes block) and return its response."""
    event = await request_to_event(request)
    context = SimpleNamespace(function_name=name, function_version="$LATEST")
    try:
        result = await run_in_threadpool(handler, event, context, settings=settings)
    except Exception as e:
        logger.error(f"Function {name} failed: {e}", exc_info=True)
        return Response(
            content=json.dumps({"error": "Internal server error"}),
            status_code=500,
            media_type="application/json"
        )

    headers = dict(result.get("headers") or {})
    media_type = headers.pop("Content-Type", None)
    return Response(
        content=result.get("body") or "",
        status_code=result.get("statusCode", 200),
        headers=headers,
        media_type=media_type
    )


def register_function(name: str, handler: Handler):
    """Expose a handler under every function prefix."""
    async def endpoint(request: Request):
        return await invoke_handler(name, handler, request)

    # slowapi keys limits on the function name
    endpoint.__name__ = f"function_{name.replace('-', '_')}"
    if name in PROBE_HANDLERS:
        endpoint = limiter.limit(settings.probe_rate_limit)(endpoint)

    for prefix in FUNCTION_PREFIXES:
        app.add_api_route(f"{prefix}/{name}", endpoint, methods=["GET", "POST", "OPTIONS"])


for _name, _handler in HANDLERS.items():
    register_function(_name, _handler)


@app.get("/health")
async def health_check():
    """Health check endpoint - does not touch the database"""
    return {
        "status": "ok",
        "service": "mongo-uri-doctor",
        "uri_configured": bool(settings.mongo_uri)
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "mongo-uri-doctor",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "functions": [f"/api/{name}" for name in HANDLERS]
        }
    }

#!/usr/bin/env python3
"""
Travel Notes — Backend API (FastAPI, async)

- Users register, write travel notes about destinations, and pick attractions
  from AI-generated suggestions (Claude + Pexels photos).
- AsyncAnthropic and a shared httpx.AsyncClient keep all outbound I/O off
  worker threads; SQLAlchemy stays synchronous behind run_in_threadpool.
- Suggestion cache, ownership cache and the Pexels rate limiter are created
  once per process in startup() and reach handlers via dependencies.py.
"""

import logging
import os

import httpx
from anthropic import AsyncAnthropic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from attractions import attractions_router
from auth import auth_router, set_auth_cookie
from cache import OwnershipCache, SuggestionCache
from config import (
    ENV_NAME,
    OWNERSHIP_CACHE_TTL_SECONDS,
    PEXELS_MAX_PER_HOUR,
    PEXELS_WINDOW_SECONDS,
    SUGGESTION_CACHE_TTL_SECONDS,
    SUGGESTION_MODEL,
)
from database import check_db, init_db
from errors import ApiError
from images import ImageClient
from notes import notes_router
from rate_limiter import RateLimiter
from redis_client import get_redis

# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(title='Travel Notes API', docs_url=None, redoc_url=None)

# ── CORS ─────────────────────────────────────────────────────────────────────
_cors_origins = [
    o.strip()
    for o in os.getenv(
        'CORS_ORIGINS', 'http://localhost:4321,http://127.0.0.1:4321'
    ).split(',')
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


# ── Security & caching headers ────────────────────────────────────────────────
@app.middleware('http')
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options']        = 'DENY'
    response.headers['Referrer-Policy']        = 'strict-origin-when-cross-origin'
    # API responses are per-user; no shared cache or CDN may keep them.
    response.headers['Cache-Control']          = 'no-store'
    if ENV_NAME == 'prod':
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
    return response


# ── Sliding JWT cookie ────────────────────────────────────────────────────────
@app.middleware('http')
async def slide_auth_cookie(request: Request, call_next):
    """Re-issue the auth cookie with a fresh TTL after each authenticated request."""
    response = await call_next(request)
    token = getattr(request.state, 'slide_token', None)
    if token:
        set_auth_cookie(response, token)
    return response


# ── Error shapes ──────────────────────────────────────────────────────────────
# Every error body carries "error"; ApiError subclasses add a machine code.
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code,
                        content={'error': exc.message, 'code': exc.code})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={'error': exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {'loc': list(err.get('loc', ())), 'msg': err.get('msg', ''), 'type': err.get('type', '')}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={'error': 'Invalid input data', 'code': 'VALIDATION_ERROR', 'details': details},
    )


# ── Router registration ───────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(notes_router)
app.include_router(attractions_router)

# ---------------------------------------------------------------------------
# Startup / shutdown
# ---------------------------------------------------------------------------

@app.on_event('startup')
async def startup():
    await run_in_threadpool(init_db)

    r = get_redis()
    app.state.http_client = httpx.AsyncClient(
        timeout=10,
        headers={'User-Agent': 'TravelNotes/1.0'},
    )
    app.state.suggestion_cache = SuggestionCache(SUGGESTION_CACHE_TTL_SECONDS, redis_client=r)
    app.state.ownership_cache  = OwnershipCache(OWNERSHIP_CACHE_TTL_SECONDS, redis_client=r)
    app.state.image_client = ImageClient(
        app.state.http_client,
        os.getenv('PEXELS_API_KEY', '').strip() or None,
        RateLimiter(PEXELS_MAX_PER_HOUR, PEXELS_WINDOW_SECONDS, redis_client=r),
    )

    app.state.llm_client = None
    if os.getenv('ANTHROPIC_API_KEY', '').strip():
        app.state.llm_client = AsyncAnthropic()
    else:
        logger.warning('ANTHROPIC_API_KEY not set — attraction suggestions will be refused')


@app.on_event('shutdown')
async def shutdown():
    http_client = getattr(app.state, 'http_client', None)
    if http_client is not None:
        await http_client.aclose()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get('/health')
async def health():
    db_ok = await run_in_threadpool(check_db)
    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            'status':   'ok' if db_ok else 'degraded',
            'database': 'ok' if db_ok else 'unavailable',
            'model':    SUGGESTION_MODEL,
        },
    )


if __name__ == '__main__':
    import uvicorn

    uvicorn.run('app:app', host='0.0.0.0', port=int(os.getenv('PORT', '8000')), reload=ENV_NAME == 'local')

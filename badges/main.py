"""
FastAPI application: CI and cross-browser status badges.

Endpoints (JSON consumed by the badge renderer):
    GET /health                                   → {"status": "ok"}
    GET /travis/{user}/{repo}                     → StatusResponse
    GET /travis/{user}/{repo}/sauce[/{sauce_user}] → BrowserMatrixResponse
    GET /sauce/{user}                             → BrowserMatrixResponse

Origin failures degrade to an "error" badge instead of an HTTP error.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from badges.cache import ResponseCache
from badges.http_client import CachedHttpClient, FetchError
from badges.logging_config import bind_request, setup_logging
from badges.models import (
    BrowserMatrixResponse,
    ErrorResponse,
    FeedQuery,
    JobFilters,
    SauceSource,
    StatusResponse,
    TravisSauceSource,
    TravisSource,
)
from badges.predictor import BranchPredictor
from badges.service import BadgeService
from badges.settings import settings
from badges.status import DEFAULT_COLOR

logger = logging.getLogger("badges.main")


# ── Shared state ───────────────────────────────────────────────
class _State:
    """Mutable container so lifespan and endpoints share instances."""
    cache: ResponseCache | None = None
    http: CachedHttpClient | None = None
    service: BadgeService | None = None


state = _State()


def _ensure_state() -> BadgeService:
    """Lazily initialise cache + clients for TestClient compatibility."""
    if state.cache is None:
        state.cache = ResponseCache()
    if state.http is None:
        state.http = CachedHttpClient(state.cache)
    if state.service is None:
        state.service = BadgeService(state.http, BranchPredictor())
    return state.service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage cache and client lifetime."""
    setup_logging(settings.log_level, settings.log_format)

    state.cache = ResponseCache()
    state.http = CachedHttpClient(state.cache)
    state.service = BadgeService(state.http, BranchPredictor())

    logger.info(
        "Service started (cache_max_entries=%d, sauce_auth=%s)",
        state.cache.max_entries,
        bool(settings.sauce_username and settings.sauce_access_key),
    )
    yield

    if state.http:
        await state.http.aclose()
    logger.info("Service shutdown")


app = FastAPI(
    title="Status Badges",
    version="1.0.0",
    lifespan=lifespan,
)


# ── Middleware: request_id + timing ────────────────────────────
@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    rid = bind_request(request.url.path)
    t0 = time.perf_counter()
    response = await call_next(request)
    elapsed = round((time.perf_counter() - t0) * 1000, 1)
    response.headers["X-Request-Id"] = rid
    if request.url.path != "/health":
        response.headers["Cache-Control"] = (
            f"public, must-revalidate, max-age={settings.badge_max_age}"
        )
    logger.info(
        "%s %s → %s (%.1f ms)",
        request.method, request.url.path, response.status_code, elapsed,
    )
    return response


# ── Error helper ───────────────────────────────────────────────
def _error_response(status: int, message: str) -> JSONResponse:
    body = ErrorResponse(message=message)
    return JSONResponse(status_code=status, content=body.model_dump())


async def _browser_matrix(
    source: SauceSource | TravisSauceSource, filters: JobFilters
) -> BrowserMatrixResponse | JSONResponse:
    service = _ensure_state()
    try:
        browsers = await service.get_browser_matrix(source, filters)
    except ValueError as exc:
        return _error_response(400, str(exc))
    except FetchError as exc:
        logger.warning("Browser matrix failed: %s", exc)
        return BrowserMatrixResponse(status="error")
    if not browsers:
        return BrowserMatrixResponse(status="unknown")
    return BrowserMatrixResponse(status="ok", browsers=browsers)


# ── Endpoints ──────────────────────────────────────────────────
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/travis/{user}/{repo}", response_model=StatusResponse)
async def travis_status(
    user: str,
    repo: str,
    branch: str = "master",
    label: str | None = None,
    env: str | None = None,
):
    service = _ensure_state()
    label = label or repo
    source = TravisSource(user=user, repo=repo, branch=branch)
    try:
        result = await service.get_status(source, JobFilters(env=env))
    except ValueError as exc:
        return _error_response(400, str(exc))
    except FetchError as exc:
        logger.warning("Travis status failed for %s/%s: %s", user, repo, exc)
        return StatusResponse(label=label, status="error", color=DEFAULT_COLOR)
    return StatusResponse(label=label, status=result.status, color=result.color)


@app.get("/travis/{user}/{repo}/sauce", response_model=BrowserMatrixResponse)
@app.get("/travis/{user}/{repo}/sauce/{sauce_user}", response_model=BrowserMatrixResponse)
async def travis_sauce_browsers(
    user: str,
    repo: str,
    sauce_user: str | None = None,
    branch: str = "master",
    name: str | None = None,
    tag: str | None = None,
):
    source = TravisSauceSource(
        travis=TravisSource(user=user, repo=repo, branch=branch),
        sauce_user=sauce_user or user,
    )
    return await _browser_matrix(source, JobFilters(name=name, tag=tag))


@app.get("/sauce/{user}", response_model=BrowserMatrixResponse)
async def sauce_browsers(
    user: str,
    build: str | None = None,
    from_: int | None = Query(default=None, alias="from"),
    to: int | None = None,
    skip: int = 0,
    name: str | None = None,
    tag: str | None = None,
):
    # Without `build`, the latest build in the feed is used.
    source = SauceSource(
        user=user,
        build=build or None,
        query=FeedQuery(from_=from_, to=to, skip=skip),
    )
    return await _browser_matrix(source, JobFilters(name=name, tag=tag))

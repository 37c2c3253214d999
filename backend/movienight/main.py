"""
Movie Night API — FastAPI application entry point.

Routers are registered here. Each service lives in movienight/api/.
Every error leaves the API as {"error": message}.
"""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from movienight.api import admin, auth, cycles, items, meetings, movies, votes
from movienight.api import free_evenings as free_evenings_api
from movienight.core.config import settings
from movienight.core.logging_config import configure_logging
from movienight.db.session import ping_database
from movienight.services.ai_suggestions import RecommendationMatchError
from movienight.services.llm_client import LLMConfigError, LLMResponseError
from movienight.services.tmdb_client import TMDBConfigError, TMDBUpstreamError

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Movie Night API",
    description="Backend for the movie-night group app.",
    version="1.0.0",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth.router,              prefix="/api/auth",           tags=["auth"])
app.include_router(movies.router,            prefix="/api/movies",         tags=["movies"])
app.include_router(cycles.router,            prefix="/api/cycles",         tags=["cycles"])
app.include_router(votes.router,             prefix="/api/votes",          tags=["votes"])
app.include_router(items.router,             prefix="/api/items",          tags=["items"])
app.include_router(admin.router,             prefix="/api/admin",          tags=["admin"])
app.include_router(meetings.router,          prefix="/api/movie-history",  tags=["movie-history"])
app.include_router(free_evenings_api.router, prefix="/api/free-evenings",  tags=["free-evenings"])


# ── Error envelope ────────────────────────────────────────────────────────────

def _error(status_code: int, message: str, /, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures are plain 400s with the first message."""
    errors = exc.errors()
    if not errors:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request")
    first = errors[0]
    message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    if first.get("type") in ("missing", "uuid_parsing", "enum", "date_from_datetime_inexact"):
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        if field:
            message = f"{field}: {message}"
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database connection failed: %s", exc)
    return _error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database connection failed",
        message=str(exc.orig) if exc.orig is not None else str(exc),
    )


@app.exception_handler(TMDBConfigError)
@app.exception_handler(TMDBUpstreamError)
@app.exception_handler(LLMConfigError)
@app.exception_handler(LLMResponseError)
@app.exception_handler(RecommendationMatchError)
async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Internal server error")


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check() -> dict:
    """Liveness probe. 503 (via the database handler) when the database is unreachable."""
    ping_database()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": settings.APP_ENV,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("movienight.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.is_dev)

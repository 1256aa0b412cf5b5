"""
Team Insights API

Main FastAPI application: contributor metrics, PR throughput, change
timeseries, deployment frequency and identity merges for GitHub repositories.
"""

import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session

from . import __version__
from .config import ALLOWED_ORIGINS, DEFAULT_RATE_LIMIT
from .database import get_db, init_db
from .dependencies import limiter
from .domain.repository import RepositoryUrl
from .errors import ApplicationError, DataLoadError, MergeError
from .logging_config import setup_logging
from .routers import analysis, merge
from .schemas import CacheInvalidateRequest, CacheInvalidateResponse, HealthResponse
from .services.cache import DataCache

setup_logging()
logger = logging.getLogger(__name__)

init_db()

app = FastAPI(
    title="Team Insights API",
    description="Engineering team analytics for GitHub repositories",
    version=__version__,
)

app.state.limiter = limiter


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please try again later."},
    )


@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code.value} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code.value} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.to_dict()})


@app.exception_handler(DataLoadError)
async def data_load_error_handler(request: Request, exc: DataLoadError):
    return await application_error_handler(request, ApplicationError.from_data_load_error(exc))


@app.exception_handler(MergeError)
async def merge_error_handler(request: Request, exc: MergeError):
    logger.info(f"Merge rejected ({exc.code.value}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.to_dict()})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(analysis.router)
app.include_router(merge.router)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/", response_model=HealthResponse)
def read_root():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__, "message": "Team Insights API"}


@app.post("/cache/invalidate", response_model=CacheInvalidateResponse)
@limiter.limit(DEFAULT_RATE_LIMIT)
def invalidate_cache(request: Request, body: CacheInvalidateRequest, db: Session = Depends(get_db)):
    """Drop cached GitHub data for one repository, or everything with clear_all."""
    cache = DataCache(db)
    if body.clear_all:
        removed = cache.clear_all()
    elif body.repository_url:
        try:
            repo_url = RepositoryUrl.parse(body.repository_url)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        removed = cache.invalidate(repo_url.full_name)
    else:
        raise HTTPException(status_code=400, detail="Provide repository_url or set clear_all")

    return CacheInvalidateResponse(status="invalidated", removed_entries=removed)

"""
FastAPI application for the SpaceNexus response cache.

Lifespan manages the httpx client, response cache and source fetcher.
Routes: /v1/sources, /v1/sources/{key}, /v1/cache/*, /health.
Optional API key authentication on /v1/* endpoints.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Security
from fastapi.security import APIKeyHeader

from spacenexus.cache import ResponseCache
from spacenexus.config import AppConfig, load_config
from spacenexus.fetcher import SourceFetcher
from spacenexus.models import (
    CacheStatsResponse,
    CleanupResponse,
    DeleteResponse,
    SourceResponse,
    SourcesResponse,
)
from spacenexus.upstream_client import UpstreamClient

logger = logging.getLogger(__name__)

# Global references set during lifespan
_fetcher: Optional[SourceFetcher] = None
_cache: Optional[ResponseCache] = None
_config: Optional[AppConfig] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config, create HTTP client, cache, fetcher."""
    global _fetcher, _cache, _config

    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _config = load_config()
    logger.info(
        "Loaded config: %d sources, cleanup_interval=%ss",
        len(_config.sources),
        _config.cleanup_interval,
    )

    cache = ResponseCache(cleanup_interval=_config.cleanup_interval)
    _cache = cache
    try:
        async with httpx.AsyncClient() as http_client:
            client = UpstreamClient(http_client, timeout=_config.upstream_timeout)
            _fetcher = SourceFetcher(config=_config, client=client, cache=cache)
            logger.info("SpaceNexus cache ready")
            yield
    finally:
        cache.stop()
        _fetcher = None
        _cache = None
        _config = None


app = FastAPI(
    title="SpaceNexus Cache API",
    version="1.0.0",
    description="""
Cached access to upstream space-industry data feeds.

## Features

- **Fresh reads**: upstream responses are cached per source with named TTLs
- **Resilient**: serves the last stored response when an upstream is down
- **Observable**: cache statistics, manual invalidation and cleanup

## Authentication

Optional API key via `X-API-Key` header. The `/health` endpoint is always unauthenticated.
    """.strip(),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "sources", "description": "Upstream data served through the cache"},
        {"name": "cache", "description": "Cache statistics and administration"},
        {"name": "health", "description": "Service health check"},
    ],
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> None:
    """Check API key if one is configured."""
    if _config is None or _config.api_key is None:
        return
    if api_key != _config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def _require_fetcher() -> SourceFetcher:
    if _fetcher is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _fetcher


def _require_cache() -> ResponseCache:
    if _cache is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _cache


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", tags=["health"], summary="Health check")
async def health():
    """Always returns HTTP 200. No authentication required."""
    return {"status": "healthy"}


@app.get(
    "/v1/sources",
    response_model=SourcesResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["sources"],
    summary="Get all sources",
)
async def get_sources():
    """
    Return every configured source.

    Each item carries a status: `ok` (fresh upstream or cache data),
    `stale` (upstream failed, last stored data served, see `stale_as_of`)
    or `error` (upstream failed and nothing was cached).
    """
    return await _require_fetcher().get_all()


@app.get(
    "/v1/sources/{key}",
    response_model=SourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["sources"],
    summary="Get single source",
    responses={404: {"description": "Source key not found in configuration"}},
)
async def get_source(key: str):
    """Return a single configured source by its config key."""
    item = await _require_fetcher().get_source(key)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Source '{key}' not found")
    return item


@app.get(
    "/v1/cache/stats",
    response_model=CacheStatsResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["cache"],
    summary="Cache statistics",
)
async def cache_stats():
    """Entry count, hit/miss counters, hit rate and per-entry staleness."""
    return CacheStatsResponse.from_stats(_require_cache().get_stats())


@app.delete(
    "/v1/cache/{key}",
    response_model=DeleteResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["cache"],
    summary="Delete one cache entry",
)
async def cache_delete(key: str):
    deleted = _require_cache().delete(key)
    if deleted:
        logger.info("Deleted cache entry %s", key)
    return DeleteResponse(key=key, deleted=deleted)


@app.post(
    "/v1/cache/clear",
    response_model=CacheStatsResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["cache"],
    summary="Clear the cache",
)
async def cache_clear():
    """Remove all entries and reset hit/miss counters."""
    cache = _require_cache()
    cache.clear()
    logger.info("Cache cleared")
    return CacheStatsResponse.from_stats(cache.get_stats())


@app.post(
    "/v1/cache/cleanup",
    response_model=CleanupResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["cache"],
    summary="Run cleanup now",
)
async def cache_cleanup():
    """Evict entries older than 10x their TTL without waiting for the timer."""
    cache = _require_cache()
    removed = cache.cleanup()
    return CleanupResponse(removed=removed, size=cache.get_stats().size)

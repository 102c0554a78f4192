"""
Source fetcher: orchestrates upstream client and response cache.

For each configured source, serves fresh cached data when available,
otherwise fetches upstream and caches the result. When the upstream
fails, the last stored response is served instead (marked stale).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from spacenexus.cache import ResponseCache
from spacenexus.config import AppConfig, SourceConfig
from spacenexus.models import (
    ErrorCode,
    ErrorDetail,
    SourceResponse,
    SourcesResponse,
    Status,
)
from spacenexus.upstream_client import UpstreamClient, UpstreamError

logger = logging.getLogger(__name__)


class SourceFetcher:
    """Produces SourceResponse objects for configured sources."""

    def __init__(
        self, config: AppConfig, client: UpstreamClient, cache: ResponseCache
    ) -> None:
        self._config = config
        self._client = client
        self._cache = cache

    async def get_all(self) -> SourcesResponse:
        """Fetch all configured sources."""
        now = datetime.now(timezone.utc)
        items = []
        for source in self._config.sources:
            items.append(await self._get_item(source))
        return SourcesResponse(as_of=now, items=items)

    async def get_source(self, key: str) -> Optional[SourceResponse]:
        """Fetch a single source by key. Returns None if key not found."""
        source = self._config.get_source(key)
        if source is None:
            return None
        return await self._get_item(source)

    async def _get_item(self, source: SourceConfig) -> SourceResponse:
        base = {"key": source.key, "label": source.label}

        # 1. Fresh cache
        cached = self._cache.get(source.key)
        if cached is not None:
            return SourceResponse(**base, status=Status.ok, cached=True, data=cached)

        # 2. Upstream
        try:
            data = await self._client.fetch_json(source.url, params=source.params)
        except UpstreamError as exc:
            logger.warning("Upstream error for %s: %s", source.key, exc)
            return self._handle_upstream_error(exc, source, base)

        # 3. Remember it for next time and for outages. A null body is not
        # cached since get() could not tell it apart from a miss.
        if data is not None:
            self._cache.set(source.key, data, source.ttl_ms)
        return SourceResponse(**base, status=Status.ok, data=data)

    def _handle_upstream_error(
        self, exc: UpstreamError, source: SourceConfig, base: dict
    ) -> SourceResponse:
        """Serve the last stored response if there is one, else an error."""
        stale = self._cache.get_stale(source.key)
        if stale is not None:
            stored_at = datetime.fromtimestamp(stale.stored_at / 1000, tz=timezone.utc)
            if stale.is_stale:
                logger.info(
                    "Serving stale data for %s stored at %s",
                    source.key,
                    stored_at.isoformat(),
                )
            return SourceResponse(
                **base,
                status=Status.stale if stale.is_stale else Status.ok,
                cached=True,
                data=stale.value,
                stale_as_of=stored_at if stale.is_stale else None,
            )

        error_code = ErrorCode.upstream_unreachable
        if exc.status_code == 429:
            error_code = ErrorCode.upstream_rate_limited

        return SourceResponse(
            **base,
            status=Status.error,
            error=ErrorDetail(code=error_code, message=str(exc)),
        )

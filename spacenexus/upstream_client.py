"""
Async client for upstream JSON APIs.

Thin wrapper around httpx. Raises UpstreamError on failures so callers
can fall back to cached data.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """Raised when an upstream API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamClient:
    """Fetches JSON documents from upstream data providers."""

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self._http = http_client
        self._timeout = timeout

    async def fetch_json(
        self,
        url: str,
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        GET `url` and return the decoded JSON body.

        Raises UpstreamError on connection errors, non-200 responses and
        bodies that are not valid JSON.
        """
        try:
            response = await self._http.get(
                url, params=params, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            logger.error("Upstream request failed: %s %s -> %s", "GET", url, exc)
            raise UpstreamError(f"Connection error: {exc}") from exc

        if response.status_code == 429:
            raise UpstreamError("Rate limited by upstream", status_code=429)

        if response.status_code != 200:
            raise UpstreamError(
                f"Upstream returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            logger.error("Upstream returned invalid JSON: %s", url)
            raise UpstreamError(f"Invalid JSON from upstream: {exc}") from exc

"""
Async HTTP access to the origin APIs, routed through the response cache.

Features:
- httpx.AsyncClient with configurable timeouts.
- Every request is keyed on (URL, method, headers, auth) and coalesced by
  ``ResponseCache``; the query string must already be part of the URL.
- GET resolves to the decoded JSON body, HEAD to the response headers.
- No retries: failures surface to the caller and are evicted from the cache.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from badges.cache import ResponseCache, TTLPolicy
from badges.settings import settings

logger = logging.getLogger("badges.http_client")


# ── Custom exceptions ──────────────────────────────────────────
class FetchError(Exception):
    """Base for failures talking to an origin API."""


class TransportError(FetchError):
    """Connection, DNS or timeout failure before a response arrived."""


class OriginError(FetchError):
    """The origin answered with status >= 400."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(FetchError):
    """The response body wasn't the JSON we expected."""


# ── Client ──────────────────────────────────────────────────────
class CachedHttpClient:
    """Read-only HTTP client whose responses live in a shared ``ResponseCache``."""

    def __init__(
        self,
        cache: ResponseCache,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cache = cache
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=settings.http_connect_timeout,
                read=settings.http_read_timeout,
                write=settings.http_read_timeout,
                pool=settings.http_read_timeout,
            ),
            follow_redirects=True,
        )

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        ttl: TTLPolicy = None,
    ) -> Any:
        """Fetch ``url`` through the cache.

        ``ttl`` is handed to ``ResponseCache.fetch`` unchanged, so it may be
        a callable that inspects the decoded body.
        """
        method = method.upper()
        key = ResponseCache.make_key(
            url, method, headers=headers or {}, auth=auth, gzip=True
        )

        async def operation() -> Any:
            return await self._send(method, url, headers=headers, auth=auth)

        return await self.cache.fetch(key, operation, ttl, label=url)

    async def get_json(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        ttl: TTLPolicy = None,
    ) -> Any:
        return await self.request(url, headers=headers, auth=auth, ttl=ttl)

    async def head(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        ttl: TTLPolicy = None,
    ) -> dict[str, str]:
        return await self.request(url, method="HEAD", headers=headers, ttl=ttl)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None,
        auth: tuple[str, str] | None,
    ) -> Any:
        try:
            resp = await self._client.request(
                method,
                url,
                headers={"Accept-Encoding": "gzip", **(headers or {})},
                auth=auth,
            )
        except httpx.RequestError as exc:
            logger.warning("Request failed: %s %s: %s", method, url, exc)
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise OriginError(
                f"{method} {url} returned {resp.status_code}",
                status_code=resp.status_code,
            )

        if method == "HEAD":
            return dict(resp.headers)

        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(f"{method} {url} returned malformed JSON") from exc

    async def aclose(self) -> None:
        await self._client.aclose()

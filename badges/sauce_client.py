"""
Sauce Labs REST client for job results.

The Sauce API doesn't know about builds beyond each job's free-form
``build`` field: you can't ask for the latest build or filter by one. It
doesn't know about branches either, so if CI runs Sauce tests for several
branches, ``get_latest_build_jobs`` may pick up any of them; pass an
explicit build number (or use ``get_travis_build_jobs``) instead.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from badges.cache import ONE_DAY, TTLPolicy
from badges.feed import BuildMatcher, PagedFeedWalker, StopPredicate
from badges.http_client import CachedHttpClient, DecodeError
from badges.models import FeedQuery, SauceJob, TravisBuild
from badges.settings import settings

logger = logging.getLogger("badges.sauce_client")


def feed_ttl(query: FeedQuery, now: float | None = None) -> Callable[[Any], float | None]:
    """TTL policy for a feed page: long TTL when ``to`` is over a day old."""

    def policy(_body: Any) -> float | None:
        if query.to is None:
            return None
        current = time.time() if now is None else now
        if current - query.to > ONE_DAY:
            return settings.old_feed_ttl
        return None

    return policy


class SauceClient:
    """Sauce Labs jobs for one account."""

    def __init__(
        self,
        user: str,
        http: CachedHttpClient,
        page_size: int | None = None,
    ) -> None:
        self.user = user
        self.base_url = f"{settings.sauce_api_base}/{user}"
        self._http = http
        self._walker = PagedFeedWalker(self._fetch_page, page_size)
        self._matcher = BuildMatcher(self._walker)

    def get_url(self, path: str, params: dict[str, Any] | None = None) -> str:
        # The query string must be part of the cache key, so it goes in the URL.
        return str(httpx.URL(f"{self.base_url}{path}", params=params or None))

    async def get(
        self, path: str, params: dict[str, Any] | None = None, ttl: TTLPolicy = None
    ) -> Any:
        auth = None
        if settings.sauce_username and settings.sauce_access_key:
            auth = (settings.sauce_username, settings.sauce_access_key)
        return await self._http.get_json(
            self.get_url(path, params),
            headers={"X-RateLimit-Enable": "false"},
            auth=auth,
            ttl=ttl,
        )

    async def _fetch_page(self, query: FeedQuery) -> list[SauceJob]:
        body = await self.get("/jobs", query.params(), ttl=feed_ttl(query))
        if not isinstance(body, list):
            raise DecodeError(f"Expected a list of jobs for {self.user}")
        try:
            return [SauceJob.model_validate(record) for record in body]
        except ValidationError as exc:
            raise DecodeError(f"Malformed job in feed for {self.user}: {exc}") from exc

    async def get_jobs(
        self, query: FeedQuery, until: StopPredicate | None = None
    ) -> list[SauceJob]:
        """Fetch jobs matching ``query``.

        Without ``until`` this is a single request. With it, pages are
        walked until ``until(all_jobs, page_jobs)`` is true or a short page
        arrives.
        """
        if until is None:
            return await self._fetch_page(query)
        return await self._walker.walk(query, until)

    async def get_latest_build_jobs(self, query: FeedQuery | None = None) -> list[SauceJob]:
        """Jobs of the build of the most recent job with a ``build`` set.

        Assumes builds don't run in parallel.
        """
        return await self.get_build_jobs(None, query)

    async def get_build_jobs(
        self, build: str | None, query: FeedQuery | None = None
    ) -> list[SauceJob]:
        """Jobs whose ``build`` equals ``build``, or the latest build's if None.

        Set ``from``/``to`` in ``query`` to find older builds; otherwise the
        build is only found among the latest results.
        """
        return await self._matcher.match_build(build, query or FeedQuery())

    async def get_travis_build_jobs(
        self, build: TravisBuild, build_number: str | None = None
    ) -> list[SauceJob]:
        """Sauce jobs for a Travis build.

        ``build_number`` defaults to the Travis build number, which many Sauce
        integrations report; pass it when yours reports the build id or a
        custom string. The feed is searched within the time span of the
        build, taking every job's start/finish into account since the
        build's own timestamps don't cover retries.
        """
        target = build_number or build.build.number
        starts = [build.build.started_at] + [job.started_at for job in build.jobs]
        ends = [build.build.finished_at] + [job.finished_at for job in build.jobs]
        starts = [t for t in starts if t is not None]
        ends = [t for t in ends if t is not None]

        if not starts:
            logger.warning(
                "Build %s has no start time; scanning latest jobs", build.build.id
            )
            return await self.get_build_jobs(target)

        padding = settings.build_window_padding
        # No finish time means the build is still running.
        end = max(ends) if ends else datetime.now(timezone.utc)
        query = FeedQuery(
            from_=int(min(starts).timestamp()) - padding,
            to=int(end.timestamp()) + padding,
        )
        return await self.get_build_jobs(target, query)

"""
Walking the Sauce Labs jobs feed.

The feed has no pagination cursor, only ``skip``/``limit``. New jobs push
older ones down, so the same job can show up again on a later page; time
filtering with ``to`` isn't good enough to act as a cursor either. The
walker therefore tracks seen job IDs and drops repeats.

``BuildMatcher`` sits on top and narrows the walk to a single build.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from badges.models import FeedQuery, SauceJob
from badges.settings import settings

logger = logging.getLogger("badges.feed")

PageFetcher = Callable[[FeedQuery], Awaitable[list[SauceJob]]]
StopPredicate = Callable[[list[SauceJob], list[SauceJob]], bool]


class PagedFeedWalker:
    """Fetch consecutive feed pages until the feed ends or ``stop`` says so."""

    def __init__(self, fetch_page: PageFetcher, page_size: int | None = None) -> None:
        self._fetch_page = fetch_page
        self.page_size = page_size or settings.sauce_page_size

    async def walk(
        self,
        query: FeedQuery,
        stop: StopPredicate | None = None,
        page_size: int | None = None,
    ) -> list[SauceJob]:
        """Return every distinct job seen, in first-seen order.

        ``stop(all_jobs, page_jobs)`` runs after each page. A page shorter
        than the limit always ends the walk. ``limit`` is per request, not
        a cap on the total.
        """
        limit = query.limit or page_size or self.page_size
        skip = query.skip
        seen: set[str] = set()
        all_jobs: list[SauceJob] = []

        while True:
            page = await self._fetch_page(
                query.model_copy(update={"skip": skip, "limit": limit})
            )
            for job in page:
                if job.id not in seen:
                    seen.add(job.id)
                    all_jobs.append(job)

            if len(page) < limit or (stop is not None and stop(all_jobs, page)):
                logger.debug(
                    "Feed walk done after skip=%d: %d jobs", skip, len(all_jobs)
                )
                return all_jobs
            skip += limit


class BuildMatcher:
    """Collect the jobs of one build from the feed.

    The feed knows nothing about builds beyond each job's free-form
    ``build`` field. Without a ``from`` bound the matcher assumes builds
    don't run in parallel: once the target build has been seen, the first
    job from any other build ends the scan.
    """

    def __init__(self, walker: PagedFeedWalker) -> None:
        self._walker = walker

    async def match_build(self, build: str | None, query: FeedQuery) -> list[SauceJob]:
        """Return the jobs of ``build``, or of the latest build when it's None."""
        target = build
        found = False
        bounded = query.from_ is not None

        def stop(_all_jobs: list[SauceJob], page: list[SauceJob]) -> bool:
            nonlocal target, found
            for job in page:
                if job.build is None:
                    continue
                if target is None:
                    target = job.build
                    found = True
                elif job.build == target:
                    found = True
                elif not bounded and found:
                    return True
            return False

        jobs = await self._walker.walk(query.model_copy(update={"full": True}), stop)

        if target is None:
            # The walk ended on a short page before the predicate saw a build.
            target = next((job.build for job in jobs if job.build is not None), None)
        if target is None:
            return []
        logger.debug("Matched build %s", target)
        return [job for job in jobs if job.build == target]

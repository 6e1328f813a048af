"""
Badge data for the rendering layer.

``BadgeService`` owns the state shared across requests (the HTTP client
with its response cache, and the branch predictor) and builds short-lived
API clients per call.
"""

from __future__ import annotations

import logging

from badges.filters import filter_sauce_jobs, filter_travis_jobs
from badges.http_client import CachedHttpClient
from badges.models import (
    BrowserGroup,
    JobFilters,
    SauceSource,
    StatusResult,
    TravisSauceSource,
    TravisSource,
)
from badges.predictor import BranchPredictor
from badges.sauce_client import SauceClient
from badges.status import aggregate_browsers, aggregate_status, group_browsers, status_color
from badges.travis_client import TravisClient

logger = logging.getLogger("badges.service")


class BadgeService:
    def __init__(
        self, http: CachedHttpClient, predictor: BranchPredictor | None = None
    ) -> None:
        self.http = http
        self.predictor = predictor or BranchPredictor()

    def travis(self, source: TravisSource) -> TravisClient:
        return TravisClient(source.user, source.repo, self.http, self.predictor)

    def sauce(self, user: str) -> SauceClient:
        return SauceClient(user, self.http)

    async def get_status(
        self, source: TravisSource, filters: JobFilters | None = None
    ) -> StatusResult:
        """Aggregate status of the latest build on ``source.branch``."""
        build = await self.travis(source).get_latest_branch_build(source.branch)
        jobs = filter_travis_jobs(build.jobs, filters or JobFilters())
        status = aggregate_status(jobs)
        logger.debug(
            "%s/%s@%s build %s: %s",
            source.user, source.repo, source.branch, build.build.id, status,
        )
        return StatusResult(status=status, color=status_color(status))

    async def get_browser_matrix(
        self,
        source: SauceSource | TravisSauceSource,
        filters: JobFilters | None = None,
    ) -> list[BrowserGroup]:
        """Browser → sorted versions for the Sauce jobs of a build."""
        if isinstance(source, TravisSauceSource):
            build = await self.travis(source.travis).get_latest_branch_build(
                source.travis.branch
            )
            jobs = await self.sauce(source.sauce_user).get_travis_build_jobs(build)
        else:
            jobs = await self.sauce(source.user).get_build_jobs(source.build, source.query)

        jobs = filter_sauce_jobs(jobs, filters or JobFilters())
        return group_browsers(aggregate_browsers(jobs))

"""
Travis CI (API v2) client.

Two endpoints are used:
- ``/repos/{user}/{repo}/branches/{branch}`` → the branch's latest build id
- ``/repos/{user}/{repo}/builds/{id}``       → build plus its jobs

Builds whose last job finished more than a day ago won't change again and
are cached for longer than in-progress ones.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import ValidationError

from badges.cache import ONE_DAY, TTLPolicy
from badges.http_client import CachedHttpClient, DecodeError
from badges.models import TravisBuild
from badges.predictor import BranchPredictor
from badges.settings import settings

logger = logging.getLogger("badges.travis_client")


def finished_build_ttl(body: Any, now: float | None = None) -> float | None:
    """TTL policy for build bodies: long TTL once every job is a day old."""
    build = (body or {}).get("build") or {}
    if not build.get("finished_at"):
        return None

    # The build's `finished_at` isn't the end of the build; retried jobs
    # can finish later.
    parsed = TravisBuild.model_validate(body)
    finish_times = [parsed.build.finished_at]
    for job in parsed.jobs:
        if job.finished_at is None:
            return None
        finish_times.append(job.finished_at)

    last_finished = max(t.timestamp() for t in finish_times if t is not None)
    now = time.time() if now is None else now
    if now - last_finished > ONE_DAY:
        return settings.finished_build_ttl
    return None


class TravisClient:
    """Read-only Travis client for one repository."""

    def __init__(
        self,
        user: str,
        repo: str,
        http: CachedHttpClient,
        predictor: BranchPredictor | None = None,
    ) -> None:
        self.user = user
        self.repo = repo
        self.base_url = f"{settings.travis_api_base}/repos/{user}/{repo}"
        self._http = http
        self._predictor = predictor or BranchPredictor()

    async def get(self, path: str, ttl: TTLPolicy = None) -> Any:
        return await self._http.get_json(
            f"{self.base_url}{path}",
            headers={"Accept": settings.travis_accept},
            ttl=ttl,
        )

    async def get_branch(self, branch: str = "master") -> dict:
        body = await self.get(f"/branches/{branch}")
        try:
            return body["branch"]
        except (KeyError, TypeError) as exc:
            raise DecodeError(f"No branch in response for {branch}") from exc

    async def get_build(self, build_id: str | int) -> TravisBuild:
        body = await self.get(f"/builds/{build_id}", ttl=finished_build_ttl)
        try:
            build = TravisBuild.model_validate(body)
        except ValidationError as exc:
            raise DecodeError(f"Malformed build {build_id}: {exc}") from exc
        logger.debug(
            "Build %s (#%s): %d jobs", build.build.id, build.build.number, len(build.jobs)
        )
        return build

    async def get_latest_branch_build(self, branch: str = "master") -> TravisBuild:
        """Latest build of ``branch``, fetched speculatively when predictable."""

        async def fetch_pointer() -> str:
            pointer = await self.get_branch(branch)
            try:
                return str(pointer["id"])
            except (KeyError, TypeError) as exc:
                raise DecodeError(f"Branch {branch} has no build id") from exc

        return await self._predictor.resolve(
            f"{self.user}/{self.repo}/{branch}", fetch_pointer, self.get_build
        )

"""
Branch → build prediction.

Looking up a branch's latest build takes two round trips: the branch
pointer, then the build it points at. Branches rarely move between two
badge requests, so the last build seen for a branch is fetched
speculatively while the pointer lookup is in flight. When the pointer
still matches, the build is already on its way (or cached); when it moved,
the speculative fetch is wasted and the new build is fetched instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from cachetools import TTLCache

from badges.settings import settings

logger = logging.getLogger("badges.predictor")


def _log_speculative_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Speculative build fetch failed: %s", exc)


class BranchPredictor:
    """Remembers the last build id observed per ``user/repo/branch``."""

    def __init__(self, ttl: float | None = None, max_entries: int | None = None) -> None:
        self._pointers: TTLCache[str, str] = TTLCache(
            maxsize=max_entries or settings.branch_pointer_max_entries,
            ttl=ttl if ttl is not None else settings.branch_pointer_ttl,
        )

    def predicted(self, repo_key: str) -> str | None:
        return self._pointers.get(repo_key)

    async def resolve(
        self,
        repo_key: str,
        fetch_pointer: Callable[[], Awaitable[str]],
        fetch_build: Callable[[str], Awaitable[Any]],
    ) -> Any:
        """Return the build the branch currently points at."""
        predicted = self._pointers.get(repo_key)
        speculative: asyncio.Future | None = None
        if predicted is not None:
            speculative = asyncio.ensure_future(fetch_build(predicted))
            speculative.add_done_callback(_log_speculative_failure)

        build_id = str(await fetch_pointer())

        if speculative is not None and build_id == predicted:
            logger.debug("Branch prediction hit: %s → %s", repo_key, build_id)
            return await speculative

        if predicted is not None:
            logger.info(
                "Branch moved: %s %s → %s", repo_key, predicted, build_id
            )
        self._pointers[repo_key] = build_id
        return await fetch_build(build_id)

"""
Job filters applied before aggregation.

``name`` and ``env`` are regular expressions that must match a whole
space-delimited word (so ``name=firefox`` matches "unit firefox" but not
"firefox-esr"). ``tag`` must be one of the job's tags exactly.
"""

from __future__ import annotations

import re
from typing import Iterable

from badges.models import JobFilters, SauceJob, TravisJob


def word_pattern(expr: str) -> re.Pattern[str]:
    """Compile ``expr`` to match as a whole word; raises ValueError if invalid."""
    try:
        return re.compile(rf"(^| ){expr}( |$)")
    except re.error as exc:
        raise ValueError(f"Invalid filter expression {expr!r}: {exc}") from exc


def filter_sauce_jobs(jobs: Iterable[SauceJob], filters: JobFilters) -> list[SauceJob]:
    name_re = word_pattern(filters.name) if filters.name else None
    result = []
    for job in jobs:
        if filters.tag and filters.tag not in job.tags:
            continue
        if name_re and not (job.name and name_re.search(job.name)):
            continue
        result.append(job)
    return result


def filter_travis_jobs(jobs: Iterable[TravisJob], filters: JobFilters) -> list[TravisJob]:
    if not filters.env:
        return list(jobs)
    env_re = word_pattern(filters.env)
    return [job for job in jobs if job.env and env_re.search(job.env)]

"""
Reducing job lists to badge statuses.

Two modes, both pure:

- ``aggregate_status``: one CI pipeline → "unknown" / "passed" / "failed".
  Failures are sticky: once a job has failed, only another failure can
  replace the status.
- ``aggregate_browsers``: Sauce jobs → browser → version → status, with
  the same sticky rule per browser version plus handling for jobs that
  never got a browser launched.
"""

from __future__ import annotations

import logging
from typing import Iterable

from badges.models import BrowserGroup, BrowserStatus, SauceJob, TravisJob

logger = logging.getLogger("badges.status")

BrowserMatrix = dict[str, dict[str, BrowserStatus]]

STATUS_COLORS = {
    "passed": "brightgreen",
    "failed": "red",
}
DEFAULT_COLOR = "lightgrey"


def _replaces(current: str, incoming: str | None) -> bool:
    return current in ("unknown", "passed") or incoming == "failed"


def aggregate_status(jobs: Iterable[TravisJob]) -> str:
    status = "unknown"
    for job in jobs:
        if _replaces(status, job.state):
            status = job.state or "unknown"
    return status


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, DEFAULT_COLOR)


def _is_launch_failure(job: SauceJob) -> bool:
    return (
        job.passed is None
        and job.consolidated_status == "error"
        and job.commands_not_successful == 0
    )


def _priority(job: SauceJob) -> int:
    # Failed first, then passed, then incomplete/error.
    if job.passed is False:
        return 0
    if job.passed is True:
        return 1
    return 2


class BrowserMatrixBuilder:
    """Accumulates ``BrowserStatus`` slots; feed it jobs in priority order."""

    def __init__(self) -> None:
        self._browsers: BrowserMatrix = {}

    def slot(self, browser: str, version: str) -> BrowserStatus:
        versions = self._browsers.setdefault(browser, {})
        if version not in versions:
            versions[version] = BrowserStatus(browser=browser, version=version)
        return versions[version]

    def add(self, job: SauceJob) -> None:
        data = self.slot(job.browser or "", job.browser_short_version or "")

        if _is_launch_failure(job):
            # Sauce sometimes fails to start the VM or browser. A restarted
            # job leaves the old one behind, so only count it when nothing
            # else ran for this browser version.
            if data.status == "unknown":
                data.status = job.consolidated_status or "error"
            else:
                logger.info(
                    "Skipping %s %s job with error: %s",
                    data.browser,
                    data.version,
                    job.error,
                )
        elif _replaces(data.status, job.consolidated_status):
            # Sauce has no flag for this; the CI runner reports it in custom-data.
            if job.disconnected:
                data.status = "disconnected"
            else:
                data.status = job.consolidated_status or "unknown"

    def build(self) -> BrowserMatrix:
        return self._browsers


def aggregate_browsers(jobs: Iterable[SauceJob]) -> BrowserMatrix:
    builder = BrowserMatrixBuilder()
    for job in sorted(jobs, key=_priority):
        builder.add(job)
    return builder.build()


def _version_key(version: str) -> tuple[int, float, str]:
    try:
        return (0, float(version), "")
    except ValueError:
        return (1, 0.0, version)


def group_browsers(browsers: BrowserMatrix) -> list[BrowserGroup]:
    """Flatten the matrix to one group per browser with versions in order."""
    return [
        BrowserGroup(
            browser=browser,
            versions=[versions[v] for v in sorted(versions, key=_version_key)],
        )
        for browser, versions in browsers.items()
    ]

"""
Pydantic models for origin records, queries and badge payloads.

Origin records (``SauceJob``, ``TravisBuild``) keep unknown fields so the
raw API shape survives parsing. Badge payloads are what the HTTP layer
returns to the renderer:
  Status:  {"label": "...", "status": "passed", "color": "brightgreen"}
  Matrix:  {"status": "ok", "browsers": [{"browser": ..., "versions": [...]}]}
  Error:   {"status": "error", "message": "..."}
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Sauce Labs ─────────────────────────────────────────────────
class SauceJob(BaseModel):
    """One record from the Sauce Labs jobs feed."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str
    build: str | None = None
    browser: str | None = None
    browser_short_version: str | None = None
    tags: list[str] = Field(default_factory=list)
    name: str | None = None
    passed: bool | None = None
    status: str | None = None
    consolidated_status: str | None = None
    commands_not_successful: int | None = None
    error: str | None = None
    custom_data: dict[str, Any] | None = Field(default=None, alias="custom-data")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str:
        return str(value)

    @field_validator("build", "browser_short_version", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str | None:
        # The feed mixes numbers and strings; "" means no build was set.
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> list[str]:
        return list(value or [])

    @property
    def disconnected(self) -> bool:
        """True when the runner reported losing the browser mid-run."""
        return bool(self.custom_data and self.custom_data.get("disconnected"))


class FeedQuery(BaseModel):
    """Parameters of a jobs feed request; ``from``/``to`` are unix seconds."""

    model_config = ConfigDict(populate_by_name=True)

    from_: int | None = Field(default=None, alias="from")
    to: int | None = None
    skip: int = 0
    limit: int | None = None
    full: bool = False

    def params(self) -> dict[str, Any]:
        """Query-string parameters in a fixed order, omitting unset bounds."""
        params: dict[str, Any] = {}
        if self.from_ is not None:
            params["from"] = self.from_
        if self.to is not None:
            params["to"] = self.to
        if self.full:
            params["full"] = "true"
        params["skip"] = self.skip
        if self.limit is not None:
            params["limit"] = self.limit
        return params


# ── Travis CI ──────────────────────────────────────────────────
class TravisJob(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    state: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def env(self) -> str:
        return self.config.get("env") or ""


class TravisBuildInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    number: str | None = None
    state: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @field_validator("number", mode="before")
    @classmethod
    def _number(cls, value: Any) -> str | None:
        return None if value is None else str(value)


class TravisBuild(BaseModel):
    """Body of ``GET /repos/{user}/{repo}/builds/{id}``."""

    model_config = ConfigDict(extra="allow")

    build: TravisBuildInfo
    jobs: list[TravisJob] = Field(default_factory=list)


# ── Filters and sources ────────────────────────────────────────
class JobFilters(BaseModel):
    """Optional job filters. ``name`` and ``env`` are regexes matched as whole words."""

    name: str | None = None
    tag: str | None = None
    env: str | None = None


class TravisSource(BaseModel):
    user: str
    repo: str
    branch: str = "master"


class SauceSource(BaseModel):
    """Sauce jobs for ``build``, or the latest build when it's None."""

    user: str
    build: str | None = None
    query: FeedQuery = Field(default_factory=FeedQuery)


class TravisSauceSource(BaseModel):
    """Sauce jobs belonging to the latest Travis build of a branch."""

    travis: TravisSource
    sauce_user: str


# ── Aggregated results ─────────────────────────────────────────
class BrowserStatus(BaseModel):
    browser: str
    version: str
    status: str = "unknown"


class BrowserGroup(BaseModel):
    browser: str
    versions: list[BrowserStatus]


class StatusResult(BaseModel):
    status: str
    color: str


# ── API payloads ───────────────────────────────────────────────
class StatusResponse(BaseModel):
    label: str
    status: str
    color: str


class BrowserMatrixResponse(BaseModel):
    status: Literal["ok", "unknown", "error"]
    browsers: list[BrowserGroup] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str

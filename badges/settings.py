"""
Centralised service settings loaded from environment variables.
Uses pydantic-settings so every value can be overridden via env vars or a .env file.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service configuration."""

    # ── Travis CI ───────────────────────────────────────────
    travis_api_base: str = "https://api.travis-ci.org"
    travis_accept: str = "application/vnd.travis-ci.2+json"

    # ── Sauce Labs ──────────────────────────────────────────
    sauce_api_base: str = "https://saucelabs.com/rest/v1"
    sauce_username: str | None = None
    sauce_access_key: str | None = None
    sauce_page_size: int = 500

    # ── HTTP client ─────────────────────────────────────────
    http_connect_timeout: float = 5.0
    http_read_timeout: float = 20.0

    # ── Response cache (seconds) ────────────────────────────
    cache_max_entries: int = 256
    cache_default_ttl: float = 60.0
    old_feed_ttl: float = 12 * 60 * 60
    finished_build_ttl: float = 60 * 60

    # ── Branch prediction ───────────────────────────────────
    branch_pointer_ttl: float = 24 * 60 * 60
    branch_pointer_max_entries: int = 1024

    # Travis and Sauce clocks disagree; widen build windows by this much.
    build_window_padding: int = 60

    # ── Server ──────────────────────────────────────────────
    badge_max_age: int = 30
    log_level: str = "info"
    log_format: str = "json"

    model_config = {"env_prefix": "", "env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton used across the service
settings = Settings()

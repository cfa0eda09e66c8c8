"""
Furanomi Worker — Configuration
================================

What:  Centralized settings for the service worker cache controller.
How:   Pydantic Settings reads environment variables (or a .env file),
       validates types and ranges, and exposes a singleton `settings` object.
Who:   Imported by the router, lifecycle manager, push bridge and worker.
When:  Loaded once at import time.

The version tag is embedded in every cache bucket name, so it must change on
every deployment. Consumers treat bucket names as opaque.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Worker settings loaded from environment variables.

    Attributes are grouped by concern. Every cache policy has its own
    entry cap and TTL; the defaults mirror the deployed worker.
    """

    # ── Version ───────────────────────────────────────────────────────────
    # Deployed asset set; changes on every deployment
    sw_version: str = Field(default="v1.0.7", min_length=1)

    # ── Origins ───────────────────────────────────────────────────────────
    # Origin the worker is registered on (scheme://host[:port])
    origin: str = Field(default="http://localhost:5173")

    # Base URL of the HTTP API used for push subscription bookkeeping
    api_base_url: str = Field(default="http://localhost:3001")

    # ── Precache ──────────────────────────────────────────────────────────
    # Buckets with this prefix belong to the precache routine and are never
    # swept by the lifecycle manager
    precache_prefix: str = Field(default="workbox-precache")

    # ── JS/CSS (network-first, short TTL, small cap) ──────────────────────
    js_css_max_entries: int = Field(default=30, ge=1, le=1000)
    js_css_max_age_seconds: int = Field(default=120, ge=1, le=3600)

    # ── API (network-first with timeout) ──────────────────────────────────
    api_max_entries: int = Field(default=100, ge=1, le=10000)
    api_max_age_seconds: int = Field(default=60 * 5, ge=1, le=86400)
    api_network_timeout_seconds: float = Field(default=10, gt=0, le=120)

    # Comma-separated path segments that mark a request as an API call
    api_path_segments: str = Field(default="api")

    @property
    def api_path_segments_list(self) -> List[str]:
        """Splits comma-separated API path segments into a list."""
        return [s.strip().strip("/") for s in self.api_path_segments.split(",") if s.strip()]

    # ── Images (cache-first, long TTL) ────────────────────────────────────
    image_max_entries: int = Field(default=100, ge=1, le=10000)
    image_max_age_seconds: int = Field(default=60 * 60 * 24 * 30, ge=60)

    # ── Storage ───────────────────────────────────────────────────────────
    # memory: process-local buckets; disk: buckets persisted under cache_dir
    cache_backend: str = Field(default="memory")
    cache_dir: str = Field(default="./sw-cache")

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"memory", "disk"}:
            raise ValueError(f"Invalid cache_backend '{v}'. Must be 'memory' or 'disk'")
        return lower

    # ── Client messages ───────────────────────────────────────────────────
    activation_message_type: str = Field(default="SW_ACTIVATED")

    # ── Notifications ─────────────────────────────────────────────────────
    notification_title: str = Field(default="ふらのみ")
    notification_body: str = Field(default="店舗の空き状況が更新されました")
    notification_icon: str = Field(default="/icon-128x128.svg")
    notification_badge: str = Field(default="/icon-128x128.svg")

    # ── Push subscription HTTP calls ──────────────────────────────────────
    push_request_timeout_seconds: float = Field(default=10, gt=0, le=120)

    # Tenacity retry settings for transient transport errors
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1, ge=0, le=30)
    retry_max_wait: float = Field(default=5, ge=0, le=120)

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("origin", "api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance, imported throughout the package
settings = Settings()

"""
Centralized relay configuration.

Single source of truth for the environment-driven settings read at process
start. The shared secret is mandatory; everything else has a default.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from renderkit_relay.errors import ConfigError

ENV_PREFIX = "RENDERKIT_RELAY_"

DEFAULT_PORT = 8787
DEFAULT_MAX_BODY_BYTES = 1024 * 1024
DEFAULT_MAX_SKEW_SECONDS = 60
DEFAULT_CACHE_MAX_ENTRIES = 500
DEFAULT_CACHE_TTL_MS = 60_000
DEFAULT_RENDERER_PATH = "build/relay_renderer.py"
DEFAULT_RENDERER_CHECK_MS = 250
DEFAULT_FORGE_MAX_EVENTS = 50


def parse_non_negative_int(value: str | None, fallback: int) -> int:
    """Parse an integer setting, falling back on anything non-numeric or negative."""
    try:
        parsed = int((value or "").strip())
    except ValueError:
        return fallback
    return parsed if parsed >= 0 else fallback


def parse_flag(value: str | None, fallback: bool) -> bool:
    """Parse a boolean feature flag (``1/0``, ``true/false``, ``yes/no``, ``on/off``)."""
    if value is None or not value.strip():
        return fallback
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    return fallback


@dataclass(frozen=True)
class RelayConfig:
    """Relay configuration from environment variables.

    Attributes:
        secret: Shared HMAC secret (RENDERKIT_RELAY_SECRET)
        host: Bind address
        port: Listen port
        max_body_bytes: Maximum accepted request body size
        max_skew_seconds: Allowed clock skew for signed requests
        cache_enabled: Whether the render cache is enabled
        cache_max_entries: Cache capacity (0 disables the cache)
        cache_ttl_ms: Cache entry TTL in milliseconds (0 disables expiry)
        renderer_path: Path to the renderer artifact
        renderer_check_ms: Minimum interval between artifact stats
        forge_enabled: Whether the telemetry endpoints are enabled
        forge_max_events: Maximum events accepted per telemetry batch
        log_level: Log level name
        log_dir: Optional directory for the JSONL log file
    """

    secret: str
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS
    cache_enabled: bool = True
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    renderer_path: Path = Path(DEFAULT_RENDERER_PATH)
    renderer_check_ms: int = DEFAULT_RENDERER_CHECK_MS
    forge_enabled: bool = True
    forge_max_events: int = DEFAULT_FORGE_MAX_EVENTS
    log_level: str = "INFO"
    log_dir: Path | None = None

    @property
    def cache_active(self) -> bool:
        """Whether a cache should be constructed at all."""
        return self.cache_enabled and self.cache_max_entries > 0

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000.0

    @property
    def renderer_check_seconds(self) -> float:
        return self.renderer_check_ms / 1000.0


def load_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    """Load relay configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        RelayConfig with validated settings.

    Raises:
        ConfigError: If RENDERKIT_RELAY_SECRET is missing or empty.
    """
    env = os.environ if environ is None else environ

    def get(name: str) -> str | None:
        return env.get(f"{ENV_PREFIX}{name}")

    secret = get("SECRET") or ""
    if not secret.strip():
        raise ConfigError(message=f"missing env {ENV_PREFIX}SECRET")

    log_dir = get("LOG_DIR")

    return RelayConfig(
        secret=secret,
        host=get("HOST") or "0.0.0.0",
        port=parse_non_negative_int(get("PORT"), DEFAULT_PORT),
        max_body_bytes=parse_non_negative_int(get("MAX_BODY_BYTES"), DEFAULT_MAX_BODY_BYTES),
        max_skew_seconds=parse_non_negative_int(get("MAX_SKEW_SECONDS"), DEFAULT_MAX_SKEW_SECONDS),
        cache_enabled=parse_flag(get("CACHE_ENABLED"), True),
        cache_max_entries=parse_non_negative_int(
            get("CACHE_MAX_ENTRIES"), DEFAULT_CACHE_MAX_ENTRIES
        ),
        cache_ttl_ms=parse_non_negative_int(get("CACHE_TTL_MS"), DEFAULT_CACHE_TTL_MS),
        renderer_path=Path(get("RENDERER_PATH") or DEFAULT_RENDERER_PATH),
        renderer_check_ms=parse_non_negative_int(
            get("RENDERER_CHECK_MS"), DEFAULT_RENDERER_CHECK_MS
        ),
        forge_enabled=parse_flag(get("FORGE_ENABLED"), True),
        forge_max_events=parse_non_negative_int(get("FORGE_MAX_EVENTS"), DEFAULT_FORGE_MAX_EVENTS),
        log_level=(get("LOG_LEVEL") or "INFO").upper(),
        log_dir=Path(log_dir) if log_dir else None,
    )

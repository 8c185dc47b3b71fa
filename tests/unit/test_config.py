"""
Unit tests for environment-driven relay configuration.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from renderkit_relay.config import (
    DEFAULT_RENDERER_PATH,
    RelayConfig,
    load_config,
    parse_flag,
    parse_non_negative_int,
)
from renderkit_relay.errors import ConfigError


class TestParsers:
    """Tests for setting parsers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("42", 42), (" 7 ", 7), ("0", 0), ("-5", 10), ("abc", 10), ("", 10), (None, 10), ("1.5", 10)],
    )
    def test_parse_non_negative_int(self, raw: str | None, expected: int) -> None:
        assert parse_non_negative_int(raw, 10) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1", True), ("true", True), ("ON", True), ("0", False), ("no", False), ("off", False)],
    )
    def test_parse_flag(self, raw: str, expected: bool) -> None:
        assert parse_flag(raw, not expected) is expected

    @pytest.mark.parametrize("raw", [None, "", "maybe"])
    def test_parse_flag_fallback(self, raw: str | None) -> None:
        assert parse_flag(raw, True) is True
        assert parse_flag(raw, False) is False


class TestLoadConfig:
    """Tests for load_config."""

    def test_secret_is_required(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config({})
        assert "RENDERKIT_RELAY_SECRET" in exc_info.value.message

    def test_blank_secret_is_rejected(self) -> None:
        with pytest.raises(ConfigError):
            load_config({"RENDERKIT_RELAY_SECRET": "   "})

    def test_defaults(self) -> None:
        config = load_config({"RENDERKIT_RELAY_SECRET": "s"})
        assert config == RelayConfig(secret="s")
        assert config.port == 8787
        assert config.max_body_bytes == 1024 * 1024
        assert config.max_skew_seconds == 60
        assert config.cache_max_entries == 500
        assert config.cache_ttl_ms == 60_000
        assert config.renderer_path == Path(DEFAULT_RENDERER_PATH)
        assert config.renderer_check_ms == 250
        assert config.forge_max_events == 50
        assert config.log_dir is None
        assert config.cache_active is True

    def test_overrides(self, tmp_path: Path) -> None:
        config = load_config(
            {
                "RENDERKIT_RELAY_SECRET": "s",
                "RENDERKIT_RELAY_PORT": "9000",
                "RENDERKIT_RELAY_CACHE_TTL_MS": "1500",
                "RENDERKIT_RELAY_RENDERER_CHECK_MS": "0",
                "RENDERKIT_RELAY_FORGE_ENABLED": "0",
                "RENDERKIT_RELAY_RENDERER_PATH": str(tmp_path / "r.py"),
                "RENDERKIT_RELAY_LOG_LEVEL": "debug",
                "RENDERKIT_RELAY_LOG_DIR": str(tmp_path / "logs"),
            }
        )
        assert config.port == 9000
        assert config.cache_ttl_seconds == 1.5
        assert config.renderer_check_seconds == 0
        assert config.forge_enabled is False
        assert config.renderer_path == tmp_path / "r.py"
        assert config.log_level == "DEBUG"
        assert config.log_dir == tmp_path / "logs"

    @pytest.mark.parametrize(
        "env",
        [
            {"RENDERKIT_RELAY_CACHE_ENABLED": "0"},
            {"RENDERKIT_RELAY_CACHE_MAX_ENTRIES": "0"},
        ],
    )
    def test_cache_inactive(self, env: dict[str, str]) -> None:
        config = load_config({"RENDERKIT_RELAY_SECRET": "s", **env})
        assert config.cache_active is False

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RENDERKIT_RELAY_SECRET", "from-env")
        monkeypatch.setenv("RENDERKIT_RELAY_MAX_SKEW_SECONDS", "5")
        config = load_config()
        assert config.secret == "from-env"
        assert config.max_skew_seconds == 5

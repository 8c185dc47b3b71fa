"""Shared pytest fixtures for relay tests."""

from __future__ import annotations

import itertools
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from renderkit_relay.app_factory import build_services, create_app
from renderkit_relay.config import RelayConfig
from renderkit_relay.signature import sign_headers

SECRET = "test-secret"

HERO_RENDERER = '''
from renderkit_relay import Err, UnsupportedBlockError

RELAY_VERSION = "1.0.0"


def validate_relay_props(block, props):
    if block not in ("hero", "boom", "bytes", "refuse"):
        raise UnsupportedBlockError()
    return props


def render_relay(block, props):
    if block == "boom":
        raise RuntimeError("kaboom")
    if block == "bytes":
        return b"<h1>not text</h1>"
    if block == "refuse":
        return Err("invalid_props")
    return "<h1>" + str(props.get("heading", "")) + "</h1>"
'''

# Deterministic, strictly increasing mtimes so reloads never depend on the
# filesystem's timestamp resolution.
_mtimes = itertools.count(1_700_000_000_000_000_000, 1_000_000_000)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_artifact(path: Path, source: str) -> Path:
    """Write a renderer artifact and give it a fresh modification time."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source)
    mtime = next(_mtimes)
    os.utime(path, ns=(mtime, mtime))
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def artifact_writer() -> Callable[[Path, str], Path]:
    return write_artifact


@pytest.fixture
def renderer_path(tmp_path: Path) -> Path:
    """A hero renderer artifact on disk."""
    return write_artifact(tmp_path / "build" / "relay_renderer.py", HERO_RENDERER)


@pytest.fixture
def relay_config(renderer_path: Path) -> RelayConfig:
    return RelayConfig(secret=SECRET, renderer_path=renderer_path, renderer_check_ms=0)


@pytest.fixture
def make_client(renderer_path: Path) -> Callable[..., TestClient]:
    """Build a TestClient for a relay configured with overrides."""

    def factory(**overrides: Any) -> TestClient:
        settings: dict[str, Any] = {
            "secret": SECRET,
            "renderer_path": renderer_path,
            "renderer_check_ms": 0,
        }
        settings.update(overrides)
        config = RelayConfig(**settings)
        return TestClient(create_app(config, build_services(config)))

    return factory


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


def post_signed(
    client: TestClient,
    path: str,
    payload: Any,
    secret: str = SECRET,
    timestamp: int | None = None,
) -> httpx.Response:
    """POST *payload* as JSON with valid relay authentication headers."""
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json", **sign_headers(secret, body, timestamp)}
    return client.post(path, content=body, headers=headers)


@pytest.fixture
def signed() -> Callable[..., httpx.Response]:
    return post_signed

"""
renderKit-Relay: a signed server-side rendering sidecar.

The relay accepts HMAC-signed render requests from a CMS front end, renders
blocks through a hot-reloaded renderer artifact, caches the HTML, exposes
Prometheus metrics and aggregates front-end telemetry ("Forge").

Quick start::

    export RENDERKIT_RELAY_SECRET=change-me
    renderkit-relay serve
"""

from renderkit_relay._version import get_version
from renderkit_relay.config import RelayConfig, load_config
from renderkit_relay.errors import (
    AuthenticationError,
    ConfigError,
    InvalidPropsError,
    RelayError,
    RendererInvalidError,
    RendererMissingError,
    UnsupportedBlockError,
)
from renderkit_relay.result import Err, Ok

__version__ = get_version()

__all__ = [
    "__version__",
    "RelayConfig",
    "load_config",
    # Errors
    "RelayError",
    "ConfigError",
    "AuthenticationError",
    "RendererMissingError",
    "RendererInvalidError",
    "UnsupportedBlockError",
    "InvalidPropsError",
    # Artifact results
    "Ok",
    "Err",
]

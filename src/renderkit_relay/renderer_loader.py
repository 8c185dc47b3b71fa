"""Hot-reloading loader for the renderer artifact.

The artifact is a plain Python file built outside the relay. It must export::

    def render_relay(block: str, props: dict) -> str | Ok | Err: ...

and may export::

    def validate_relay_props(block: str, props: dict) -> dict | Ok | Err: ...
    RELAY_VERSION = "1.4.2"

Artifacts signal caller errors either by returning ``Err("invalid_props")``
or by raising :class:`~renderkit_relay.errors.UnsupportedBlockError` /
:class:`~renderkit_relay.errors.InvalidPropsError`.

The loader keeps one "current renderer" slot. It re-stats the file at most
once per check interval and swaps in a freshly executed module when the
modification time changes. A swap that replaces an earlier handle clears the
render cache so HTML from the previous artifact is never served again.
"""

from __future__ import annotations

import importlib.util
import itertools
import os
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

from renderkit_relay.errors import RendererInvalidError, RendererMissingError
from renderkit_relay.logging import get_loader_logger
from renderkit_relay.result import Err, Ok, as_result

if TYPE_CHECKING:
    from renderkit_relay.metrics import RelayMetrics
    from renderkit_relay.render_cache import RenderCache

logger = get_loader_logger()

RENDER_FUNCTION = "render_relay"
VALIDATE_FUNCTION = "validate_relay_props"
VERSION_ATTRIBUTE = "RELAY_VERSION"

_load_counter = itertools.count(1)


@dataclass(frozen=True)
class RendererHandle:
    """A loaded renderer artifact, tagged with the mtime it was loaded at."""

    module: ModuleType
    path: Path
    mtime_ns: int

    @property
    def version(self) -> str:
        return str(getattr(self.module, VERSION_ATTRIBUTE, "unknown"))

    @property
    def has_validator(self) -> bool:
        return callable(getattr(self.module, VALIDATE_FUNCTION, None))

    def validate(self, block: str, props: dict[str, Any]) -> Ok[Any] | Err:
        """Run the artifact's props validator; ``Ok(props)`` when it has none."""
        validator = getattr(self.module, VALIDATE_FUNCTION, None)
        if not callable(validator):
            return Ok(props)
        return as_result(validator(block, props))

    def render(self, block: str, props: dict[str, Any]) -> Ok[Any] | Err:
        """Call the artifact's render function and normalise its return value."""
        render = getattr(self.module, RENDER_FUNCTION)
        return as_result(render(block, props))


def load_renderer_module(path: Path) -> ModuleType:
    """Execute *path* as a brand-new module object.

    Each load gets a unique module name so nothing from a previous version of
    the artifact is reused; the module is removed from ``sys.modules`` after
    execution.

    Raises:
        RendererInvalidError: If the file cannot be executed or has no
            callable ``render_relay``.
    """
    module_name = f"renderkit_relay_artifact_{next(_load_counter)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RendererInvalidError(message=f"cannot load renderer from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise RendererInvalidError(message=f"renderer import failed: {exc!r}") from exc
    finally:
        sys.modules.pop(module_name, None)

    if not callable(getattr(module, RENDER_FUNCTION, None)):
        raise RendererInvalidError(message=f"{path} does not export {RENDER_FUNCTION}()")
    return module


class RendererLoader:
    """Lazily (re)loads the renderer artifact.

    Args:
        path: Artifact file path
        check_interval_seconds: Minimum time between stats (0 stats on every call)
        metrics: Registry receiving reload / cache-clear counts
        cache: Render cache cleared on every reload
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        path: Path | str,
        check_interval_seconds: float = 0.25,
        metrics: RelayMetrics | None = None,
        cache: RenderCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path)
        self.check_interval_seconds = max(0.0, check_interval_seconds)
        self._metrics = metrics
        self._cache = cache
        self._clock = clock

        self._handle: RendererHandle | None = None
        self._mtime_ns = 0
        self._last_check = 0.0
        self._loaded_once = False

    @property
    def current(self) -> RendererHandle | None:
        """The currently loaded handle, without checking the file."""
        return self._handle

    def get(self) -> RendererHandle:
        """Return a live renderer handle, reloading it if the artifact changed.

        Raises:
            RendererMissingError: The artifact path cannot be stat'ed.
            RendererInvalidError: The artifact failed to load.
        """
        now = self._clock()
        if (
            self._handle is not None
            and self.check_interval_seconds > 0
            and now - self._last_check < self.check_interval_seconds
        ):
            return self._handle
        self._last_check = now

        try:
            stat = os.stat(self.path)
        except OSError as exc:
            if self._handle is not None:
                logger.error("Renderer artifact disappeared: %s", self.path)
            self._handle = None
            self._mtime_ns = 0
            raise RendererMissingError(message=f"renderer not found at {self.path}") from exc

        if self._handle is not None and stat.st_mtime_ns == self._mtime_ns:
            return self._handle

        return self._swap(stat.st_mtime_ns)

    def _swap(self, mtime_ns: int) -> RendererHandle:
        # Any successful load after the first one is a reload, even when the
        # artifact was missing or broken in between.
        is_reload = self._loaded_once
        self._mtime_ns = mtime_ns
        try:
            module = load_renderer_module(self.path)
        except RendererInvalidError:
            self._handle = None
            logger.error("Renderer artifact is invalid: %s", self.path, exc_info=True)
            raise

        handle = RendererHandle(module=module, path=self.path, mtime_ns=mtime_ns)
        self._handle = handle
        self._loaded_once = True

        if is_reload:
            self._on_reload()
        logger.info(
            "Renderer %s %s (version %s)",
            "reloaded" if is_reload else "loaded",
            self.path,
            handle.version,
        )
        return handle

    def _on_reload(self) -> None:
        if self._metrics is not None:
            self._metrics.renderer_reloads_total.inc()
        if self._cache is not None:
            self._cache.clear()
            if self._metrics is not None:
                self._metrics.cache_clears_total.inc()

"""Session runtime: data loading, deferred requests, and resize handling.

Everything here runs on one asyncio event loop. Boundary loading is the only
suspending operation; its blocking I/O runs in a worker thread, while
projection building and rendering always happen on the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from .boundaries import BoundaryDataError, BoundaryDataSource, resolve_home_country
from .catalog import ProjectionCatalog, default_catalog, load_projection_catalog
from .config import AppConfig, SessionConfig
from .controller import ViewController
from .models import BoundaryFeatureCollection, HomeCountry, ViewState
from .projection import ConfiguredProjection, ProjectionFactory
from .render import MapRenderer, RenderResult

_LOGGER = logging.getLogger("projatlas.app")

Sleep = Callable[[float], Awaitable[Any]]


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class MapSession:
    def __init__(
        self,
        *,
        catalog: ProjectionCatalog,
        factory: ProjectionFactory,
        renderer: MapRenderer,
        data_source: BoundaryDataSource,
        home_name: str,
        home_fallback_center: tuple[float, float],
        initial_state: ViewState | None = None,
        settings: SessionConfig | None = None,
        load_attempts: int = 3,
        retry_delay_s: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.catalog = catalog
        self.factory = factory
        self.renderer = renderer
        self.data_source = data_source
        self.settings = settings or SessionConfig()
        self.load_attempts = max(int(load_attempts), 1)
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep
        self._home_name = home_name
        self._home_fallback_center = home_fallback_center
        self._home = HomeCountry(name=home_name, center=home_fallback_center)
        self._boundaries: BoundaryFeatureCollection | None = None
        self._status = SessionStatus.IDLE
        self._projection: ConfiguredProjection | None = None
        self._last_result: RenderResult | None = None
        self._deferred = False
        self._pending_size: tuple[int, int] | None = None
        self._resize_handle: asyncio.TimerHandle | None = None
        self.controller = ViewController(catalog, on_change=self._on_view_change, initial=initial_state)

    @classmethod
    def from_config(cls, cfg: AppConfig, catalog: ProjectionCatalog | None = None) -> MapSession:
        if catalog is None:
            catalog = (
                load_projection_catalog(cfg.paths.catalog) if cfg.paths.catalog is not None else default_catalog()
            )
        factory = ProjectionFactory(
            padding_px=cfg.canvas.padding_px,
            standard_parallels=cfg.render.standard_parallels,
            fixed_meridian=cfg.view.fixed_meridian,
            scale_hints=cfg.render.scale_hints,
        )
        renderer = MapRenderer(
            cfg.render.style,
            width=cfg.canvas.width_px,
            height=cfg.canvas.height_px,
            dpi=cfg.canvas.dpi,
            graticule_step_deg=cfg.render.graticule_step_deg,
            draw_graticule=cfg.render.draw_graticule,
            draw_reference_lines=cfg.render.draw_reference_lines,
        )
        data_source = BoundaryDataSource(
            cfg.boundaries.source,
            name_properties=cfg.boundaries.name_properties,
            request_timeout_s=cfg.boundaries.request_timeout_s,
        )
        return cls(
            catalog=catalog,
            factory=factory,
            renderer=renderer,
            data_source=data_source,
            home_name=cfg.home_country.name,
            home_fallback_center=cfg.home_country.fallback_center,
            initial_state=cfg.view.initial_state(),
            settings=cfg.session,
            load_attempts=cfg.boundaries.load_attempts,
            retry_delay_s=cfg.boundaries.retry_delay_s,
        )

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is SessionStatus.READY

    @property
    def boundaries(self) -> BoundaryFeatureCollection | None:
        return self._boundaries

    @property
    def home(self) -> HomeCountry:
        return self._home

    @property
    def current_projection(self) -> ConfiguredProjection | None:
        return self._projection

    @property
    def last_result(self) -> RenderResult | None:
        return self._last_result

    async def load_boundaries(self) -> bool:
        """Load the boundary dataset with a bounded number of attempts.

        On success the current view is rendered, including any refresh that
        was requested while loading. On exhaustion the session becomes
        ``unavailable`` and nothing is drawn.
        """
        self._status = SessionStatus.LOADING
        for attempt in range(1, self.load_attempts + 1):
            try:
                boundaries = await asyncio.to_thread(self.data_source.load)
            except BoundaryDataError as exc:
                _LOGGER.warning(
                    "Boundary data load failed (attempt %d/%d): %s", attempt, self.load_attempts, exc
                )
                if attempt < self.load_attempts:
                    await self._sleep(self.retry_delay_s)
                continue
            self._boundaries = boundaries
            self._home = resolve_home_country(
                boundaries,
                name=self._home_name,
                fallback_center=self._home_fallback_center,
            )
            self._status = SessionStatus.READY
            _LOGGER.info("Boundary data ready: %d features.", len(boundaries))
            self._deferred = False
            self.refresh()
            return True

        self._status = SessionStatus.UNAVAILABLE
        _LOGGER.error("Boundary data unavailable after %d attempts.", self.load_attempts)
        return False

    async def request_projection(self, projection_id: str) -> bool:
        """Select a projection, waiting a bounded time for boundary data."""
        if projection_id not in self.catalog:
            return self.controller.select_projection(projection_id)
        attempts = self.settings.request_attempts
        for attempt in range(1, attempts + 1):
            if self.is_ready:
                return self.controller.select_projection(projection_id)
            if self._status is SessionStatus.UNAVAILABLE:
                break
            _LOGGER.info(
                "Boundary data not ready; retrying %s (%d/%d).", projection_id, attempt, attempts
            )
            await self._sleep(self.settings.request_retry_s)
        if self.is_ready:
            return self.controller.select_projection(projection_id)
        _LOGGER.error("Projection %s not applied: boundary data is %s.", projection_id, self._status.value)
        return False

    def refresh(self) -> RenderResult | None:
        """Rebuild the projection for the current state and redraw it."""
        if self._boundaries is None:
            self._deferred = True
            _LOGGER.debug("Refresh deferred until boundary data is ready.")
            return None
        state = self.controller.state
        descriptor = self.catalog.require(state.projection_id)
        width, height = self.renderer.size
        projection = self.factory.build(descriptor, width, height, state, self._home)
        self._projection = projection
        self._last_result = self.renderer.render(projection, self._boundaries, state, self._home)
        return self._last_result

    def notify_resize(self, width: int, height: int) -> None:
        """Coalesce a burst of size notifications into one ``invalidate_size``."""
        loop = asyncio.get_running_loop()
        self._pending_size = (int(width), int(height))
        if self._resize_handle is not None:
            self._resize_handle.cancel()
        self._resize_handle = loop.call_later(self.settings.resize_debounce_s, self._flush_resize)

    def invalidate_size(self, width: int, height: int) -> RenderResult | None:
        self.renderer.resize(width, height)
        return self.refresh()

    def _flush_resize(self) -> None:
        self._resize_handle = None
        size, self._pending_size = self._pending_size, None
        if size is not None:
            self.invalidate_size(*size)

    def _on_view_change(self, _state: ViewState) -> None:
        self.refresh()

    @property
    def has_deferred_refresh(self) -> bool:
        return self._deferred

    def close(self) -> None:
        if self._resize_handle is not None:
            self._resize_handle.cancel()
            self._resize_handle = None
        self.renderer.close()

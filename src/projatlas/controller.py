"""View selection state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from .catalog import ProjectionCatalog, UnknownProjectionError
from .models import CenterMode, ViewMode, ViewState

_LOGGER = logging.getLogger("projatlas.controller")

ChangeCallback = Callable[[ViewState], None]


def _noop(_state: ViewState) -> None:
    return None


class ViewController:
    """Owns the session ``ViewState`` and reports every accepted transition.

    The state is replaced, never mutated. ``on_change`` is called exactly once
    per accepted transition; rejected requests leave the state untouched and
    return False.

    While the home-only view is active the center mode is pinned to HOME.
    Leaving that view brings back the center mode that was active before
    entering it.
    """

    def __init__(
        self,
        catalog: ProjectionCatalog,
        on_change: ChangeCallback | None = None,
        initial: ViewState | None = None,
    ) -> None:
        if initial is None:
            descriptors = catalog.all()
            if not descriptors:
                raise ValueError("Projection catalog is empty")
            initial = ViewState(projection_id=descriptors[0].id)
        catalog.require(initial.projection_id)
        self._catalog = catalog
        self._on_change = on_change or _noop
        self._state = _pinned(initial)
        self._center_before_home = (
            CenterMode.ORIGIN if initial.view_mode is ViewMode.HOME_ONLY else initial.center_mode
        )

    @property
    def state(self) -> ViewState:
        return self._state

    def select_projection(self, projection_id: str) -> bool:
        if projection_id not in self._catalog:
            _LOGGER.error("Unknown projection: %s", projection_id)
            return False
        self._commit(replace(self._state, projection_id=projection_id))
        return True

    def select_center_mode(self, mode: CenterMode | str) -> bool:
        try:
            center_mode = CenterMode(mode)
        except ValueError:
            _LOGGER.error("Unknown center mode: %s", mode)
            return False
        if self._state.view_mode is ViewMode.HOME_ONLY and center_mode is not CenterMode.HOME:
            _LOGGER.info("Center mode %s ignored while the home-only view is active.", center_mode.value)
            return False
        self._commit(replace(self._state, center_mode=center_mode))
        return True

    def select_view_mode(self, mode: ViewMode | str) -> bool:
        try:
            view_mode = ViewMode(mode)
        except ValueError:
            _LOGGER.error("Unknown view mode: %s", mode)
            return False
        current = self._state
        if view_mode is current.view_mode:
            return False
        if view_mode is ViewMode.HOME_ONLY:
            self._center_before_home = current.center_mode
            self._commit(replace(current, view_mode=view_mode, center_mode=CenterMode.HOME))
        else:
            self._commit(replace(current, view_mode=view_mode, center_mode=self._center_before_home))
        return True

    def restore(self, state: ViewState) -> None:
        """Reinstate a snapshot taken earlier from ``state``."""
        if state.projection_id not in self._catalog:
            raise UnknownProjectionError(state.projection_id)
        self._commit(_pinned(state))

    def _commit(self, state: ViewState) -> None:
        self._state = state
        _LOGGER.debug(
            "View state: projection=%s center=%s view=%s",
            state.projection_id,
            state.center_mode.value,
            state.view_mode.value,
        )
        self._on_change(state)


def _pinned(state: ViewState) -> ViewState:
    if state.view_mode is ViewMode.HOME_ONLY and state.center_mode is not CenterMode.HOME:
        return replace(state, center_mode=CenterMode.HOME)
    return state

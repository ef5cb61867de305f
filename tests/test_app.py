"""Tests for the asyncio session runtime."""

import asyncio
import sys
import time

import numpy as np

from projatlas.app import SessionStatus
from projatlas.boundaries import BoundaryDataError, BoundaryDataSource
from projatlas.models import CenterMode, ViewMode

from conftest import CANVAS_H, CANVAS_W, PADDING


class _SlowSource:
    """Boundary source that blocks briefly before returning the dataset."""

    def __init__(self, boundaries, delay_s=0.1):
        self.boundaries = boundaries
        self.delay_s = delay_s

    def load(self):
        time.sleep(self.delay_s)
        return self.boundaries


class _FailingSource:
    def __init__(self, failures, boundaries=None):
        self.failures = failures
        self.boundaries = boundaries
        self.calls = 0

    def load(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise BoundaryDataError("connection reset")
        return self.boundaries


class TestLoading:
    def test_load_renders_initial_view(self, make_session):
        session = make_session()
        assert session.status is SessionStatus.IDLE
        assert asyncio.run(session.load_boundaries())
        assert session.status is SessionStatus.READY
        assert session.last_result is not None
        assert session.last_result.projection_id == session.controller.state.projection_id
        assert session.home.geometry is not None

    def test_retries_then_succeeds(self, make_session, boundaries):
        source = _FailingSource(failures=2, boundaries=boundaries)
        session = make_session(data_source=source, load_attempts=3)
        assert asyncio.run(session.load_boundaries())
        assert source.calls == 3
        assert session.is_ready

    def test_gives_up_after_bounded_attempts(self, make_session, caplog):
        source = _FailingSource(failures=99)
        delays = []

        async def _sleep(delay):
            delays.append(delay)

        session = make_session(data_source=source, load_attempts=3, retry_delay_s=0.5, sleep=_sleep)
        with caplog.at_level("ERROR", logger="projatlas.app"):
            assert not asyncio.run(session.load_boundaries())
        assert source.calls == 3
        assert delays == [0.5, 0.5]
        assert session.status is SessionStatus.UNAVAILABLE
        assert session.last_result is None
        assert "unavailable" in caplog.text

    def test_vector_source_without_geopandas_becomes_unavailable(self, make_session, tmp_path, monkeypatch):
        path = tmp_path / "countries.shp"
        path.write_bytes(b"\x00" * 100)
        monkeypatch.setitem(sys.modules, "geopandas", None)
        session = make_session(data_source=BoundaryDataSource(path), load_attempts=2)
        assert not asyncio.run(session.load_boundaries())
        assert session.status is SessionStatus.UNAVAILABLE
        assert session.last_result is None

    def test_changes_before_load_are_deferred(self, make_session):
        session = make_session()
        assert session.controller.select_projection("orthographic")
        assert session.has_deferred_refresh
        assert session.last_result is None
        asyncio.run(session.load_boundaries())
        assert session.last_result.projection_id == "orthographic"
        assert not session.has_deferred_refresh


class TestRequestProjection:
    def test_request_before_data_is_retried_until_ready(self, make_session, boundaries):
        session = make_session(data_source=_SlowSource(boundaries, delay_s=0.1))

        async def _scenario():
            return await asyncio.gather(
                session.load_boundaries(),
                session.request_projection("mercator"),
            )

        loaded, applied = asyncio.run(_scenario())
        assert loaded and applied
        assert session.controller.state.projection_id == "mercator"
        assert session.last_result.projection_id == "mercator"

    def test_request_gives_up_when_data_unavailable(self, make_session):
        session = make_session(data_source=_FailingSource(failures=99), load_attempts=1)

        async def _scenario():
            await session.load_boundaries()
            return await session.request_projection("mercator")

        assert not asyncio.run(_scenario())
        assert session.controller.state.projection_id != "mercator"

    def test_unknown_projection_is_not_retried(self, make_session):
        session = make_session()
        assert not asyncio.run(session.request_projection("no-such-projection"))


class TestResize:
    def test_invalidate_size_refits_to_new_extent(self, make_session):
        session = make_session()
        asyncio.run(session.load_boundaries())
        assert session.current_projection.clip_extent == (PADDING, PADDING, CANVAS_W - PADDING, CANVAS_H - PADDING)
        session.invalidate_size(400, 300)
        projection = session.current_projection
        assert projection.canvas_size == (400, 300)
        assert projection.clip_extent == (PADDING, PADDING, 400 - PADDING, 300 - PADDING)
        assert session.renderer.size == (400, 300)

    def test_resize_burst_is_debounced(self, make_session):
        session = make_session()
        calls = []
        original = session.invalidate_size

        def _spy(width, height):
            calls.append((width, height))
            return original(width, height)

        session.invalidate_size = _spy

        async def _scenario():
            await session.load_boundaries()
            for width in (310, 320, 330, 340):
                session.notify_resize(width, 240)
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.2)

        asyncio.run(_scenario())
        assert calls == [(340, 240)]
        assert session.current_projection.canvas_size == (340, 240)


class TestDeterminism:
    def test_round_trip_matches_direct_selection(self, make_session):
        direct = make_session()
        asyncio.run(direct.load_boundaries())
        direct.controller.select_projection("conic-conformal")
        expected = direct.renderer.rgba_buffer()

        session = make_session()
        asyncio.run(session.load_boundaries())
        for projection_id in ("conic-conformal", "mercator", "conic-conformal"):
            session.controller.select_projection(projection_id)
        assert np.array_equal(session.renderer.rgba_buffer(), expected)
        assert session.current_projection.scale == direct.current_projection.scale

    def test_home_only_view_renders_home_country(self, make_session):
        session = make_session()
        asyncio.run(session.load_boundaries())
        session.controller.select_view_mode(ViewMode.HOME_ONLY)
        assert session.controller.state.center_mode is CenterMode.HOME
        assert session.last_result.drawn == ["Taiwan"]

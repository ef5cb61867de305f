"""Tests for the layered renderer and its drawing surface."""

import numpy as np
import pytest
from matplotlib.colors import to_rgba

from projatlas.models import BoundaryFeature, BoundaryFeatureCollection, CenterMode, ViewMode, ViewState
from projatlas.render import LAYER_COUNTRIES, LAYER_GRATICULE, LAYER_REFERENCE, LAYER_SPHERE

from conftest import CANVAS_H, CANVAS_W


def _build(catalog, factory, home, state, size=(CANVAS_W, CANVAS_H)):
    return factory.build(catalog.require(state.projection_id), size[0], size[1], state, home)


class TestLayers:
    def test_all_layers_drawn(self, catalog, factory, renderer, boundaries, home):
        state = ViewState("equal-earth")
        result = renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        assert result.drawn == ["Taiwan", "Japan"]
        assert result.home_drawn
        assert len(renderer.layer_artists(LAYER_SPHERE)) == 2
        assert len(renderer.layer_artists(LAYER_COUNTRIES)) == 2
        assert len(renderer.layer_artists(LAYER_GRATICULE)) == 1
        assert len(renderer.layer_artists(LAYER_REFERENCE)) == 1

    def test_country_gids_are_feature_names(self, catalog, factory, renderer, boundaries, home):
        state = ViewState("equal-earth")
        renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        gids = [patch.get_gid() for patch in renderer.layer_artists(LAYER_COUNTRIES)]
        assert gids == ["Taiwan", "Japan"]

    def test_home_fill_differs_from_neutral(self, catalog, factory, renderer, boundaries, home, style):
        state = ViewState("equal-earth")
        renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        fills = {patch.get_gid(): patch.get_facecolor() for patch in renderer.layer_artists(LAYER_COUNTRIES)}
        assert fills["Taiwan"] == pytest.approx(to_rgba(style.home_fill))
        assert fills["Japan"] == pytest.approx(to_rgba(style.country_fill))

    def test_guides_can_be_disabled(self, catalog, factory, renderer, boundaries, home):
        renderer.draw_graticule = False
        renderer.draw_reference_lines = False
        state = ViewState("equal-earth")
        renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        assert renderer.layer_artists(LAYER_GRATICULE) == ()
        assert renderer.layer_artists(LAYER_REFERENCE) == ()

    def test_feature_on_far_side_is_hidden(self, catalog, factory, renderer, boundaries, home):
        state = ViewState("orthographic")
        result = renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        # Taiwan and Japan lie beyond the visible hemisphere of (0, 0)
        assert result.drawn == []
        assert result.hidden == ["Taiwan", "Japan"]


class TestIdempotence:
    def test_render_twice_gives_identical_output(self, catalog, factory, renderer, boundaries, home):
        state = ViewState("mollweide", CenterMode.HOME)
        projection = _build(catalog, factory, home, state)
        renderer.render(projection, boundaries, state, home)
        axes = renderer.figure.axes[0]
        first_counts = (len(axes.patches), len(axes.collections))
        first_pixels = renderer.rgba_buffer()
        renderer.render(projection, boundaries, state, home)
        assert (len(axes.patches), len(axes.collections)) == first_counts
        assert np.array_equal(renderer.rgba_buffer(), first_pixels)

    def test_switching_projection_replaces_layers(self, catalog, factory, renderer, boundaries, home):
        for projection_id in ("mercator", "orthographic", "conic-conformal"):
            state = ViewState(projection_id)
            renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        axes = renderer.figure.axes[0]
        expected = sum(len(renderer.layer_artists(name)) for name in (LAYER_SPHERE, LAYER_COUNTRIES))
        assert len(axes.patches) == expected


class TestHomeOnly:
    def test_only_home_country_is_drawn(self, catalog, factory, renderer, boundaries, home, style):
        state = ViewState("mercator", CenterMode.HOME, ViewMode.HOME_ONLY)
        result = renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        assert result.drawn == ["Taiwan"]
        (patch,) = renderer.layer_artists(LAYER_COUNTRIES)
        assert patch.get_gid() == "Taiwan"
        assert patch.get_facecolor() == pytest.approx(to_rgba(style.home_fill))


class TestMalformedFeatures:
    def test_malformed_features_are_skipped(self, catalog, factory, renderer, boundaries, home):
        broken = BoundaryFeatureCollection(
            features=(
                BoundaryFeature(name="Nowhere", geometry=None),
                BoundaryFeature(name="Garbage", geometry="not a geometry"),
                *boundaries.features,
            )
        )
        state = ViewState("equal-earth")
        result = renderer.render(_build(catalog, factory, home, state), broken, state, home)
        assert result.skipped == ["Nowhere", "Garbage"]
        assert result.drawn == ["Taiwan", "Japan"]


class TestSurface:
    def test_resize_changes_capture_size(self, renderer):
        renderer.resize(200, 120)
        assert renderer.size == (200, 120)
        image = renderer.capture_image()
        assert image.mode == "RGB"
        assert image.size == (200, 120)

    def test_save_png(self, catalog, factory, renderer, boundaries, home, tmp_path):
        state = ViewState("robinson")
        renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        path = renderer.save_png(tmp_path / "out" / "robinson.png")
        assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"

    def test_feature_at(self, catalog, factory, renderer, boundaries, home):
        state = ViewState("mercator", CenterMode.HOME, ViewMode.HOME_ONLY)
        renderer.render(_build(catalog, factory, home, state), boundaries, state, home)
        assert renderer.feature_at(CANVAS_W / 2.0, CANVAS_H / 2.0) == "Taiwan"
        assert renderer.feature_at(1.0, 1.0) is None

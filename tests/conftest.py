"""Shared fixtures: a two-country boundary dataset and small-canvas sessions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from shapely.geometry import shape

from projatlas.app import MapSession
from projatlas.boundaries import BoundaryDataSource
from projatlas.catalog import ProjectionCatalog, default_catalog
from projatlas.config import RenderStyleConfig, SessionConfig
from projatlas.models import BoundaryFeature, BoundaryFeatureCollection, HomeCountry
from projatlas.projection import ProjectionFactory
from projatlas.render import MapRenderer

CANVAS_W = 300
CANVAS_H = 200
PADDING = 32.0

TAIWAN_GEOMETRY = {
    "type": "Polygon",
    "coordinates": [
        [
            [120.11, 23.05],
            [120.72, 21.93],
            [121.55, 22.52],
            [121.95, 24.98],
            [121.50, 25.30],
            [120.70, 24.60],
            [120.11, 23.05],
        ]
    ],
}

JAPAN_GEOMETRY = {
    "type": "MultiPolygon",
    "coordinates": [
        [[[130.2, 31.2], [131.9, 31.4], [132.0, 33.9], [130.9, 34.0], [130.2, 31.2]]],
        [[[132.5, 34.0], [135.0, 33.5], [140.9, 35.7], [141.5, 40.5], [140.0, 41.3], [139.8, 38.0], [136.0, 36.5], [132.5, 35.4], [132.5, 34.0]]],
        [[[140.0, 41.8], [143.5, 42.0], [145.5, 43.3], [141.9, 45.4], [140.0, 41.8]]],
    ],
}


def _feature(properties: dict[str, Any], geometry: Any) -> dict[str, Any]:
    return {"type": "Feature", "properties": properties, "geometry": geometry}


@pytest.fixture
def geojson_payload() -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            _feature({"name": "Taiwan"}, TAIWAN_GEOMETRY),
            _feature({"ADMIN": "Japan"}, JAPAN_GEOMETRY),
        ],
    }


@pytest.fixture
def geojson_path(tmp_path: Path, geojson_payload: dict[str, Any]) -> Path:
    path = tmp_path / "countries.geojson"
    path.write_text(json.dumps(geojson_payload), encoding="utf-8")
    return path


@pytest.fixture
def boundaries() -> BoundaryFeatureCollection:
    return BoundaryFeatureCollection(
        features=(
            BoundaryFeature(name="Taiwan", geometry=shape(TAIWAN_GEOMETRY)),
            BoundaryFeature(name="Japan", geometry=shape(JAPAN_GEOMETRY)),
        )
    )


@pytest.fixture
def home() -> HomeCountry:
    geometry = shape(TAIWAN_GEOMETRY)
    centroid = geometry.centroid
    return HomeCountry(name="Taiwan", center=(centroid.x, centroid.y), geometry=geometry)


@pytest.fixture(scope="session")
def catalog() -> ProjectionCatalog:
    return default_catalog()


@pytest.fixture
def factory() -> ProjectionFactory:
    return ProjectionFactory(padding_px=PADDING)


@pytest.fixture
def style() -> RenderStyleConfig:
    return RenderStyleConfig()


@pytest.fixture
def renderer(style: RenderStyleConfig):
    surface = MapRenderer(style, width=CANVAS_W, height=CANVAS_H, dpi=100)
    yield surface
    surface.close()


@pytest.fixture
def make_session(catalog: ProjectionCatalog, geojson_path: Path, style: RenderStyleConfig):
    sessions: list[MapSession] = []

    def _make(*, data_source: Any | None = None, **kwargs: Any) -> MapSession:
        kwargs.setdefault("settings", SessionConfig(request_attempts=50, request_retry_s=0.01, resize_debounce_s=0.05))
        kwargs.setdefault("load_attempts", 3)
        kwargs.setdefault("retry_delay_s", 0.0)
        session = MapSession(
            catalog=catalog,
            factory=ProjectionFactory(padding_px=PADDING),
            renderer=MapRenderer(style, width=CANVAS_W, height=CANVAS_H, dpi=100),
            data_source=data_source or BoundaryDataSource(geojson_path),
            home_name="Taiwan",
            home_fallback_center=(121.0, 23.7),
            **kwargs,
        )
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture
def config_mapping(tmp_path: Path) -> dict[str, Any]:
    return {
        "boundaries": {"source": "data/countries.geojson", "load_attempts": 2, "retry_delay_s": 0.5},
        "home_country": {"name": "Taiwan", "fallback_center": [120.97, 23.75]},
        "view": {"default_projection": "equal-earth"},
        "canvas": {"width_px": 640, "height_px": 400, "dpi": 100, "padding_px": 32},
        "render": {"scale_hints": {"conic-conformal": 2.0}},
        "export": {"output_pdf": "build/atlas.pdf"},
        "paths": {"build_root": "build", "renders_dir": "build/renders", "logs_dir": "build/logs"},
    }

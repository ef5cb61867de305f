"""Country boundary loading.

GeoJSON sources are read directly and parsed feature by feature with shapely,
so one broken geometry does not take the whole dataset down. Other vector
formats (Natural Earth shapefiles, GeoPackage) go through geopandas.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import requests

from .models import BoundaryFeature, BoundaryFeatureCollection, HomeCountry

_LOGGER = logging.getLogger("projatlas.boundaries")

DEFAULT_NAME_PROPERTIES = (
    "name",
    "NAME",
    "ADMIN",
    "admin",
    "NAME_EN",
    "name_en",
    "NAME_LONG",
    "sovereignt",
)
_GEOJSON_SUFFIXES = {".json", ".geojson"}


class BoundaryDataError(RuntimeError):
    """Raised when the boundary dataset cannot be loaded at all."""


def _first_present(properties: Mapping[str, Any], candidates: Sequence[str]) -> str | None:
    for key in candidates:
        value = properties.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


class BoundaryDataSource:
    """Loads the static country feature collection from a path or URL."""

    def __init__(
        self,
        source: str | Path,
        *,
        name_properties: Sequence[str] = DEFAULT_NAME_PROPERTIES,
        request_timeout_s: float = 30.0,
    ) -> None:
        self.source = str(source)
        self.name_properties = tuple(name_properties)
        self.request_timeout_s = request_timeout_s

    @property
    def is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    def load(self) -> BoundaryFeatureCollection:
        """Read and parse the dataset. Raises ``BoundaryDataError`` on failure."""
        if self.is_remote:
            payload = self._fetch_remote()
            return self.parse_feature_collection(payload)

        path = Path(self.source)
        if not path.exists():
            raise BoundaryDataError(f"Boundary dataset not found: {path}")
        if path.suffix.lower() in _GEOJSON_SUFFIXES:
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise BoundaryDataError(f"Failed reading boundary dataset {path}: {exc}") from exc
            return self.parse_feature_collection(payload)
        return self._load_with_geopandas(path)

    def _fetch_remote(self) -> Any:
        try:
            response = requests.get(self.source, timeout=self.request_timeout_s)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise BoundaryDataError(f"Failed fetching boundary dataset {self.source}: {exc}") from exc

    def parse_feature_collection(self, payload: Any) -> BoundaryFeatureCollection:
        if not isinstance(payload, Mapping) or payload.get("type") != "FeatureCollection":
            raise BoundaryDataError("Boundary dataset is not a GeoJSON FeatureCollection")
        raw_features = payload.get("features")
        if not isinstance(raw_features, list):
            raise BoundaryDataError("Boundary dataset has no 'features' list")

        shape = _require_shapely_shape()
        features: list[BoundaryFeature] = []
        malformed = 0
        for idx, raw in enumerate(raw_features):
            if not isinstance(raw, Mapping):
                malformed += 1
                continue
            properties = raw.get("properties") or {}
            if not isinstance(properties, Mapping):
                properties = {}
            name = _first_present(properties, self.name_properties) or f"feature-{idx}"
            geometry: Any | None
            try:
                geometry = shape(raw.get("geometry")) if raw.get("geometry") else None
            except Exception as exc:
                _LOGGER.debug("Feature %s has malformed geometry: %s", name, exc)
                geometry = None
            if geometry is None or geometry.is_empty:
                malformed += 1
                geometry = None
            features.append(BoundaryFeature(name=name, geometry=geometry, properties=dict(properties)))

        if malformed:
            _LOGGER.warning("%d boundary features have no usable geometry.", malformed)
        _LOGGER.info("Loaded %d boundary features from %s", len(features), self.source)
        return BoundaryFeatureCollection(features=tuple(features))

    def _load_with_geopandas(self, path: Path) -> BoundaryFeatureCollection:
        try:
            gpd = _require_geopandas()
        except RuntimeError as exc:
            raise BoundaryDataError(str(exc)) from exc
        try:
            frame = gpd.read_file(path)
            if frame.crs is not None and not frame.crs.is_geographic:
                frame = frame.to_crs("EPSG:4326")
        except Exception as exc:
            raise BoundaryDataError(f"Failed reading boundary dataset {path}: {exc}") from exc

        name_col = _first_existing_column(frame.columns, self.name_properties)
        features: list[BoundaryFeature] = []
        for idx, row in enumerate(frame.itertuples(index=False)):
            row_dict = row._asdict()
            geometry = row_dict.pop("geometry", None)
            if geometry is not None and geometry.is_empty:
                geometry = None
            raw_name = row_dict.get(name_col) if name_col else None
            name = str(raw_name).strip() if raw_name is not None else ""
            features.append(
                BoundaryFeature(name=name or f"feature-{idx}", geometry=geometry, properties=row_dict)
            )
        _LOGGER.info("Loaded %d boundary features from %s", len(features), path)
        return BoundaryFeatureCollection(features=tuple(features))


def resolve_home_country(
    boundaries: BoundaryFeatureCollection | None,
    *,
    name: str,
    fallback_center: tuple[float, float],
) -> HomeCountry:
    """Home country with the centroid of its feature, or the configured center."""
    feature = boundaries.find(name) if boundaries is not None else None
    if feature is None or feature.geometry is None:
        if boundaries is not None:
            _LOGGER.warning("Home country %s not found in boundary data; using configured center.", name)
        return HomeCountry(name=name, center=fallback_center)
    centroid = feature.geometry.centroid
    return HomeCountry(
        name=name,
        center=(float(centroid.x), float(centroid.y)),
        geometry=feature.geometry,
    )


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {str(col): str(col) for col in columns}
    for candidate in candidates:
        if candidate in existing:
            return existing[candidate]
    lowered = {col.lower(): col for col in existing}
    for candidate in candidates:
        match = lowered.get(candidate.lower())
        if match:
            return match
    return None


def _require_shapely_shape() -> Any:
    try:
        from shapely.geometry import shape
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for boundary geometry parsing") from exc
    return shape


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:
        raise RuntimeError(
            "geopandas is required for non-GeoJSON boundary datasets (pip install projatlas[natural-earth])"
        ) from exc
    return gpd

"""Lon/lat geometry preparation ahead of projection.

Everything here works in degrees on the unit sphere:

- rotating geometries so an arbitrary point lands on the projection center,
- cutting rotated geometries along the antimeridian,
- restricting them to the region of the sphere a projection can draw
  (latitude band, small-circle cap, interruption lobes).

The projection formulas themselves live in PROJ.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import shapely
from shapely.affinity import translate
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Polygon

from .models import ProjectionDescriptor

Rotation = tuple[float, float, float]

DENSIFY_STEP_DEG = 1.0
# Keeps cap and lobe edges strictly inside the area where PROJ is defined.
_EDGE_MARGIN_DEG = 1e-3
_LOBE_MARGIN_DEG = 1e-6
_WORLD_OFFSETS = (-360.0, 0.0, 360.0)


def rotate_coordinates(coords: np.ndarray, rotation: Rotation) -> np.ndarray:
    """Rotate ``(N, 2)`` lon/lat coordinates by ``(lambda, phi, gamma)`` degrees.

    The longitude shift is applied first, then the rotation about the y axis
    (phi) and the x axis (gamma). ``(-lon, -lat, 0)`` moves ``(lon, lat)`` to
    ``(0, 0)``.
    """
    coords = np.asarray(coords, dtype=float)
    if coords.size == 0:
        return coords.reshape(0, 2)
    d_lambda, d_phi, d_gamma = (math.radians(value) for value in rotation)
    lam = np.radians(coords[:, 0]) + d_lambda
    lam = (lam + math.pi) % (2.0 * math.pi) - math.pi
    phi = np.radians(coords[:, 1])

    if d_phi or d_gamma:
        cos_d_phi, sin_d_phi = math.cos(d_phi), math.sin(d_phi)
        cos_d_gamma, sin_d_gamma = math.cos(d_gamma), math.sin(d_gamma)
        cos_phi = np.cos(phi)
        x = np.cos(lam) * cos_phi
        y = np.sin(lam) * cos_phi
        z = np.sin(phi)
        k = z * cos_d_phi + x * sin_d_phi
        lam = np.arctan2(y * cos_d_gamma - k * sin_d_gamma, x * cos_d_phi - z * sin_d_phi)
        phi = np.arcsin(np.clip(k * cos_d_gamma + y * sin_d_gamma, -1.0, 1.0))

    return np.column_stack([np.degrees(lam), np.degrees(phi)])


def rotate_geometry(geometry: Any, rotation: Rotation) -> Any:
    if not any(rotation):
        return geometry
    return shapely.transform(geometry, lambda coords: rotate_coordinates(coords, rotation))


def cut_antimeridian(geometry: Any) -> list[Any]:
    """Split a rotated geometry into parts that stay inside [-180, 180].

    Rings are unwrapped into a continuous longitude range first. A ring whose
    unwrapped end lands 360 degrees from its start goes around a pole and is
    closed along that pole.
    """
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Point":
        return [] if geometry.is_empty else [geometry]
    if geom_type == "Polygon":
        return _fold_into_world(_unwrap_polygon(geometry))
    if geom_type == "LineString":
        return _fold_into_world(_unwrap_line(geometry))
    if geom_type in {"MultiPolygon", "MultiLineString", "GeometryCollection"}:
        parts: list[Any] = []
        for part in geometry.geoms:
            parts.extend(cut_antimeridian(part))
        return parts
    return []


def _unwrap_ring(coords: np.ndarray, *, close_pole: bool) -> np.ndarray:
    coords = np.asarray(coords, dtype=float)[:, :2].copy()
    if len(coords) < 2:
        return coords
    coords[:, 0] = np.unwrap(coords[:, 0], period=360.0)
    drift = coords[-1, 0] - coords[0, 0]
    if close_pole and abs(drift) > 180.0:
        pole = 90.0 if float(np.mean(coords[:, 1])) > 0 else -90.0
        closure = np.array([[coords[-1, 0], pole], [coords[0, 0], pole]])
        coords = np.vstack([coords, closure])
    return coords


def _unwrap_polygon(polygon: Any) -> Any:
    shell = _unwrap_ring(np.asarray(polygon.exterior.coords), close_pole=True)
    if len(shell) < 4:
        return Polygon()
    shell_center = float(np.mean(shell[:, 0]))
    holes: list[np.ndarray] = []
    for interior in polygon.interiors:
        hole = _unwrap_ring(np.asarray(interior.coords), close_pole=False)
        if len(hole) < 4:
            continue
        offset = 360.0 * round((float(np.mean(hole[:, 0])) - shell_center) / 360.0)
        hole[:, 0] -= offset
        holes.append(hole)
    unwrapped = Polygon(shell, holes)
    if not unwrapped.is_valid:
        unwrapped = shapely.make_valid(unwrapped)
    return unwrapped


def _unwrap_line(line: Any) -> Any:
    coords = _unwrap_ring(np.asarray(line.coords), close_pole=False)
    if len(coords) < 2:
        return LineString()
    return LineString(coords)


def _fold_into_world(geometry: Any) -> list[Any]:
    if geometry.is_empty:
        return []
    pieces: list[Any] = []
    dimension = shapely.get_dimensions(geometry)
    for offset in _WORLD_OFFSETS:
        window = shapely.box(offset - 180.0, -90.0, offset + 180.0, 90.0)
        if not geometry.intersects(window):
            continue
        part = geometry.intersection(window)
        # Touching a neighbouring window leaves a lower-dimensional sliver.
        if part.is_empty or shapely.get_dimensions(part) < dimension:
            continue
        pieces.append(translate(part, xoff=-offset) if offset else part)
    return pieces


def cap_polygon(clip_angle: float, *, samples: int = 361) -> Polygon:
    """Lon/lat region within ``clip_angle`` degrees of (0, 0).

    A point is inside when ``cos(lat) * cos(lon) >= cos(clip_angle)``, so for
    each latitude the visible longitudes are ``|lon| <= L(lat)``.
    """
    angle = max(min(clip_angle, 180.0) - _EDGE_MARGIN_DEG, _EDGE_MARGIN_DEG)
    lat_max = min(angle, 90.0)
    lats = np.linspace(-lat_max, lat_max, samples)
    cos_lat = np.maximum(np.cos(np.radians(lats)), 1e-12)
    ratio = np.clip(math.cos(math.radians(angle)) / cos_lat, -1.0, 1.0)
    half_width = np.degrees(np.arccos(ratio))
    right = np.column_stack([half_width, lats])
    left = np.column_stack([-half_width[::-1], lats[::-1]])
    return Polygon(np.vstack([right, left]))


def cap_circle(clip_angle: float, *, samples: int = 721) -> Polygon:
    """Small circle of radius ``clip_angle`` around (0, 0) as a lon/lat ring."""
    angle = math.radians(max(min(clip_angle, 180.0) - _EDGE_MARGIN_DEG, _EDGE_MARGIN_DEG))
    azimuth = np.linspace(0.0, 2.0 * math.pi, samples)
    lat = np.arcsin(np.sin(angle) * np.cos(azimuth))
    lon = np.arctan2(np.sin(azimuth) * math.sin(angle), math.cos(angle))
    return Polygon(np.column_stack([np.degrees(lon), np.degrees(lat)]))


@dataclass(frozen=True, slots=True)
class SphereDomain:
    """Drawable part of the sphere for one projection, in the rotated frame."""

    regions: tuple[Polygon, ...]
    clip_angle: float | None = None

    @classmethod
    def from_descriptor(cls, descriptor: ProjectionDescriptor) -> SphereDomain:
        lat_min, lat_max = descriptor.lat_range
        boxes: list[Polygon] = []
        if descriptor.lobes:
            for lon0, lon1, lobe_lat0, lobe_lat1 in descriptor.lobes:
                lat0 = max(lobe_lat0, lat_min)
                lat1 = min(lobe_lat1, lat_max)
                if lat1 <= lat0:
                    continue
                boxes.append(
                    shapely.box(lon0 + _LOBE_MARGIN_DEG, lat0, lon1 - _LOBE_MARGIN_DEG, lat1)
                )
        else:
            boxes.append(shapely.box(-180.0, lat_min, 180.0, lat_max))

        if descriptor.clip_angle is not None:
            cap = cap_polygon(descriptor.clip_angle)
            boxes = [box.intersection(cap) for box in boxes]
        regions = tuple(
            shapely.segmentize(region, DENSIFY_STEP_DEG)
            for region in boxes
            if isinstance(region, Polygon) and not region.is_empty
        )
        return cls(regions=regions, clip_angle=descriptor.clip_angle)

    def clip(self, geometries: Sequence[Any]) -> list[Any]:
        """Intersect antimeridian-cut parts with each region, densified."""
        pieces: list[Any] = []
        for geometry in geometries:
            if geometry.is_empty:
                continue
            for region in self.regions:
                if not geometry.intersects(region):
                    continue
                part = geometry.intersection(region)
                if part.is_empty:
                    continue
                pieces.append(shapely.segmentize(part, DENSIFY_STEP_DEG))
        return pieces

    def outline_rings(self) -> list[Polygon]:
        """Lon/lat polygons whose projected images form the sphere outline."""
        if self.clip_angle is not None:
            return [cap_circle(self.clip_angle)]
        return list(self.regions)


def graticule_lines(step_deg: float) -> MultiLineString:
    """Meridians and parallels every ``step_deg`` degrees."""
    if step_deg <= 0:
        raise ValueError("graticule step must be > 0")
    lines: list[LineString] = []
    lats = np.linspace(-90.0, 90.0, 181)
    lons = np.linspace(-180.0, 180.0, 361)
    for lon in np.arange(-180.0, 180.0, step_deg):
        lines.append(LineString(np.column_stack([np.full_like(lats, lon), lats])))
    for lat in np.arange(-90.0 + step_deg, 90.0, step_deg):
        lines.append(LineString(np.column_stack([lons, np.full_like(lons, lat)])))
    return MultiLineString(lines)


def reference_lines(lon: float, lat: float) -> MultiLineString:
    """Equator, prime meridian, and the meridian/parallel through ``(lon, lat)``."""
    lats = np.linspace(-90.0, 90.0, 181)
    lons = np.linspace(-180.0, 180.0, 361)
    lines = [
        LineString(np.column_stack([lons, np.zeros_like(lons)])),
        LineString(np.column_stack([np.zeros_like(lats), lats])),
        LineString(np.column_stack([np.full_like(lats, lon), lats])),
        LineString(np.column_stack([lons, np.full_like(lons, lat)])),
    ]
    return MultiLineString(lines)


def polygon_parts(geometry: Any) -> list[Polygon]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [] if geometry.is_empty else [geometry]
    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        parts: list[Polygon] = []
        for part in geometry.geoms:
            parts.extend(polygon_parts(part))
        return parts
    return []


def line_parts(geometry: Any) -> list[LineString]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type in {"LineString", "LinearRing"}:
        return [] if geometry.is_empty else [LineString(geometry.coords)]
    if geom_type in {"MultiLineString", "GeometryCollection"}:
        parts: list[LineString] = []
        for part in geometry.geoms:
            parts.extend(line_parts(part))
        return parts
    return []


def as_multipolygon(parts: Sequence[Polygon]) -> MultiPolygon | None:
    return MultiPolygon(list(parts)) if parts else None

"""Projection factory: catalog descriptor + canvas + view state -> configured projection."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping

import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import MultiLineString, MultiPolygon, Point

from .models import CenterMode, HomeCountry, ProjectionDescriptor, ProjectionFamily, ViewMode, ViewState
from .sphere import (
    DENSIFY_STEP_DEG,
    Rotation,
    SphereDomain,
    as_multipolygon,
    cut_antimeridian,
    graticule_lines,
    line_parts,
    polygon_parts,
    reference_lines,
    rotate_geometry,
)

_LOGGER = logging.getLogger("projatlas.projection")

Extent = tuple[float, float, float, float]

_SUBSTITUTE_OPERATION = "eqc"


class ProjectionFitError(RuntimeError):
    """Raised when a projected target has no usable bounds."""


@dataclass(frozen=True, slots=True)
class FitStrategy:
    """How one projection family is configured and fitted to the canvas."""

    name: str
    pin_center: bool = False
    standard_parallels: bool = False
    post_scale: bool = False


AZIMUTHAL_FIT = FitStrategy(name="azimuthal", pin_center=True)
CONIC_FIT = FitStrategy(name="conic", standard_parallels=True, post_scale=True)
DIRECT_FIT = FitStrategy(name="direct")

_FIT_STRATEGIES: Mapping[ProjectionFamily, FitStrategy] = {
    ProjectionFamily.AZIMUTHAL: AZIMUTHAL_FIT,
    ProjectionFamily.CONIC: CONIC_FIT,
    ProjectionFamily.PSEUDO_CONIC: DIRECT_FIT,
    ProjectionFamily.CYLINDRICAL: DIRECT_FIT,
    ProjectionFamily.PSEUDO_CYLINDRICAL: DIRECT_FIT,
    ProjectionFamily.INTERRUPTED: DIRECT_FIT,
}


def fit_strategy_for(family: ProjectionFamily) -> FitStrategy:
    return _FIT_STRATEGIES[family]


class _PlaneProjector:
    """Rotates, cuts, clips and projects lon/lat geometry onto the unit plane."""

    def __init__(
        self,
        *,
        transformer: Any,
        rotation: Rotation,
        aspect_rotation: Rotation | None,
        domain: SphereDomain,
    ) -> None:
        self.transformer = transformer
        self.rotation = rotation
        self.aspect_rotation = aspect_rotation
        self.domain = domain

    def _forward(self, coords: np.ndarray) -> np.ndarray:
        x, y = self.transformer.transform(coords[:, 0], coords[:, 1])
        return np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])

    def prepare(self, geometry: Any) -> list[Any]:
        # Edges longer than 180 degrees of longitude would fold away when unwrapped.
        geometry = shapely.segmentize(geometry, DENSIFY_STEP_DEG)
        rotated = rotate_geometry(geometry, self.rotation)
        if self.aspect_rotation is not None:
            rotated = rotate_geometry(rotated, self.aspect_rotation)
        return self.domain.clip(cut_antimeridian(rotated))

    def project_piece(self, piece: Any) -> Any | None:
        projected = shapely.transform(piece, self._forward)
        if not np.isfinite(shapely.get_coordinates(projected)).all():
            return None
        return projected

    def polygons(self, geometry: Any) -> MultiPolygon | None:
        parts: list[Any] = []
        for piece in self.prepare(geometry):
            projected = self.project_piece(piece)
            if projected is not None:
                parts.extend(polygon_parts(projected))
        return as_multipolygon(parts)

    def lines(self, geometry: Any) -> MultiLineString | None:
        parts: list[Any] = []
        for piece in self.prepare(geometry):
            projected = self.project_piece(piece)
            if projected is not None:
                parts.extend(line_parts(projected))
        return MultiLineString(parts) if parts else None

    def outline(self) -> MultiPolygon | None:
        parts: list[Any] = []
        for ring in self.domain.outline_rings():
            projected = self.project_piece(ring)
            if projected is None:
                continue
            if not projected.is_valid:
                projected = shapely.make_valid(projected)
            parts.extend(polygon_parts(projected))
        if not parts:
            return None
        merged = shapely.union_all(parts)
        return as_multipolygon(polygon_parts(merged))


@dataclass(frozen=True, slots=True)
class ConfiguredProjection:
    """Fitted projection ready to map lon/lat geometry to canvas pixels.

    Canvas coordinates grow right and down: ``x = tx + k * u`` and
    ``y = ty - k * v`` for projected unit-sphere coordinates ``(u, v)``.
    Everything returned is clipped to ``clip_extent``.
    """

    descriptor: ProjectionDescriptor
    rotation: Rotation
    scale: float
    translate: tuple[float, float]
    clip_extent: Extent
    canvas_size: tuple[int, int]
    fallback: bool
    projector: _PlaneProjector = field(repr=False, compare=False)

    def _to_canvas(self, coords: np.ndarray) -> np.ndarray:
        tx, ty = self.translate
        return np.column_stack([tx + self.scale * coords[:, 0], ty - self.scale * coords[:, 1]])

    def _clip_box(self) -> Any:
        x0, y0, x1, y1 = self.clip_extent
        return shapely.box(x0, y0, x1, y1)

    def _clip_polygons(self, plane: MultiPolygon | None) -> MultiPolygon | None:
        if plane is None:
            return None
        canvas = shapely.transform(plane, self._to_canvas)
        if not canvas.is_valid:
            canvas = shapely.make_valid(canvas)
        return as_multipolygon(polygon_parts(canvas.intersection(self._clip_box())))

    def project(self, geometry: Any) -> MultiPolygon | None:
        """Canvas polygons for a lon/lat (multi)polygon; None when nothing is visible."""
        return self._clip_polygons(self.projector.polygons(geometry))

    def project_lines(self, geometry: Any) -> MultiLineString | None:
        plane = self.projector.lines(geometry)
        if plane is None:
            return None
        canvas = shapely.transform(plane, self._to_canvas)
        parts = line_parts(canvas.intersection(self._clip_box()))
        return MultiLineString(parts) if parts else None

    def outline(self) -> MultiPolygon | None:
        """Canvas image of the whole sphere."""
        return self._clip_polygons(self.projector.outline())

    def graticule(self, step_deg: float) -> MultiLineString | None:
        return self.project_lines(graticule_lines(step_deg))

    def reference_lines(self, lon: float, lat: float) -> MultiLineString | None:
        return self.project_lines(reference_lines(lon, lat))

    def project_point(self, lon: float, lat: float) -> tuple[float, float] | None:
        pieces = self.projector.prepare(Point(lon, lat))
        for piece in pieces:
            projected = self.projector.project_piece(piece)
            if projected is None or projected.is_empty:
                continue
            x, y = self._to_canvas(shapely.get_coordinates(projected))[0]
            x0, y0, x1, y1 = self.clip_extent
            if x0 <= x <= x1 and y0 <= y <= y1:
                return (float(x), float(y))
        return None


class ProjectionFactory:
    """Builds a fresh ``ConfiguredProjection`` for every view change.

    Fitting is chosen by projection family. Any failure while fitting, or
    while creating the PROJ operation, is absorbed by the manual
    scale/translate fallback so a renderable projection always comes back.
    """

    def __init__(
        self,
        *,
        padding_px: float = 32.0,
        standard_parallels: tuple[float, float] = (20.0, 60.0),
        fixed_meridian: float = 150.0,
        scale_hints: Mapping[str, float] | None = None,
    ) -> None:
        self.padding_px = float(padding_px)
        self.standard_parallels = standard_parallels
        self.fixed_meridian = float(fixed_meridian)
        self.scale_hints = dict(scale_hints or {})

    def resolve_center(self, view_state: ViewState, home: HomeCountry) -> tuple[float, float]:
        if view_state.view_mode is ViewMode.HOME_ONLY or view_state.center_mode is CenterMode.HOME:
            return home.center
        if view_state.center_mode is CenterMode.MERIDIAN:
            return (self.fixed_meridian, 0.0)
        return (0.0, 0.0)

    def fit_extent(self, width: int, height: int) -> Extent:
        padding = min(self.padding_px, max(min(width, height) / 2.0 - 1.0, 0.0))
        return (padding, padding, width - padding, height - padding)

    def scale_hint(self, descriptor: ProjectionDescriptor) -> float:
        return float(self.scale_hints.get(descriptor.id, descriptor.base_scale_hint))

    def operation_string(self, descriptor: ProjectionDescriptor) -> str:
        strategy = fit_strategy_for(descriptor.family)
        params: dict[str, str] = {"R": "1"}
        if strategy.pin_center:
            params.update({"lon_0": "0", "lat_0": "0"})
        if strategy.standard_parallels:
            lat_1, lat_2 = self.standard_parallels
            params.update({"lat_1": f"{lat_1:g}", "lat_2": f"{lat_2:g}"})
        params.update(descriptor.params)
        step = " ".join([f"+proj={descriptor.operation}", *(f"+{k}={v}" for k, v in params.items())])
        pipeline = f"+proj=pipeline +step +proj=unitconvert +xy_in=deg +xy_out=rad +step {step}"
        if descriptor.axis_order:
            pipeline += f" +step +proj=axisswap +order={descriptor.axis_order}"
        return pipeline

    def build(
        self,
        descriptor: ProjectionDescriptor,
        width: int,
        height: int,
        view_state: ViewState,
        home: HomeCountry,
    ) -> ConfiguredProjection:
        width = max(int(width), 1)
        height = max(int(height), 1)
        center_lon, center_lat = self.resolve_center(view_state, home)
        rotation: Rotation = (-center_lon, -center_lat, 0.0)
        extent = self.fit_extent(width, height)
        strategy = fit_strategy_for(descriptor.family)

        fallback = False
        try:
            transformer = _create_transformer(self.operation_string(descriptor))
        except Exception as exc:
            _LOGGER.warning(
                "Projection %s could not be created (%s); substituting %s.",
                descriptor.id,
                exc,
                _SUBSTITUTE_OPERATION,
            )
            transformer = _create_transformer(
                "+proj=pipeline +step +proj=unitconvert +xy_in=deg +xy_out=rad "
                f"+step +proj={_SUBSTITUTE_OPERATION} +R=1"
            )
            fallback = True

        projector = _PlaneProjector(
            transformer=transformer,
            rotation=rotation,
            aspect_rotation=descriptor.aspect_rotation,
            domain=SphereDomain.from_descriptor(descriptor),
        )

        scale, translate = self._manual_fit(width, height)
        if not fallback:
            try:
                target = self._fit_target(projector, descriptor, view_state, home)
                scale, translate = _fit_bounds(target.bounds, extent)
                hint = self.scale_hint(descriptor)
                if strategy.post_scale and not math.isclose(hint, 1.0):
                    scale, translate = _fit_bounds(target.bounds, extent, multiplier=hint)
            except (ProjectionFitError, GEOSException, ValueError) as exc:
                _LOGGER.warning(
                    "Fitting %s failed (%s); using manual scale/translate.", descriptor.id, exc
                )
                scale, translate = self._manual_fit(width, height)
                fallback = True

        _LOGGER.debug(
            "Built %s (%s fit): scale=%.3f translate=(%.1f, %.1f) rotation=%s fallback=%s",
            descriptor.id,
            strategy.name,
            scale,
            translate[0],
            translate[1],
            rotation,
            fallback,
        )
        return ConfiguredProjection(
            descriptor=descriptor,
            rotation=rotation,
            scale=scale,
            translate=translate,
            clip_extent=extent,
            canvas_size=(width, height),
            fallback=fallback,
            projector=projector,
        )

    def _fit_target(
        self,
        projector: _PlaneProjector,
        descriptor: ProjectionDescriptor,
        view_state: ViewState,
        home: HomeCountry,
    ) -> Any:
        if view_state.view_mode is ViewMode.HOME_ONLY:
            if home.geometry is not None:
                target = projector.polygons(home.geometry)
                if target is not None and not target.is_empty:
                    return target
            _LOGGER.warning(
                "Home country %s is not drawable under %s; fitting the whole sphere.",
                home.name,
                descriptor.id,
            )
        outline = projector.outline()
        if outline is None or outline.is_empty:
            raise ProjectionFitError(f"{descriptor.id} has no finite sphere outline")
        return outline

    def _manual_fit(self, width: int, height: int) -> tuple[float, tuple[float, float]]:
        scale = max(min(width, height) / 2.0 - self.padding_px, 1.0)
        return (scale, (width / 2.0, height / 2.0))


def _fit_bounds(
    bounds: tuple[float, float, float, float],
    extent: Extent,
    *,
    multiplier: float = 1.0,
) -> tuple[float, tuple[float, float]]:
    min_x, min_y, max_x, max_y = (float(value) for value in bounds)
    if not all(math.isfinite(value) for value in (min_x, min_y, max_x, max_y)):
        raise ProjectionFitError("non-finite bounds")
    span_x = max_x - min_x
    span_y = max_y - min_y
    if span_x <= 0 and span_y <= 0:
        raise ProjectionFitError("degenerate bounds")
    x0, y0, x1, y1 = extent
    candidates = []
    if span_x > 0:
        candidates.append((x1 - x0) / span_x)
    if span_y > 0:
        candidates.append((y1 - y0) / span_y)
    scale = min(candidates) * multiplier
    if not math.isfinite(scale) or scale <= 0:
        raise ProjectionFitError("non-positive scale")
    center_x = (min_x + max_x) / 2.0
    center_y = (min_y + max_y) / 2.0
    translate = ((x0 + x1) / 2.0 - scale * center_x, (y0 + y1) / 2.0 + scale * center_y)
    return (scale, translate)


@lru_cache(maxsize=256)
def _create_transformer(pipeline: str) -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for projection math") from exc
    return Transformer.from_pipeline(pipeline)

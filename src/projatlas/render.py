"""Drawing surface and layered map rendering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry.polygon import orient

from .config import RenderStyleConfig
from .models import BoundaryFeatureCollection, HomeCountry, ViewMode, ViewState
from .projection import ConfiguredProjection
from .sphere import line_parts, polygon_parts

_LOGGER = logging.getLogger("projatlas.render")

LAYER_SPHERE = "sphere"
LAYER_COUNTRIES = "countries"
LAYER_GRATICULE = "graticule"
LAYER_REFERENCE = "reference"
LAYERS = (LAYER_SPHERE, LAYER_COUNTRIES, LAYER_GRATICULE, LAYER_REFERENCE)

_Z_SPHERE = 0
_Z_GRATICULE = 1
_Z_COUNTRIES = 2
_Z_REFERENCE = 3
_Z_FRAME = 4

_SIZE_EPS = 1e-6


@dataclass(slots=True)
class RenderResult:
    projection_id: str
    view_mode: ViewMode
    fallback: bool = False
    drawn: list[str] = field(default_factory=list)
    hidden: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    home_drawn: bool = False

    @property
    def drawn_count(self) -> int:
        return len(self.drawn)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class MapRenderer:
    """Sole owner of the drawing surface.

    The surface is a matplotlib ``Figure`` rasterized by the Agg canvas. Axes
    span the whole figure with data units equal to canvas pixels and y growing
    downward, so ``ConfiguredProjection`` output can be drawn as-is. Every
    ``render`` call removes and redraws each layer.
    """

    def __init__(
        self,
        style: RenderStyleConfig,
        *,
        width: int,
        height: int,
        dpi: int = 100,
        graticule_step_deg: float = 30.0,
        draw_graticule: bool = True,
        draw_reference_lines: bool = True,
    ) -> None:
        figure_cls, canvas_cls = _require_matplotlib()
        self.style = style
        self.dpi = dpi
        self.graticule_step_deg = graticule_step_deg
        self.draw_graticule = draw_graticule
        self.draw_reference_lines = draw_reference_lines
        self._figure = figure_cls(dpi=dpi)
        self._canvas = canvas_cls(self._figure)
        self._figure.patch.set_facecolor(style.background)
        self._ax = self._figure.add_axes((0.0, 0.0, 1.0, 1.0))
        self._ax.set_axis_off()
        self._ax.set_facecolor(style.background)
        self._layers: dict[str, list[Any]] = {name: [] for name in LAYERS}
        self._size = (1, 1)
        self.resize(width, height)

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    @property
    def figure(self) -> Any:
        return self._figure

    def resize(self, width: int, height: int) -> None:
        width = max(int(width), 1)
        height = max(int(height), 1)
        self._size = (width, height)
        # Agg truncates the pixel size; keep width/dpi*dpi from rounding down.
        self._figure.set_size_inches((width + _SIZE_EPS) / self.dpi, (height + _SIZE_EPS) / self.dpi)
        self._ax.set_xlim(0, width)
        self._ax.set_ylim(height, 0)

    def layer_artists(self, name: str) -> tuple[Any, ...]:
        return tuple(self._layers[name])

    def clear(self) -> None:
        for name in LAYERS:
            self._replace_layer(name, [])

    def render(
        self,
        projection: ConfiguredProjection,
        boundaries: BoundaryFeatureCollection,
        view_state: ViewState,
        home: HomeCountry,
    ) -> RenderResult:
        result = RenderResult(
            projection_id=projection.descriptor.id,
            view_mode=view_state.view_mode,
            fallback=projection.fallback,
        )
        self._replace_layer(LAYER_SPHERE, self._sphere_artists(projection))
        self._replace_layer(
            LAYER_COUNTRIES, self._country_artists(projection, boundaries, view_state, home, result)
        )
        self._replace_layer(
            LAYER_GRATICULE,
            self._line_artists(
                _guide_lines(projection, LAYER_GRATICULE, projection.graticule, self.graticule_step_deg)
                if self.draw_graticule
                else None,
                gid=LAYER_GRATICULE,
                color=self.style.graticule_color,
                width=self.style.graticule_width,
                zorder=_Z_GRATICULE,
            ),
        )
        self._replace_layer(
            LAYER_REFERENCE,
            self._line_artists(
                _guide_lines(projection, LAYER_REFERENCE, projection.reference_lines, *home.center)
                if self.draw_reference_lines
                else None,
                gid=LAYER_REFERENCE,
                color=self.style.reference_color,
                width=self.style.reference_width,
                zorder=_Z_REFERENCE,
            ),
        )
        if result.skipped:
            _LOGGER.debug("Skipped %d malformed features under %s.", len(result.skipped), result.projection_id)
        _LOGGER.debug(
            "Rendered %s: %d features drawn, %d hidden, %d skipped.",
            result.projection_id,
            len(result.drawn),
            len(result.hidden),
            len(result.skipped),
        )
        return result

    def _replace_layer(self, name: str, artists: Sequence[Any]) -> None:
        for artist in self._layers[name]:
            artist.remove()
        for artist in artists:
            if _is_line_collection(artist):
                self._ax.add_collection(artist, autolim=False)
            else:
                self._ax.add_patch(artist)
        self._layers[name] = list(artists)

    def _sphere_artists(self, projection: ConfiguredProjection) -> list[Any]:
        try:
            outline = projection.outline()
        except (GEOSException, ValueError) as exc:
            _LOGGER.warning("Sphere outline for %s could not be drawn: %s", projection.descriptor.id, exc)
            return []
        if outline is None:
            return []
        path = _polygon_path(polygon_parts(outline))
        if path is None:
            return []
        patch_cls = _require_path_patch()
        fill = patch_cls(
            path,
            facecolor=self.style.sphere_fill,
            edgecolor="none",
            zorder=_Z_SPHERE,
            gid=LAYER_SPHERE,
        )
        frame = patch_cls(
            path,
            facecolor="none",
            edgecolor=self.style.sphere_edge,
            linewidth=self.style.sphere_edge_width,
            zorder=_Z_FRAME,
            gid=f"{LAYER_SPHERE}-frame",
        )
        return [fill, frame]

    def _country_artists(
        self,
        projection: ConfiguredProjection,
        boundaries: BoundaryFeatureCollection,
        view_state: ViewState,
        home: HomeCountry,
        result: RenderResult,
    ) -> list[Any]:
        patch_cls = _require_path_patch()
        home_only = view_state.view_mode is ViewMode.HOME_ONLY
        artists: list[Any] = []
        for feature in boundaries:
            is_home = home.matches(feature.name)
            if home_only and not is_home:
                continue
            if not _is_area_geometry(feature.geometry):
                result.skipped.append(feature.name)
                continue
            try:
                projected = projection.project(feature.geometry)
            except (GEOSException, ValueError, TypeError, AttributeError) as exc:
                _LOGGER.debug("Feature %s could not be projected: %s", feature.name, exc)
                result.skipped.append(feature.name)
                continue
            path = _polygon_path(polygon_parts(projected)) if projected is not None else None
            if path is None:
                result.hidden.append(feature.name)
                continue
            artists.append(
                patch_cls(
                    path,
                    facecolor=self.style.home_fill if is_home else self.style.country_fill,
                    edgecolor=self.style.country_edge,
                    linewidth=self.style.country_edge_width,
                    zorder=_Z_COUNTRIES,
                    gid=feature.name,
                )
            )
            result.drawn.append(feature.name)
            result.home_drawn = result.home_drawn or is_home
        return artists

    def _line_artists(
        self,
        lines: Any | None,
        *,
        gid: str,
        color: str,
        width: float,
        zorder: int,
    ) -> list[Any]:
        if lines is None:
            return []
        segments = [np.asarray(part.coords) for part in line_parts(lines) if len(part.coords) >= 2]
        if not segments:
            return []
        collection_cls = _require_line_collection()
        return [collection_cls(segments, colors=color, linewidths=width, zorder=zorder, gid=gid)]

    def feature_at(self, x: float, y: float) -> str | None:
        """Name of the topmost country drawn under canvas point ``(x, y)``."""
        for patch in reversed(self._layers[LAYER_COUNTRIES]):
            if patch.get_path().contains_point((x, y)):
                return patch.get_gid()
        return None

    def rgba_buffer(self) -> np.ndarray:
        """Rasterize the surface and return a copy of its RGBA pixels."""
        self._canvas.draw()
        return np.array(self._canvas.buffer_rgba(), copy=True)

    def capture_image(self) -> Any:
        image_mod = _require_pillow_image()
        return image_mod.fromarray(self.rgba_buffer()).convert("RGB")

    def save_png(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.capture_image().save(path, format="PNG")
        return path

    def close(self) -> None:
        self.clear()
        self._figure.clear()


def _is_area_geometry(geometry: Any) -> bool:
    return getattr(geometry, "geom_type", None) in {"Polygon", "MultiPolygon", "GeometryCollection"}


def _guide_lines(projection: ConfiguredProjection, layer: str, build: Any, *args: float) -> Any | None:
    try:
        return build(*args)
    except (GEOSException, ValueError) as exc:
        _LOGGER.warning("%s lines for %s could not be drawn: %s", layer, projection.descriptor.id, exc)
        return None


def _is_line_collection(artist: Any) -> bool:
    return hasattr(artist, "get_segments")


def _polygon_path(polygons: Sequence[Any]) -> Any | None:
    """Compound matplotlib path; exteriors counter-clockwise, holes clockwise."""
    path_cls = _require_mpl_path()
    vertices: list[np.ndarray] = []
    codes: list[np.ndarray] = []
    for polygon in polygons:
        if polygon.is_empty:
            continue
        oriented = orient(polygon, sign=1.0)
        for ring in (oriented.exterior, *oriented.interiors):
            coords = np.asarray(ring.coords, dtype=float)[:, :2]
            if len(coords) < 4:
                continue
            ring_codes = np.full(len(coords), path_cls.LINETO, dtype=path_cls.code_type)
            ring_codes[0] = path_cls.MOVETO
            ring_codes[-1] = path_cls.CLOSEPOLY
            vertices.append(coords)
            codes.append(ring_codes)
    if not vertices:
        return None
    return path_cls(np.concatenate(vertices), np.concatenate(codes))


def _require_matplotlib() -> tuple[Any, Any]:
    try:
        from matplotlib.backends.backend_agg import FigureCanvasAgg
        from matplotlib.figure import Figure
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return (Figure, FigureCanvasAgg)


def _require_mpl_path() -> Any:
    try:
        from matplotlib.path import Path as MplPath
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return MplPath


def _require_path_patch() -> Any:
    try:
        from matplotlib.patches import PathPatch
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return PathPatch


def _require_line_collection() -> Any:
    try:
        from matplotlib.collections import LineCollection
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return LineCollection


def _require_pillow_image() -> Any:
    try:
        from PIL import Image
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("Pillow is required for surface capture") from exc
    return Image

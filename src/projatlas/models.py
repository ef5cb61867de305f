"""Domain models shared across the rendering pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _require_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected numeric value for '{field_name}'")
    return float(value)


def _number_tuple(value: Any, length: int, field_name: str) -> tuple[float, ...]:
    if not isinstance(value, (list, tuple)) or len(value) != length:
        raise ValueError(f"Expected list of {length} numbers for '{field_name}'")
    return tuple(_require_number(item, f"{field_name}[{idx}]") for idx, item in enumerate(value))


class ProjectionFamily(str, Enum):
    AZIMUTHAL = "azimuthal"
    CONIC = "conic"
    PSEUDO_CONIC = "pseudo-conic"
    CYLINDRICAL = "cylindrical"
    PSEUDO_CYLINDRICAL = "pseudo-cylindrical"
    INTERRUPTED = "interrupted"

    @property
    def shape_hint(self) -> str:
        return _SHAPE_HINTS[self]


_SHAPE_HINTS = {
    ProjectionFamily.AZIMUTHAL: "●",
    ProjectionFamily.CONIC: "◐",
    ProjectionFamily.PSEUDO_CONIC: "❤",
    ProjectionFamily.CYLINDRICAL: "▭",
    ProjectionFamily.PSEUDO_CYLINDRICAL: "⬭",
    ProjectionFamily.INTERRUPTED: "⬬",
}


class CenterMode(str, Enum):
    ORIGIN = "origin"
    HOME = "home"
    MERIDIAN = "meridian"


class ViewMode(str, Enum):
    WORLD = "world"
    HOME_ONLY = "home-only"


Lobe = tuple[float, float, float, float]


@dataclass(frozen=True, slots=True)
class ProjectionDescriptor:
    """One entry of the projection catalog.

    ``operation`` and ``params`` name the PROJ operation that supplies the
    projection math. The remaining geometry fields describe where that
    operation is usable on the sphere:

    - ``lat_range``: latitude band kept before projecting (Mercator poles).
    - ``clip_angle``: small-circle radius, in degrees, around the projection
      center; only that cap of the sphere is drawn.
    - ``lobes``: ``(lon_min, lon_max, lat_min, lat_max)`` boxes of an
      interrupted projection; geometry is split along the box edges.
    - ``aspect_rotation`` / ``axis_order``: fixed rotation and output axis swap
      used to build transverse aspects from a normal-aspect operation.

    ``shape`` overrides the family's menu glyph (polyhedral maps use ``⬡``).
    """

    id: str
    display_name: str
    family: ProjectionFamily
    operation: str
    base_scale_hint: float = 1.0
    params: Mapping[str, str] = field(default_factory=dict)
    lat_range: tuple[float, float] = (-90.0, 90.0)
    clip_angle: float | None = None
    lobes: tuple[Lobe, ...] = ()
    aspect_rotation: tuple[float, float, float] | None = None
    axis_order: str | None = None
    shape: str | None = None

    @property
    def shape_hint(self) -> str:
        return self.shape or self.family.shape_hint

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProjectionDescriptor:
        projection_id = _require_str(data.get("id"), "id")
        family_raw = _require_str(data.get("family"), f"{projection_id}.family")
        try:
            family = ProjectionFamily(family_raw)
        except ValueError as exc:
            raise ValueError(f"Unknown projection family '{family_raw}' for '{projection_id}'") from exc

        params_raw = data.get("params") or {}
        if not isinstance(params_raw, Mapping):
            raise ValueError(f"Expected mapping for '{projection_id}.params'")
        params = {str(key): str(value) for key, value in params_raw.items()}

        scale_hint = _require_number(data.get("scale_hint", 1.0), f"{projection_id}.scale_hint")
        if scale_hint <= 0:
            raise ValueError(f"{projection_id}.scale_hint must be > 0")

        lat_range: tuple[float, float] = (-90.0, 90.0)
        if data.get("lat_limit") is not None:
            limit = abs(_require_number(data.get("lat_limit"), f"{projection_id}.lat_limit"))
            lat_range = (-limit, limit)
        if data.get("lat_range") is not None:
            lo, hi = _number_tuple(data.get("lat_range"), 2, f"{projection_id}.lat_range")
            lat_range = (lo, hi)
        if not -90.0 <= lat_range[0] < lat_range[1] <= 90.0:
            raise ValueError(f"Invalid latitude range for '{projection_id}': {lat_range}")

        clip_angle = None
        if data.get("clip_angle") is not None:
            clip_angle = _require_number(data.get("clip_angle"), f"{projection_id}.clip_angle")
            if not 0.0 < clip_angle <= 180.0:
                raise ValueError(f"{projection_id}.clip_angle must be in (0, 180]")

        lobes_raw = data.get("lobes") or []
        if not isinstance(lobes_raw, list):
            raise ValueError(f"Expected list for '{projection_id}.lobes'")
        lobes: list[Lobe] = []
        for idx, item in enumerate(lobes_raw):
            lon0, lon1, lat0, lat1 = _number_tuple(item, 4, f"{projection_id}.lobes[{idx}]")
            if lon1 <= lon0 or lat1 <= lat0:
                raise ValueError(f"Empty lobe {idx} for '{projection_id}'")
            lobes.append((lon0, lon1, lat0, lat1))

        aspect_rotation = None
        if data.get("aspect_rotation") is not None:
            a, b, c = _number_tuple(data.get("aspect_rotation"), 3, f"{projection_id}.aspect_rotation")
            aspect_rotation = (a, b, c)

        axis_order_raw = data.get("axis_order")
        axis_order = _require_str(axis_order_raw, f"{projection_id}.axis_order") if axis_order_raw else None
        shape_raw = data.get("shape")
        shape = _require_str(shape_raw, f"{projection_id}.shape") if shape_raw else None

        return cls(
            id=projection_id,
            display_name=_require_str(data.get("name"), f"{projection_id}.name"),
            family=family,
            operation=_require_str(data.get("proj"), f"{projection_id}.proj"),
            base_scale_hint=scale_hint,
            params=params,
            lat_range=lat_range,
            clip_angle=clip_angle,
            lobes=tuple(lobes),
            aspect_rotation=aspect_rotation,
            axis_order=axis_order,
            shape=shape,
        )


@dataclass(frozen=True, slots=True)
class ViewState:
    """Session view selection. The view controller owns the current instance."""

    projection_id: str
    center_mode: CenterMode = CenterMode.ORIGIN
    view_mode: ViewMode = ViewMode.WORLD


@dataclass(frozen=True, slots=True)
class BoundaryFeature:
    name: str
    geometry: Any | None
    properties: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BoundaryFeatureCollection:
    """Country features in source order; read-only once loaded."""

    features: tuple[BoundaryFeature, ...]

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self):
        return iter(self.features)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(feature.name for feature in self.features)

    def find(self, name: str) -> BoundaryFeature | None:
        target = name.strip()
        for feature in self.features:
            if feature.name.strip() == target:
                return feature
        return None


@dataclass(frozen=True, slots=True)
class HomeCountry:
    """Designated country used for the highlight fill and close-up view."""

    name: str
    center: tuple[float, float]
    geometry: Any | None = None

    def matches(self, name: str | None) -> bool:
        if not name:
            return False
        return name.strip() == self.name

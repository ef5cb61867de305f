"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .boundaries import DEFAULT_NAME_PROPERTIES
from .models import CenterMode, ViewMode, ViewState


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    return {} if value is None else _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _float_pair(value: Any, field_name: str) -> tuple[float, float]:
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError(f"Expected list of 2 numbers for '{field_name}'")
    return (_float(value[0], f"{field_name}[0]"), _float(value[1], f"{field_name}[1]"))


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def _source_from_cfg(value: Any, field_name: str, root_dir: Path) -> str:
    raw = _str(value, field_name)
    if raw.startswith(("http://", "https://")):
        return raw
    return str(_path_from_cfg(raw, field_name, root_dir))


@dataclass(frozen=True, slots=True)
class BoundariesConfig:
    source: str
    name_properties: tuple[str, ...] = DEFAULT_NAME_PROPERTIES
    request_timeout_s: float = 30.0
    load_attempts: int = 3
    retry_delay_s: float = 1.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> BoundariesConfig:
        name_properties_raw = raw.get("name_properties")
        name_properties = (
            DEFAULT_NAME_PROPERTIES
            if name_properties_raw is None
            else _str_list(name_properties_raw, "boundaries.name_properties")
        )
        if not name_properties:
            raise ValueError("boundaries.name_properties must not be empty")
        load_attempts = _int(raw.get("load_attempts", 3), "boundaries.load_attempts")
        retry_delay_s = _float(raw.get("retry_delay_s", 1.0), "boundaries.retry_delay_s")
        request_timeout_s = _float(raw.get("request_timeout_s", 30.0), "boundaries.request_timeout_s")
        if load_attempts < 1:
            raise ValueError("boundaries.load_attempts must be >= 1")
        if retry_delay_s < 0:
            raise ValueError("boundaries.retry_delay_s must be >= 0")
        if request_timeout_s <= 0:
            raise ValueError("boundaries.request_timeout_s must be > 0")
        return cls(
            source=_source_from_cfg(raw.get("source"), "boundaries.source", root_dir),
            name_properties=name_properties,
            request_timeout_s=request_timeout_s,
            load_attempts=load_attempts,
            retry_delay_s=retry_delay_s,
        )


@dataclass(frozen=True, slots=True)
class HomeCountryConfig:
    name: str
    fallback_center: tuple[float, float]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> HomeCountryConfig:
        lon, lat = _float_pair(raw.get("fallback_center"), "home_country.fallback_center")
        if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
            raise ValueError("home_country.fallback_center must be a valid [lon, lat]")
        return cls(name=_str(raw.get("name"), "home_country.name"), fallback_center=(lon, lat))


@dataclass(frozen=True, slots=True)
class ViewConfig:
    default_projection: str
    center_mode: CenterMode = CenterMode.ORIGIN
    view_mode: ViewMode = ViewMode.WORLD
    fixed_meridian: float = 150.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewConfig:
        center_raw = _str(raw.get("center_mode", "origin"), "view.center_mode")
        view_raw = _str(raw.get("view_mode", "world"), "view.view_mode")
        try:
            center_mode = CenterMode(center_raw)
        except ValueError as exc:
            allowed = ", ".join(mode.value for mode in CenterMode)
            raise ValueError(f"view.center_mode must be one of: {allowed}") from exc
        try:
            view_mode = ViewMode(view_raw)
        except ValueError as exc:
            allowed = ", ".join(mode.value for mode in ViewMode)
            raise ValueError(f"view.view_mode must be one of: {allowed}") from exc
        if view_mode is ViewMode.HOME_ONLY and center_mode is not CenterMode.HOME:
            raise ValueError("view.center_mode must be 'home' when view.view_mode is 'home-only'")
        fixed_meridian = _float(raw.get("fixed_meridian", 150.0), "view.fixed_meridian")
        if not -180.0 <= fixed_meridian <= 180.0:
            raise ValueError("view.fixed_meridian must be within [-180, 180]")
        return cls(
            default_projection=_str(raw.get("default_projection"), "view.default_projection"),
            center_mode=center_mode,
            view_mode=view_mode,
            fixed_meridian=fixed_meridian,
        )

    def initial_state(self) -> ViewState:
        return ViewState(
            projection_id=self.default_projection,
            center_mode=self.center_mode,
            view_mode=self.view_mode,
        )


@dataclass(frozen=True, slots=True)
class CanvasConfig:
    width_px: int
    height_px: int
    dpi: int
    padding_px: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CanvasConfig:
        width_px = _int(raw.get("width_px"), "canvas.width_px")
        height_px = _int(raw.get("height_px"), "canvas.height_px")
        dpi = _int(raw.get("dpi", 100), "canvas.dpi")
        padding_px = _float(raw.get("padding_px", 32), "canvas.padding_px")
        if width_px < 1 or height_px < 1:
            raise ValueError("canvas.width_px and canvas.height_px must be >= 1")
        if dpi < 1:
            raise ValueError("canvas.dpi must be >= 1")
        if padding_px < 0:
            raise ValueError("canvas.padding_px must be >= 0")
        return cls(width_px=width_px, height_px=height_px, dpi=dpi, padding_px=padding_px)


@dataclass(frozen=True, slots=True)
class RenderStyleConfig:
    background: str = "#ffffff"
    sphere_fill: str = "#dcebf7"
    sphere_edge: str = "#3d5a73"
    sphere_edge_width: float = 1.0
    country_fill: str = "#e3ddd0"
    home_fill: str = "#d7263d"
    country_edge: str = "#6f6f6f"
    country_edge_width: float = 0.4
    graticule_color: str = "#9fb3c8"
    graticule_width: float = 0.4
    reference_color: str = "#c0392b"
    reference_width: float = 0.6

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderStyleConfig:
        defaults = cls()
        kwargs: dict[str, Any] = {}
        for name in (
            "background",
            "sphere_fill",
            "sphere_edge",
            "country_fill",
            "home_fill",
            "country_edge",
            "graticule_color",
            "reference_color",
        ):
            kwargs[name] = _str(raw.get(name, getattr(defaults, name)), f"render.style.{name}")
        for name in ("sphere_edge_width", "country_edge_width", "graticule_width", "reference_width"):
            value = _float(raw.get(name, getattr(defaults, name)), f"render.style.{name}")
            if value < 0:
                raise ValueError(f"render.style.{name} must be >= 0")
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class RenderConfig:
    standard_parallels: tuple[float, float] = (20.0, 60.0)
    graticule_step_deg: float = 30.0
    draw_graticule: bool = True
    draw_reference_lines: bool = True
    scale_hints: Mapping[str, float] = field(default_factory=dict)
    style: RenderStyleConfig = field(default_factory=RenderStyleConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        standard_parallels = (
            (20.0, 60.0)
            if raw.get("standard_parallels") is None
            else _float_pair(raw.get("standard_parallels"), "render.standard_parallels")
        )
        graticule_step_deg = _float(raw.get("graticule_step_deg", 30.0), "render.graticule_step_deg")
        if not 0.0 < graticule_step_deg <= 90.0:
            raise ValueError("render.graticule_step_deg must be in (0, 90]")

        scale_hints: dict[str, float] = {}
        for key, value in _optional_mapping(raw.get("scale_hints"), "render.scale_hints").items():
            hint = _float(value, f"render.scale_hints.{key}")
            if hint <= 0:
                raise ValueError(f"render.scale_hints.{key} must be > 0")
            scale_hints[str(key)] = hint

        return cls(
            standard_parallels=standard_parallels,
            graticule_step_deg=graticule_step_deg,
            draw_graticule=_bool(raw.get("draw_graticule", True), "render.draw_graticule"),
            draw_reference_lines=_bool(
                raw.get("draw_reference_lines", True), "render.draw_reference_lines"
            ),
            scale_hints=scale_hints,
            style=RenderStyleConfig.from_mapping(_optional_mapping(raw.get("style"), "render.style")),
        )


@dataclass(frozen=True, slots=True)
class SessionConfig:
    request_attempts: int = 10
    request_retry_s: float = 1.0
    resize_debounce_s: float = 0.2

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> SessionConfig:
        request_attempts = _int(raw.get("request_attempts", 10), "session.request_attempts")
        request_retry_s = _float(raw.get("request_retry_s", 1.0), "session.request_retry_s")
        resize_debounce_s = _float(raw.get("resize_debounce_s", 0.2), "session.resize_debounce_s")
        if request_attempts < 1:
            raise ValueError("session.request_attempts must be >= 1")
        if request_retry_s < 0:
            raise ValueError("session.request_retry_s must be >= 0")
        if resize_debounce_s < 0:
            raise ValueError("session.resize_debounce_s must be >= 0")
        return cls(
            request_attempts=request_attempts,
            request_retry_s=request_retry_s,
            resize_debounce_s=resize_debounce_s,
        )


@dataclass(frozen=True, slots=True)
class ExportConfig:
    output_pdf: Path
    resolution_dpi: float = 100.0
    caption: bool = True
    settle_s: float = 0.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> ExportConfig:
        resolution_dpi = _float(raw.get("resolution_dpi", 100.0), "export.resolution_dpi")
        settle_s = _float(raw.get("settle_s", 0.0), "export.settle_s")
        if resolution_dpi <= 0:
            raise ValueError("export.resolution_dpi must be > 0")
        if settle_s < 0:
            raise ValueError("export.settle_s must be >= 0")
        return cls(
            output_pdf=_path_from_cfg(raw.get("output_pdf"), "export.output_pdf", root_dir),
            resolution_dpi=resolution_dpi,
            caption=_bool(raw.get("caption", True), "export.caption"),
            settle_s=settle_s,
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    build_root: Path
    renders_dir: Path
    logs_dir: Path
    catalog: Path | None = None

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.build_root, self.renders_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        catalog_raw = raw.get("catalog")
        return cls(
            build_root=_path_from_cfg(raw.get("build_root"), "paths.build_root", root_dir),
            renders_dir=_path_from_cfg(raw.get("renders_dir"), "paths.renders_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
            catalog=None if catalog_raw is None else _path_from_cfg(catalog_raw, "paths.catalog", root_dir),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    boundaries: BoundariesConfig
    home_country: HomeCountryConfig
    view: ViewConfig
    canvas: CanvasConfig
    render: RenderConfig
    session: SessionConfig
    export: ExportConfig
    paths: PathsConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            boundaries=BoundariesConfig.from_mapping(
                _mapping(raw.get("boundaries"), "boundaries"), root_dir
            ),
            home_country=HomeCountryConfig.from_mapping(
                _mapping(raw.get("home_country"), "home_country")
            ),
            view=ViewConfig.from_mapping(_mapping(raw.get("view"), "view")),
            canvas=CanvasConfig.from_mapping(_mapping(raw.get("canvas"), "canvas")),
            render=RenderConfig.from_mapping(_optional_mapping(raw.get("render"), "render")),
            session=SessionConfig.from_mapping(_optional_mapping(raw.get("session"), "session")),
            export=ExportConfig.from_mapping(_mapping(raw.get("export"), "export"), root_dir),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)

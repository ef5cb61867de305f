"""Tests for the typed YAML configuration loader."""

import copy
from pathlib import Path

import pytest
import yaml

from projatlas.config import AppConfig, load_config
from projatlas.models import CenterMode, ViewMode


def _write(tmp_path: Path, mapping) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(mapping), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_loads_and_resolves_relative_paths(self, tmp_path, config_mapping):
        cfg = load_config(_write(tmp_path, config_mapping))
        root = tmp_path.resolve()
        assert cfg.boundaries.source == str(root / "data/countries.geojson")
        assert cfg.export.output_pdf == root / "build/atlas.pdf"
        assert cfg.paths.logs_dir == root / "build/logs"
        assert cfg.paths.catalog is None

    def test_defaults(self, tmp_path, config_mapping):
        cfg = load_config(_write(tmp_path, config_mapping))
        assert cfg.canvas.padding_px == 32.0
        assert cfg.render.standard_parallels == (20.0, 60.0)
        assert cfg.render.graticule_step_deg == 30.0
        assert cfg.render.scale_hints == {"conic-conformal": 2.0}
        assert cfg.session.resize_debounce_s == 0.2
        assert cfg.view.fixed_meridian == 150.0
        assert cfg.boundaries.name_properties[0] == "name"

    def test_initial_state(self, tmp_path, config_mapping):
        state = load_config(_write(tmp_path, config_mapping)).view.initial_state()
        assert state.projection_id == "equal-earth"
        assert state.center_mode is CenterMode.ORIGIN
        assert state.view_mode is ViewMode.WORLD

    def test_remote_source_is_kept_verbatim(self, tmp_path, config_mapping):
        mapping = copy.deepcopy(config_mapping)
        mapping["boundaries"]["source"] = "https://example.org/world.geojson"
        cfg = load_config(_write(tmp_path, mapping))
        assert cfg.boundaries.source == "https://example.org/world.geojson"

    def test_repo_config_is_valid(self):
        cfg = load_config(Path(__file__).resolve().parents[1] / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.home_country.name == "Taiwan"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Top-level"):
            load_config(path)


class TestValidation:
    @pytest.mark.parametrize(
        ("section", "key", "value", "message"),
        [
            ("view", "center_mode", "north-pole", "view.center_mode"),
            ("view", "view_mode", "home-only", "must be 'home'"),
            ("canvas", "width_px", 0, "canvas.width_px"),
            ("canvas", "padding_px", -1, "canvas.padding_px"),
            ("boundaries", "load_attempts", 0, "boundaries.load_attempts"),
            ("session", "request_attempts", 0, "session.request_attempts"),
            ("render", "graticule_step_deg", 0, "render.graticule_step_deg"),
            ("home_country", "fallback_center", [200, 0], "fallback_center"),
        ],
    )
    def test_rejects_bad_values(self, tmp_path, config_mapping, section, key, value, message):
        mapping = copy.deepcopy(config_mapping)
        mapping.setdefault(section, {})[key] = value
        with pytest.raises(ValueError, match=message):
            load_config(_write(tmp_path, mapping))

    def test_home_only_with_home_center_is_accepted(self, tmp_path, config_mapping):
        mapping = copy.deepcopy(config_mapping)
        mapping["view"].update({"center_mode": "home", "view_mode": "home-only"})
        cfg = load_config(_write(tmp_path, mapping))
        assert cfg.view.view_mode is ViewMode.HOME_ONLY

    def test_rejects_non_positive_scale_hint(self, tmp_path, config_mapping):
        mapping = copy.deepcopy(config_mapping)
        mapping["render"]["scale_hints"]["conic-conformal"] = 0
        with pytest.raises(ValueError, match="scale_hints"):
            load_config(_write(tmp_path, mapping))

    def test_missing_required_section(self, tmp_path, config_mapping):
        mapping = copy.deepcopy(config_mapping)
        del mapping["canvas"]
        with pytest.raises(ValueError, match="'canvas'"):
            load_config(_write(tmp_path, mapping))

"""Tests for rotation, antimeridian cutting and sphere domains."""

import numpy as np
import pytest
from shapely.geometry import LineString, Point, Polygon

from projatlas.models import ProjectionDescriptor
from projatlas.sphere import (
    SphereDomain,
    cap_polygon,
    cut_antimeridian,
    graticule_lines,
    rotate_coordinates,
)


def _descriptor(**extra):
    data = {"id": "t", "name": "T", "family": "cylindrical", "proj": "eqc"}
    data.update(extra)
    return ProjectionDescriptor.from_mapping(data)


class TestRotation:
    def test_center_moves_to_origin(self):
        lon, lat = 121.0, 23.7
        rotated = rotate_coordinates(np.array([[lon, lat]]), (-lon, -lat, 0.0))
        assert rotated[0] == pytest.approx([0.0, 0.0], abs=1e-9)

    def test_zero_rotation_is_identity(self):
        coords = np.array([[10.0, 20.0], [-170.0, -45.0]])
        assert rotate_coordinates(coords, (0.0, 0.0, 0.0)) == pytest.approx(coords)

    def test_longitude_shift_wraps(self):
        rotated = rotate_coordinates(np.array([[170.0, 10.0]]), (20.0, 0.0, 0.0))
        assert rotated[0] == pytest.approx([-170.0, 10.0])

    def test_empty_input(self):
        assert rotate_coordinates(np.empty((0, 2)), (10.0, 10.0, 0.0)).shape == (0, 2)


class TestAntimeridianCut:
    def test_polygon_crossing_dateline_is_split(self):
        polygon = Polygon([(170, 0), (-170, 0), (-170, 10), (170, 10)])
        parts = cut_antimeridian(polygon)
        assert len(parts) == 2
        for part in parts:
            min_x, _, max_x, _ = part.bounds
            assert -180.0 <= min_x and max_x <= 180.0
        assert sum(part.area for part in parts) == pytest.approx(200.0)

    def test_polygon_inside_world_is_unchanged(self):
        polygon = Polygon([(0, 0), (10, 0), (10, 10), (0, 10)])
        parts = cut_antimeridian(polygon)
        assert len(parts) == 1
        assert parts[0].area == pytest.approx(100.0)

    def test_ring_around_pole_is_closed_at_pole(self):
        lons = np.linspace(-180.0, 180.0, 73)[:-1]
        ring = Polygon([(lon, 80.0) for lon in lons])
        parts = cut_antimeridian(ring)
        total = sum(part.area for part in parts)
        assert total == pytest.approx(3600.0, rel=1e-3)
        assert max(part.bounds[3] for part in parts) == pytest.approx(90.0)

    def test_line_crossing_dateline_is_split(self):
        parts = cut_antimeridian(LineString([(170, 5), (-170, 5)]))
        assert len(parts) == 2
        assert sum(part.length for part in parts) == pytest.approx(20.0)

    def test_point_is_kept(self):
        assert len(cut_antimeridian(Point(10, 10))) == 1


class TestSphereDomain:
    def test_latitude_band(self):
        domain = SphereDomain.from_descriptor(_descriptor(lat_limit=85))
        (region,) = domain.regions
        assert region.bounds == pytest.approx((-180.0, -85.0, 180.0, 85.0))

    def test_cap_for_hemisphere(self):
        cap = cap_polygon(90.0)
        min_x, min_y, max_x, max_y = cap.bounds
        assert max_x == pytest.approx(90.0, abs=0.01)
        assert max_y == pytest.approx(90.0, abs=0.01)
        assert min_x == pytest.approx(-90.0, abs=0.01)
        assert min_y == pytest.approx(-90.0, abs=0.01)

    def test_lobes_become_regions(self):
        domain = SphereDomain.from_descriptor(
            _descriptor(family="interrupted", lobes=[[-180, -40, 0, 90], [-40, 180, 0, 90]])
        )
        assert len(domain.regions) == 2

    def test_clip_drops_geometry_outside_cap(self):
        domain = SphereDomain.from_descriptor(_descriptor(family="azimuthal", clip_angle=60))
        far = Polygon([(120, 0), (130, 0), (130, 10), (120, 10)])
        near = Polygon([(0, 0), (10, 0), (10, 10), (0, 10)])
        assert domain.clip([far]) == []
        assert len(domain.clip([near])) == 1

    def test_outline_uses_cap_circle(self):
        domain = SphereDomain.from_descriptor(_descriptor(family="azimuthal", clip_angle=90))
        (ring,) = domain.outline_rings()
        assert ring.bounds[3] == pytest.approx(90.0, abs=0.01)


class TestGraticule:
    def test_line_count(self):
        lines = graticule_lines(30.0)
        # 12 meridians, 5 parallels
        assert len(lines.geoms) == 17

    def test_rejects_non_positive_step(self):
        with pytest.raises(ValueError):
            graticule_lines(0.0)

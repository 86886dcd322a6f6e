"""Tests for host-side shape descriptions and their ray queries.

Tests cover:
- Constructor validation and normalization
- Polygon constructors (regular, star, rectangle)
- Circle, plane, polygon and directional light queries through the
  compiled shape table
"""

import dataclasses
import math

import pytest


def _sorted_points(hits):
    return sorted((round(h.point[0], 9), round(h.point[1], 9)) for h in hits)


class TestConstruction:
    """Tests for shape constructors and validation."""

    def test_circle_rejects_non_positive_radius(self):
        from src.lumen.geometry.shapes import Circle

        with pytest.raises(ValueError):
            Circle((0.0, 0.0), 0.0)
        with pytest.raises(ValueError):
            Circle((0.0, 0.0), -1.0)

    def test_plane_normal_is_normalized(self):
        from src.lumen.geometry.shapes import Plane

        plane = Plane((1, 2), (0, 2))
        assert plane.point == (1.0, 2.0)
        assert plane.normal == (0.0, 1.0)

    def test_plane_rejects_zero_normal(self):
        from src.lumen.geometry.shapes import Plane

        with pytest.raises(ValueError):
            Plane((0.0, 0.0), (0.0, 0.0))

    def test_directional_light_normalizes_direction(self):
        from src.lumen.geometry.shapes import DirectionalLight

        light = DirectionalLight(5.0, (3.0, 4.0))
        assert light.direction == pytest.approx((0.6, 0.8))
        # Stored facing points back toward the source
        assert light.node_params() == pytest.approx((5.0, -0.6, -0.8, 0.0))

    def test_directional_light_rejects_zero_direction(self):
        from src.lumen.geometry.shapes import DirectionalLight

        with pytest.raises(ValueError):
            DirectionalLight(1.0, (0.0, 0.0))

    def test_polygon_needs_two_points(self):
        from src.lumen.geometry.shapes import Polygon

        with pytest.raises(ValueError):
            Polygon([(0.0, 0.0)])
        assert len(Polygon([(0.0, 0.0), (1.0, 0.0)]).points) == 2

    def test_shapes_are_immutable(self):
        from src.lumen.geometry.shapes import Circle, Union

        circle = Circle((0.0, 0.0), 1.0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            circle.radius = 2.0  # type: ignore[misc]
        union = Union([circle])
        assert union.shapes == (circle,)

    def test_normalize_rotation(self):
        from src.lumen.geometry.shapes import normalize_rotation

        assert normalize_rotation(-90.0) == 270.0
        assert normalize_rotation(720.0) == 0.0
        assert 0.0 <= normalize_rotation(-1e-18) < 360.0


class TestPolygonConstructors:
    """Tests for regular, star and rectangle polygons."""

    def test_regular_square(self):
        from src.lumen.geometry.shapes import Polygon

        square = Polygon.regular((0.0, 0.0), 1.0, 4)
        expected = [(1.0, 0.0), (0.0, -1.0), (-1.0, 0.0), (0.0, 1.0)]
        for got, want in zip(square.points, expected):
            assert got == pytest.approx(want, abs=1e-12)

    def test_regular_rotation_in_degrees(self):
        from src.lumen.geometry.shapes import Polygon

        square = Polygon.regular((1.0, 1.0), 2.0, 4, rotation=90.0)
        assert square.points[0] == pytest.approx((1.0, -1.0), abs=1e-12)

    def test_regular_two_sides_is_a_segment(self):
        from src.lumen.geometry.shapes import Polygon

        segment = Polygon.regular((0.0, 0.0), 1.0, 2)
        assert len(segment.points) == 2
        assert segment.points[0] == pytest.approx((1.0, 0.0))
        assert segment.points[1] == pytest.approx((-1.0, 0.0), abs=1e-12)

    def test_regular_needs_two_sides(self):
        from src.lumen.geometry.shapes import Polygon

        with pytest.raises(ValueError):
            Polygon.regular((0.0, 0.0), 1.0, 1)

    def test_star_vertices(self):
        from src.lumen.geometry.shapes import Polygon

        star = Polygon.star((0.0, 0.0), 1.0, 5)
        assert len(star.points) == 10
        assert star.points[0] == pytest.approx((1.0, 0.0))
        inner = math.cos(2.0 * math.pi / 5) / math.cos(math.pi / 5)
        assert math.hypot(*star.points[1]) == pytest.approx(inner)
        assert math.hypot(*star.points[2]) == pytest.approx(1.0)

    def test_star_needs_five_points(self):
        from src.lumen.geometry.shapes import Polygon

        with pytest.raises(ValueError):
            Polygon.star((0.0, 0.0), 1.0, 4)

    def test_rectangle_corners(self):
        from src.lumen.geometry.shapes import Polygon

        rect = Polygon.rectangle((1.0, 1.0), (2.0, 1.0))
        expected = [(3.0, 0.0), (-1.0, 0.0), (-1.0, 2.0), (3.0, 2.0)]
        for got, want in zip(rect.points, expected):
            assert got == pytest.approx(want, abs=1e-12)

    def test_rectangle_rotation(self):
        from src.lumen.geometry.shapes import Polygon

        rect = Polygon.rectangle((0.0, 0.0), (2.0, 1.0), rotation=90.0)
        assert rect.points[0] == pytest.approx((-1.0, -2.0), abs=1e-12)


class TestPrimitiveQueries:
    """Tests for intersect() and is_inside() of primitives."""

    def test_circle_intersect(self):
        from src.lumen.geometry.shapes import Circle

        hits = Circle((0.0, 0.0), 1.0).intersect((-2.0, 0.0), (1.0, 0.0))
        assert _sorted_points(hits) == [(-1.0, 0.0), (1.0, 0.0)]
        for hit in hits:
            assert math.hypot(*hit.normal) == pytest.approx(1.0)

    def test_circle_intersect_ignores_direction_length(self):
        from src.lumen.geometry.shapes import Circle

        hits = Circle((0.0, 0.0), 1.0).intersect((-2.0, 0.0), (10.0, 0.0))
        assert _sorted_points(hits) == [(-1.0, 0.0), (1.0, 0.0)]

    def test_circle_miss(self):
        from src.lumen.geometry.shapes import Circle

        assert Circle((0.0, 0.0), 1.0).intersect((-2.0, 2.0), (1.0, 0.0)) == []

    def test_plane_is_inside(self):
        from src.lumen.geometry.shapes import Plane

        plane = Plane((0.0, 0.0), (0.0, 1.0))
        assert plane.is_inside((0.0, -1.0))
        assert not plane.is_inside((0.0, 1.0))

    def test_plane_intersect(self):
        from src.lumen.geometry.shapes import Plane

        hits = Plane((0.0, 0.0), (0.0, 1.0)).intersect((2.0, -3.0), (0.0, 1.0))
        assert len(hits) == 1
        assert hits[0].point == pytest.approx((2.0, 0.0))
        assert hits[0].normal == pytest.approx((0.0, 1.0))

    def test_square_polygon(self):
        from src.lumen.geometry.shapes import Polygon

        square = Polygon([(-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0)])
        hits = sorted(square.intersect((-3.0, 0.0), (1.0, 0.0)), key=lambda h: h.point[0])
        assert len(hits) == 2
        assert hits[0].point == pytest.approx((-1.0, 0.0))
        assert hits[0].normal == pytest.approx((1.0, 0.0))
        assert hits[1].point == pytest.approx((1.0, 0.0))
        assert hits[1].normal == pytest.approx((-1.0, 0.0))
        assert square.is_inside((0.0, 0.0))
        assert not square.is_inside((2.0, 0.0))
        assert not square.is_inside((0.0, -2.0))

    def test_rectangle_normals_point_outward(self):
        from src.lumen.geometry.shapes import Polygon

        rect = Polygon.rectangle((0.0, 0.0), (1.0, 1.0))
        hits = sorted(rect.intersect((-3.0, 0.0), (1.0, 0.0)), key=lambda h: h.point[0])
        assert hits[0].normal == pytest.approx((-1.0, 0.0))
        assert hits[1].normal == pytest.approx((1.0, 0.0))

    def test_regular_polygon_is_inside(self):
        from src.lumen.geometry.shapes import Polygon

        hexagon = Polygon.regular((0.5, 0.5), 0.25, 6, rotation=15.0)
        assert hexagon.is_inside((0.5, 0.5))
        assert not hexagon.is_inside((0.9, 0.5))

    def test_directional_light(self):
        from src.lumen.geometry.shapes import DirectionalLight

        # Beam travels toward +x, so rays must look toward -x
        light = DirectionalLight(100.0, (1.0, 0.0))
        hits = light.intersect((0.0, 0.0), (-1.0, 0.0))
        assert len(hits) == 1
        assert hits[0].point == pytest.approx((-100.0, 0.0))
        assert hits[0].normal == pytest.approx((-1.0, 0.0))
        assert light.intersect((0.0, 0.0), (1.0, 0.0)) == []
        assert not light.is_inside((0.0, 0.0))

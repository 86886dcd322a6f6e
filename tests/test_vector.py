"""Tests for the 2D vector and optics helpers.

Tests cover:
- Basic vector operations (dot, cross, length, distance, normalize)
- Mirror reflection
- Snell refraction and total internal reflection
- Schlick reflectance in both directions
- Beer-Lambert transmittance
"""

import math

import taichi as ti


class TestVectorBasics:
    """Tests for basic vector operations."""

    def test_dot_cross_length(self):
        from src.lumen.core.vector import cross, dot, length, real, vec2

        result = ti.field(dtype=real, shape=3)

        @ti.kernel
        def test_kernel():
            result[0] = dot(vec2(1.0, 2.0), vec2(3.0, 4.0))
            result[1] = cross(vec2(1.0, 0.0), vec2(0.0, 1.0))
            result[2] = length(vec2(3.0, 4.0))

        test_kernel()
        assert abs(result[0] - 11.0) < 1e-12
        assert abs(result[1] - 1.0) < 1e-12
        assert abs(result[2] - 5.0) < 1e-12

    def test_distance_and_normalize(self):
        from src.lumen.core.vector import distance, normalize, real, vec2

        dist = ti.field(dtype=real, shape=())
        unit = ti.field(dtype=vec2, shape=())

        @ti.kernel
        def test_kernel():
            dist[None] = distance(vec2(1.0, 1.0), vec2(4.0, 5.0))
            unit[None] = normalize(vec2(0.0, -3.0))

        test_kernel()
        assert abs(dist[None] - 5.0) < 1e-12
        u = unit[None]
        assert abs(u[0]) < 1e-12
        assert abs(u[1] + 1.0) < 1e-12


class TestReflectRefract:
    """Tests for reflection and refraction."""

    def test_reflect(self):
        from src.lumen.core.vector import reflect, vec2

        result = ti.field(dtype=vec2, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = reflect(vec2(1.0, -1.0), vec2(0.0, 1.0))

        test_kernel()
        r = result[None]
        assert abs(r[0] - 1.0) < 1e-12
        assert abs(r[1] - 1.0) < 1e-12

    def test_refract_head_on_keeps_direction(self):
        from src.lumen.core.vector import refract, vec2

        ok = ti.field(dtype=ti.i32, shape=())
        result = ti.field(dtype=vec2, shape=())

        @ti.kernel
        def test_kernel():
            flag, direction = refract(vec2(1.0, 0.0), vec2(-1.0, 0.0), 1.0 / 1.5)
            ok[None] = flag
            result[None] = direction

        test_kernel()
        assert ok[None] == 1
        r = result[None]
        assert abs(r[0] - 1.0) < 1e-12
        assert abs(r[1]) < 1e-12

    def test_refract_obeys_snell(self):
        from src.lumen.core.vector import refract, vec2

        result = ti.field(dtype=vec2, shape=())

        @ti.kernel
        def test_kernel():
            # 60 degrees incidence onto a surface facing -y, glass below
            _, direction = refract(vec2(0.8660254037844386, 0.5), vec2(0.0, -1.0), 1.0 / 1.5)
            result[None] = direction

        test_kernel()
        r = result[None]
        # sin(theta_t) = sin(theta_i) / 1.5
        assert abs(r[0] - 0.8660254037844386 / 1.5) < 1e-9
        assert abs(math.hypot(r[0], r[1]) - 1.0) < 1e-9
        assert r[1] > 0.0

    def test_refract_total_internal_reflection(self):
        from src.lumen.core.vector import refract, vec2

        ok = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            flag, _ = refract(vec2(0.8, 0.6), vec2(0.0, -1.0), 1.5)
            ok[None] = flag

        test_kernel()
        assert ok[None] == 0


class TestReflectance:
    """Tests for Schlick reflectance and Beer-Lambert transmittance."""

    def test_schlick_normal_incidence(self):
        from src.lumen.core.vector import real, schlick

        result = ti.field(dtype=real, shape=2)

        @ti.kernel
        def test_kernel():
            result[0] = schlick(1.0, 1.0, 1.0, 1.5)
            result[1] = schlick(1.0, 1.0, 1.5, 1.0)

        test_kernel()
        assert abs(result[0] - 0.04) < 1e-12
        assert abs(result[1] - 0.04) < 1e-12

    def test_schlick_uses_transmitted_cosine_when_exiting(self):
        from src.lumen.core.vector import real, schlick

        result = ti.field(dtype=real, shape=2)

        @ti.kernel
        def test_kernel():
            # Grazing transmitted ray: full reflectance
            result[0] = schlick(1.0, 0.0, 1.5, 1.0)
            # Entering ignores the transmitted cosine
            result[1] = schlick(1.0, 0.0, 1.0, 1.5)

        test_kernel()
        assert abs(result[0] - 1.0) < 1e-12
        assert abs(result[1] - 0.04) < 1e-12

    def test_beer_lambert(self):
        from src.lumen.core.vector import beer_lambert, color3

        result = ti.field(dtype=color3, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = beer_lambert(color3(ti.log(2.0), 0.0, 1.0), 1.0)

        test_kernel()
        c = result[None]
        assert abs(c[0] - 0.5) < 1e-12
        assert abs(c[1] - 1.0) < 1e-12
        assert abs(c[2] - math.exp(-1.0)) < 1e-12

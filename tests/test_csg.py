"""Tests for CSG combinators and the compiled shape table.

Tests cover:
- Union, Intersect and Complement hit filtering and containment
- Nested combinators
- Post-order compilation and the containment stack limit
- Scratch compilation leaving the table untouched
"""

import pytest


def _points(hits):
    return sorted((round(h.point[0], 9), round(h.point[1], 9)) for h in hits)


def _two_circles():
    from src.lumen.geometry.shapes import Circle

    return Circle((0.0, 0.0), 1.0), Circle((1.0, 0.0), 1.0)


class TestUnion:
    """Tests for Union."""

    def test_keeps_outer_boundary(self):
        from src.lumen.geometry.shapes import Union

        a, b = _two_circles()
        hits = Union([a, b]).intersect((-3.0, 0.0), (1.0, 0.0))
        assert _points(hits) == [(-1.0, 0.0), (2.0, 0.0)]

    def test_is_inside_either(self):
        from src.lumen.geometry.shapes import Union

        a, b = _two_circles()
        union = Union([a, b])
        assert union.is_inside((-0.5, 0.0))
        assert union.is_inside((1.5, 0.0))
        assert not union.is_inside((3.0, 0.0))

    def test_single_child_is_unfiltered(self):
        from src.lumen.geometry.shapes import Circle, Union

        hits = Union([Circle((0.0, 0.0), 1.0)]).intersect((-2.0, 0.0), (1.0, 0.0))
        assert _points(hits) == [(-1.0, 0.0), (1.0, 0.0)]

    def test_empty_union_is_empty(self):
        from src.lumen.geometry.shapes import Union

        empty = Union([])
        assert empty.intersect((0.0, 0.0), (1.0, 0.0)) == []
        assert not empty.is_inside((0.0, 0.0))


class TestIntersect:
    """Tests for Intersect."""

    def test_keeps_lens_boundary(self):
        from src.lumen.geometry.shapes import Intersect

        a, b = _two_circles()
        hits = Intersect([a, b]).intersect((-3.0, 0.0), (1.0, 0.0))
        assert _points(hits) == [(0.0, 0.0), (1.0, 0.0)]

    def test_is_inside_both(self):
        from src.lumen.geometry.shapes import Intersect

        a, b = _two_circles()
        lens = Intersect([a, b])
        assert lens.is_inside((0.5, 0.0))
        assert not lens.is_inside((-0.5, 0.0))
        assert not lens.is_inside((1.5, 0.0))

    def test_circle_cut_by_plane(self):
        from src.lumen.geometry.shapes import Circle, Intersect, Plane

        # Lower half disc (y > 0 in image space)
        half = Intersect([Circle((0.0, 0.0), 1.0), Plane((0.0, 0.0), (0.0, -1.0))])
        hits = half.intersect((0.5, -2.0), (0.0, 1.0))
        assert _points(hits) == [(0.5, 0.0), (0.5, 0.866025404)]
        assert half.is_inside((0.0, 0.5))
        assert not half.is_inside((0.0, -0.5))


class TestComplement:
    """Tests for Complement."""

    def test_negates_is_inside(self):
        from src.lumen.geometry.shapes import Circle, Complement

        hole = Complement(Circle((0.0, 0.0), 1.0))
        assert not hole.is_inside((0.0, 0.0))
        assert hole.is_inside((2.0, 0.0))

    def test_flips_normals(self):
        from src.lumen.geometry.shapes import Circle, Complement

        circle = Circle((0.0, 0.0), 1.0)
        plain = sorted(circle.intersect((-2.0, 0.0), (1.0, 0.0)), key=lambda h: h.point[0])
        flipped = sorted(
            Complement(circle).intersect((-2.0, 0.0), (1.0, 0.0)), key=lambda h: h.point[0]
        )
        assert len(flipped) == len(plain) == 2
        for p, f in zip(plain, flipped):
            assert f.point == pytest.approx(p.point)
            assert f.normal == pytest.approx((-p.normal[0], -p.normal[1]))

    def test_double_complement_restores_normals(self):
        from src.lumen.geometry.shapes import Circle, Complement

        hits = Complement(Complement(Circle((0.0, 0.0), 1.0))).intersect((-2.0, 0.0), (1.0, 0.0))
        near = min(hits, key=lambda h: h.point[0])
        assert near.normal == pytest.approx((-1.0, 0.0))

    def test_difference_via_complement(self):
        from src.lumen.geometry.shapes import Circle, Complement, Intersect

        a, b = _two_circles()
        # Crescent: a minus b
        crescent = Intersect([a, Complement(b)])
        hits = sorted(crescent.intersect((-3.0, 0.0), (1.0, 0.0)), key=lambda h: h.point[0])
        assert _points(hits) == [(-1.0, 0.0), (0.0, 0.0)]
        # Inner boundary comes from b with its normal flipped
        assert hits[1].normal == pytest.approx((1.0, 0.0))
        assert crescent.is_inside((-0.5, 0.0))
        assert not crescent.is_inside((0.5, 0.0))


class TestCompiledTable:
    """Tests for compile_shape and the node table."""

    def test_post_order_layout(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Union

        a, b = _two_circles()
        root = csg.compile_shape(Union([a, b]))
        assert root == 2
        assert csg.get_node_count() == 3
        assert csg.node_first[root] == 0
        assert csg.node_parents[0] == root
        assert csg.node_parents[1] == root
        assert csg.node_parents[root] == -1
        assert csg.node_child_count[root] == 2

    def test_second_tree_follows_first(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Circle, Complement

        csg.compile_shape(Circle((0.0, 0.0), 1.0))
        root = csg.compile_shape(Complement(Circle((0.0, 0.0), 1.0)))
        assert root == 2
        assert csg.node_first[root] == 1

    def test_polygon_vertices_stored(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Polygon

        root = csg.compile_shape(Polygon.regular((0.0, 0.0), 1.0, 5))
        assert csg.node_vertex_count[root] == 5
        assert csg.num_vertices[None] == 5

    def test_required_stack_depth(self):
        from src.lumen.geometry.csg import required_stack_depth
        from src.lumen.geometry.shapes import Circle, Complement, Union

        circle = Circle((0.0, 0.0), 1.0)
        assert required_stack_depth(circle) == 1
        assert required_stack_depth(Union([circle, circle, circle])) == 3
        assert required_stack_depth(Complement(Complement(circle))) == 1
        assert required_stack_depth(Union([circle, Union([circle, circle])])) == 3

    def test_too_deep_tree_rejected(self):
        from src.lumen.geometry.csg import MAX_CSG_STACK, compile_shape
        from src.lumen.geometry.shapes import Circle, Union

        wide = Union([Circle((0.0, 0.0), 1.0)] * (MAX_CSG_STACK + 1))
        with pytest.raises(ValueError):
            compile_shape(wide)

    def test_scratch_query_restores_table(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Circle

        csg.compile_shape(Circle((0.0, 0.0), 1.0))
        Circle((5.0, 0.0), 1.0).intersect((0.0, 0.0), (1.0, 0.0))
        Circle((5.0, 0.0), 1.0).is_inside((5.0, 0.0))
        assert csg.get_node_count() == 1

    def test_clear_shapes(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Polygon

        csg.compile_shape(Polygon([(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)]))
        csg.clear_shapes()
        assert csg.get_node_count() == 0
        assert csg.num_vertices[None] == 0

    def test_too_many_hits_rejected(self):
        from src.lumen.geometry import csg
        from src.lumen.geometry.shapes import Polygon

        # Zigzag across y = 0: every edge crosses the ray
        count = csg.MAX_PROBE_HITS + 100
        zigzag = Polygon([(i * 0.01, 1.0 if i % 2 == 0 else -1.0) for i in range(count)])
        with pytest.raises(RuntimeError):
            zigzag.intersect((-1.0, 0.0), (1.0, 0.0))
        assert csg.get_node_count() == 0

    def test_hits_below_limit_all_reported(self):
        from src.lumen.geometry.shapes import Polygon

        zigzag = Polygon([(i * 0.01, 1.0 if i % 2 == 0 else -1.0) for i in range(200)])
        hits = zigzag.intersect((-1.0, 0.0), (1.0, 0.0))
        assert len(hits) >= 199


class TestKernelModules:
    """Kernel modules must keep evaluated annotations for Taichi."""

    @pytest.mark.parametrize(
        "module_name",
        [
            "src.lumen.core.vector",
            "src.lumen.geometry.primitives",
            "src.lumen.geometry.csg",
            "src.lumen.scene.intersection",
            "src.lumen.core.integrator",
        ],
    )
    def test_annotations_not_postponed(self, module_name):
        import __future__
        import importlib

        module = importlib.import_module(module_name)
        assert vars(module).get("annotations") is not __future__.annotations

    def test_polygon_kernels_compile(self):
        from src.lumen.geometry.shapes import Polygon

        triangle = Polygon([(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)])
        assert triangle.is_inside((0.25, 0.25))
        assert len(triangle.intersect((0.25, 0.25), (1.0, 0.0))) == 1

"""Compiled CSG shape table and boolean-tree evaluation.

Shape trees built on the host (see shapes.py) are compiled into a flat node
table held in Taichi fields so kernels can evaluate them without recursion.
Nodes are laid out in post-order: every subtree occupies the contiguous
index range [node_first[root], root], leaves appear left to right, and a
node's children precede it.

Kernel-side evaluation:
    - node_contains evaluates is_inside for any subtree with an explicit
      boolean stack over the subtree's node range.
    - leaf_hit enumerates the candidate hits of one primitive node.
    - resolve_hit walks a leaf's ancestors, dropping hits hidden by a Union
      sibling or outside an Intersect sibling and flipping the normal under
      every Complement.

Enumerating leaves in index order and hits in per-leaf order reproduces the
order of the recursive definition, which the scene's nearest-hit tie-break
depends on.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.geometry.shapes import Circle, Union
    >>> from src.lumen.geometry.csg import compile_shape
    >>> root = compile_shape(Union([Circle((0, 0), 1), Circle((1, 0), 1)]))
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import taichi as ti

from src.lumen.core.vector import real, vec2
from src.lumen.geometry.primitives import (
    HitRecord,
    ShapeKind,
    circle_contains,
    edge_crossing,
    hit_circle,
    hit_directional_light,
    hit_edge,
    hit_plane,
    plane_contains,
)

if TYPE_CHECKING:
    from src.lumen.geometry.shapes import Intersection, Shape

# Capacity of the compiled shape table
MAX_NODES = 4096
MAX_VERTICES = 16384
MAX_CHILD_LINKS = 4096

# Depth of the boolean stack used by node_contains
MAX_CSG_STACK = 64

# Maximum hits reported by a single host-side shape query
MAX_PROBE_HITS = 1024

# Node storage: Structure of Arrays layout
node_kinds = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_parents = ti.field(dtype=ti.i32, shape=MAX_NODES)
# First node index of the subtree rooted at each node
node_first = ti.field(dtype=ti.i32, shape=MAX_NODES)
# Primitive parameters, interpreted per kind:
#   circle (cx, cy, r, _), plane (px, py, nx, ny),
#   directional light (distance, fx, fy, _)
node_params = ti.Vector.field(4, dtype=real, shape=MAX_NODES)
node_vertex_start = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_vertex_count = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_child_start = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_child_count = ti.field(dtype=ti.i32, shape=MAX_NODES)
num_nodes = ti.field(dtype=ti.i32, shape=())

# Polygon vertices, referenced by node_vertex_start/count
vertices = ti.Vector.field(2, dtype=real, shape=MAX_VERTICES)
num_vertices = ti.field(dtype=ti.i32, shape=())

# Child node indices of Union/Intersect/Complement nodes
child_links = ti.field(dtype=ti.i32, shape=MAX_CHILD_LINKS)
num_child_links = ti.field(dtype=ti.i32, shape=())

# Output buffers for host-side shape queries
_probe_points = ti.Vector.field(2, dtype=real, shape=MAX_PROBE_HITS)
_probe_normals = ti.Vector.field(2, dtype=real, shape=MAX_PROBE_HITS)
_probe_count = ti.field(dtype=ti.i32, shape=())


def clear_shapes() -> None:
    """Remove every compiled shape from the table.

    Resets the counts to zero. Field data is overwritten by later
    compilations.
    """
    num_nodes[None] = 0
    num_vertices[None] = 0
    num_child_links[None] = 0


def get_node_count() -> int:
    """Get the number of compiled shape nodes."""
    return int(num_nodes[None])


def required_stack_depth(shape: "Shape") -> int:
    """Compute how deep the containment stack grows for a shape tree.

    While the k-th child (1-based) of a combinator is evaluated, the k - 1
    earlier children's results are still on the stack.

    Args:
        shape: The root of the shape tree.

    Returns:
        The maximum number of simultaneously stacked values.
    """
    depth = 1
    for index, child in enumerate(shape.children()):
        depth = max(depth, index + required_stack_depth(child))
    return depth


def compile_shape(shape: "Shape") -> int:
    """Compile a shape tree into the node table.

    Args:
        shape: The root of the shape tree.

    Returns:
        The node index of the compiled root.

    Raises:
        ValueError: If the tree is too deep for the containment stack.
        RuntimeError: If the node, vertex or child-link table is full.
    """
    depth = required_stack_depth(shape)
    if depth > MAX_CSG_STACK:
        raise ValueError(
            f"Shape tree needs a containment stack of {depth} entries "
            f"(maximum {MAX_CSG_STACK})"
        )
    return _emit_node(shape)


def _emit_node(shape: "Shape") -> int:
    first = num_nodes[None]
    child_roots = [_emit_node(child) for child in shape.children()]

    idx = num_nodes[None]
    if idx >= MAX_NODES:
        raise RuntimeError(f"Maximum number of shape nodes ({MAX_NODES}) exceeded")

    node_kinds[idx] = int(shape.kind)
    node_parents[idx] = -1
    node_first[idx] = first
    node_params[idx] = list(shape.node_params())

    points = shape.node_vertices()
    vertex_start = num_vertices[None]
    if vertex_start + len(points) > MAX_VERTICES:
        raise RuntimeError(f"Maximum number of polygon vertices ({MAX_VERTICES}) exceeded")
    for offset, (x, y) in enumerate(points):
        vertices[vertex_start + offset] = [x, y]
    node_vertex_start[idx] = vertex_start
    node_vertex_count[idx] = len(points)
    num_vertices[None] = vertex_start + len(points)

    link_start = num_child_links[None]
    if link_start + len(child_roots) > MAX_CHILD_LINKS:
        raise RuntimeError(f"Maximum number of child links ({MAX_CHILD_LINKS}) exceeded")
    for offset, child in enumerate(child_roots):
        child_links[link_start + offset] = child
        node_parents[child] = idx
    node_child_start[idx] = link_start
    node_child_count[idx] = len(child_roots)
    num_child_links[None] = link_start + len(child_roots)

    num_nodes[None] = idx + 1
    return idx


@contextmanager
def scratch_shape(shape: "Shape") -> Iterator[int]:
    """Compile a shape temporarily and roll the table back afterwards.

    Used for one-off host-side queries so they never disturb the shapes of
    the loaded scene, which live below the scratch region.

    Args:
        shape: The shape to compile.

    Yields:
        The node index of the compiled root.
    """
    marks = (num_nodes[None], num_vertices[None], num_child_links[None])
    try:
        yield compile_shape(shape)
    finally:
        num_nodes[None], num_vertices[None], num_child_links[None] = marks


# =============================================================================
# Kernel-side evaluation
# =============================================================================


@ti.func
def _polygon_vertex(node: ti.i32, k: ti.i32) -> vec2:
    """Get the k-th vertex of a polygon node, wrapping around."""
    return vertices[node_vertex_start[node] + k % node_vertex_count[node]]


@ti.func
def leaf_contains(node: ti.i32, p: vec2) -> ti.i32:
    """Containment test for a primitive node.

    Args:
        node: Index of a primitive node.
        p: The query point.

    Returns:
        1 if p is inside the primitive, 0 otherwise. Directional lights
        have no interior.
    """
    kind = node_kinds[node]
    params = node_params[node]
    inside = 0
    if kind == int(ShapeKind.CIRCLE):
        inside = circle_contains(vec2(params[0], params[1]), params[2], p)
    elif kind == int(ShapeKind.PLANE):
        inside = plane_contains(vec2(params[0], params[1]), vec2(params[2], params[3]), p)
    elif kind == int(ShapeKind.POLYGON):
        crossings = 0
        for k in range(node_vertex_count[node]):
            crossings += edge_crossing(_polygon_vertex(node, k), _polygon_vertex(node, k + 1), p)
        inside = crossings % 2
    return inside


@ti.func
def node_contains(node: ti.i32, p: vec2) -> ti.i32:
    """Evaluate is_inside for the subtree rooted at node.

    Walks the subtree's post-order node range once. Primitives push their
    containment bit; Union and Intersect pop one bit per child and push the
    OR / AND; Complement inverts the top of the stack.

    Args:
        node: Root index of the subtree.
        p: The query point.

    Returns:
        1 if p is inside the subtree's shape, 0 otherwise.
    """
    stack = ti.Vector([0 for _ in range(MAX_CSG_STACK)], dt=ti.i32)
    top = 0
    for j in range(node_first[node], node + 1):
        kind = node_kinds[j]
        if kind == int(ShapeKind.UNION) or kind == int(ShapeKind.INTERSECT):
            is_union = kind == int(ShapeKind.UNION)
            acc = ti.select(is_union, 0, 1)
            for _ in range(node_child_count[j]):
                top -= 1
                if is_union:
                    acc = acc | stack[top]
                else:
                    acc = acc & stack[top]
            stack[top] = acc
            top += 1
        elif kind == int(ShapeKind.COMPLEMENT):
            stack[top - 1] = 1 - stack[top - 1]
        else:
            stack[top] = leaf_contains(j, p)
            top += 1
    return stack[0]


@ti.func
def leaf_hit_count(node: ti.i32) -> ti.i32:
    """Number of candidate hits a node can produce on its own.

    Combinators produce none; their hits come from their leaves.
    """
    kind = node_kinds[node]
    count = 0
    if kind == int(ShapeKind.CIRCLE):
        count = 2
    elif kind == int(ShapeKind.PLANE) or kind == int(ShapeKind.DIRECTIONAL_LIGHT):
        count = 1
    elif kind == int(ShapeKind.POLYGON):
        count = node_vertex_count[node]
    return count


@ti.func
def leaf_hit(node: ti.i32, k: ti.i32, ray_origin: vec2, ray_direction: vec2) -> HitRecord:
    """Compute the k-th candidate hit of a primitive node.

    Args:
        node: Index of a primitive node.
        k: Candidate index in [0, leaf_hit_count(node)): the root for a
            circle, the edge for a polygon.
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction.

    Returns:
        The HitRecord of that candidate (possibly a miss).
    """
    kind = node_kinds[node]
    params = node_params[node]
    rec = HitRecord(hit=0, point=vec2(0.0, 0.0), normal=vec2(0.0, 0.0))
    if kind == int(ShapeKind.CIRCLE):
        rec = hit_circle(ray_origin, ray_direction, vec2(params[0], params[1]), params[2], k)
    elif kind == int(ShapeKind.PLANE):
        rec = hit_plane(
            ray_origin, ray_direction, vec2(params[0], params[1]), vec2(params[2], params[3])
        )
    elif kind == int(ShapeKind.POLYGON):
        rec = hit_edge(
            ray_origin, ray_direction, _polygon_vertex(node, k), _polygon_vertex(node, k + 1)
        )
    elif kind == int(ShapeKind.DIRECTIONAL_LIGHT):
        rec = hit_directional_light(
            ray_origin, ray_direction, params[0], vec2(params[1], params[2])
        )
    return rec


@ti.func
def resolve_hit(leaf: ti.i32, point: vec2, normal: vec2):
    """Apply the boolean operators above a leaf to one of its hits.

    At every Union ancestor the hit survives only if no other child of that
    Union contains the point; at every Intersect ancestor only if all other
    children contain it. Every Complement ancestor negates the normal.

    Args:
        leaf: Index of the primitive node that produced the hit.
        point: The hit point.
        normal: The primitive's normal at the hit point.

    Returns:
        A tuple (keep, normal) with the possibly flipped normal.
    """
    keep = 1
    resolved = normal
    child = leaf
    parent = node_parents[leaf]
    while parent >= 0 and keep == 1:
        kind = node_kinds[parent]
        if kind == int(ShapeKind.UNION) or kind == int(ShapeKind.INTERSECT):
            start = node_child_start[parent]
            for s in range(node_child_count[parent]):
                sibling = child_links[start + s]
                if sibling != child and keep == 1:
                    inside = node_contains(sibling, point)
                    if kind == int(ShapeKind.UNION) and inside == 1:
                        keep = 0
                    elif kind == int(ShapeKind.INTERSECT) and inside == 0:
                        keep = 0
        elif kind == int(ShapeKind.COMPLEMENT):
            resolved = -resolved
        child = parent
        parent = node_parents[parent]
    return keep, resolved


# =============================================================================
# Host-side queries
# =============================================================================


@ti.kernel
def _probe_intersect(root: ti.i32, ox: real, oy: real, dx: real, dy: real):
    """Collect every surviving hit of one compiled shape into the probe buffers."""
    origin = vec2(ox, oy)
    direction = vec2(dx, dy)
    _probe_count[None] = 0
    ti.loop_config(serialize=True)
    for leaf in range(node_first[root], root + 1):
        for k in range(leaf_hit_count(leaf)):
            rec = leaf_hit(leaf, k, origin, direction)
            if rec.hit == 1:
                keep, normal = resolve_hit(leaf, rec.point, rec.normal)
                if keep == 1:
                    n = _probe_count[None]
                    if n < MAX_PROBE_HITS:
                        _probe_points[n] = rec.point
                        _probe_normals[n] = normal
                    _probe_count[None] = n + 1


@ti.kernel
def _probe_contains(root: ti.i32, px: real, py: real) -> ti.i32:
    """Evaluate is_inside of one compiled shape at a point."""
    return node_contains(root, vec2(px, py))


def intersect_shape(
    shape: "Shape",
    origin: tuple[float, float],
    direction: tuple[float, float],
) -> "list[Intersection]":
    """Intersect a ray with a shape from Python scope.

    Args:
        shape: The shape to query.
        origin: The ray origin (x, y).
        direction: The ray direction (x, y), need not be normalized.

    Returns:
        Every intersection of the ray with the shape, in enumeration order.

    Raises:
        RuntimeError: If the ray produces more than MAX_PROBE_HITS hits.
    """
    from src.lumen.geometry.shapes import Intersection

    with scratch_shape(shape) as root:
        _probe_intersect(root, origin[0], origin[1], direction[0], direction[1])
        count = int(_probe_count[None])
        if count > MAX_PROBE_HITS:
            raise RuntimeError(
                f"Shape query produced {count} hits (maximum {MAX_PROBE_HITS})"
            )
        points = _probe_points.to_numpy()[:count]
        normals = _probe_normals.to_numpy()[:count]

    return [
        Intersection(
            point=(float(p[0]), float(p[1])),
            normal=(float(n[0]), float(n[1])),
        )
        for p, n in zip(points, normals)
    ]


def shape_contains(shape: "Shape", point: tuple[float, float]) -> bool:
    """Evaluate a shape's is_inside from Python scope.

    Args:
        shape: The shape to query.
        point: The query point (x, y).

    Returns:
        True if the point is inside the shape.
    """
    with scratch_shape(shape) as root:
        return bool(_probe_contains(root, point[0], point[1]))

"""Kernel-side intersection and containment math for primitive shapes.

Each primitive exposes a hit function returning a HitRecord and a
containment test. Hit functions never raise on degenerate input; rays that
are parallel to a surface, grazing, or whose hit lies within EPSILON of the
origin simply report no hit.

Primitives:
    circle: quadratic ray-circle test, up to two hits (one per root)
    plane: single hit against an infinite line, half-space containment
    polygon edge: sign-change test against one edge's supporting line
    directional light: synthetic hit for rays pointing back up a beam

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.geometry.primitives import hit_circle, vec2
    >>> # Use within a Taichi kernel:
    >>> # rec = hit_circle(origin, direction, vec2(0.0, 0.0), 1.0, 0)
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

from src.lumen.core.vector import EPSILON, cross, dot, length, normalize, real, vec2

# Maximum angle (radians) between a ray and a beam for the beam to be seen
LIGHT_ANGULAR_RADIUS = 0.09


class ShapeKind(IntEnum):
    """Node kinds stored in the compiled shape table."""

    DIRECTIONAL_LIGHT = 0
    CIRCLE = 1
    PLANE = 2
    POLYGON = 3
    UNION = 4
    INTERSECT = 5
    COMPLEMENT = 6


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: 1 if the ray hit the primitive, 0 otherwise.
        point: The intersection point. Only valid if hit == 1.
        normal: The unit surface normal at the point. Orientation is left
            to the caller. Only valid if hit == 1.
    """

    hit: ti.i32
    point: vec2
    normal: vec2


@ti.func
def _make_miss() -> HitRecord:
    return HitRecord(hit=0, point=vec2(0.0, 0.0), normal=vec2(0.0, 0.0))


@ti.func
def _solve_quadratic_robust(h: real, a: real, c: real, sqrt_d: real):
    """Solve a*t^2 + 2*h*t + c = 0 without catastrophic cancellation.

    Args:
        h: Half of the linear coefficient.
        a: Quadratic coefficient.
        c: Constant term.
        sqrt_d: Square root of the discriminant (h^2 - a*c).

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0
    if ti.abs(q) < 1e-12:
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def hit_circle(
    ray_origin: vec2,
    ray_direction: vec2,
    center: vec2,
    radius: real,
    root: ti.i32,
) -> HitRecord:
    """Intersect a ray with one root of the ray-circle quadratic.

    The near root is index 0 and the far root index 1, so calling this for
    root in range(2) enumerates every hit of the circle in ray order.

    The quadratic comes from |origin + t * direction - center|^2 = radius^2:
        a = dot(direction, direction)
        h = dot(direction, origin - center)
        c = dot(origin - center, origin - center) - radius^2

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        center: The circle center.
        radius: The circle radius.
        root: Which root to report (0 = near, 1 = far).

    Returns:
        A HitRecord whose normal is the outward radial unit vector.
    """
    oc = ray_origin - center
    a = dot(ray_direction, ray_direction)
    h = dot(ray_direction, oc)
    c = dot(oc, oc) - radius * radius
    discriminant = h * h - a * c

    result = _make_miss()
    if discriminant >= 0.0 and a > 0.0:
        t0, t1 = _solve_quadratic_robust(h, a, c, ti.sqrt(discriminant))
        t = ti.select(root == 0, t0, t1)
        if t > EPSILON:
            point = ray_origin + t * ray_direction
            result = HitRecord(hit=1, point=point, normal=normalize(point - center))
    return result


@ti.func
def circle_contains(center: vec2, radius: real, p: vec2) -> ti.i32:
    """Return 1 if p lies strictly inside the circle."""
    offset = p - center
    return ti.cast(dot(offset, offset) < radius * radius, ti.i32)


@ti.func
def hit_plane(
    ray_origin: vec2,
    ray_direction: vec2,
    plane_point: vec2,
    plane_normal: vec2,
) -> HitRecord:
    """Intersect a ray with an infinite line given by a point and normal.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        plane_point: Any point on the line.
        plane_normal: The unit normal of the line.

    Returns:
        A HitRecord with the plane normal, or a miss when the ray is
        parallel to the line or the hit lies behind the origin.
    """
    denom = dot(ray_direction, plane_normal)
    result = _make_miss()
    if ti.abs(denom) >= EPSILON:
        t = dot(plane_point - ray_origin, plane_normal) / denom
        if t > EPSILON:
            result = HitRecord(hit=1, point=ray_origin + t * ray_direction, normal=plane_normal)
    return result


@ti.func
def plane_contains(plane_point: vec2, plane_normal: vec2, p: vec2) -> ti.i32:
    """Return 1 if p lies on the negative side of the plane normal."""
    return ti.cast(dot(p - plane_point, plane_normal) < 0.0, ti.i32)


@ti.func
def hit_edge(ray_origin: vec2, ray_direction: vec2, a: vec2, b: vec2) -> HitRecord:
    """Intersect a ray with one polygon edge from a to b.

    The ray crosses the edge when the endpoints lie on opposite sides of
    the ray, detected by a sign change of (a - o) x d and (b - o) x d. A
    zero-length edge never produces a sign change.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        a: Edge start vertex.
        b: Edge end vertex.

    Returns:
        A HitRecord whose normal is the normalized left perpendicular of
        (b - a).
    """
    side_a = cross(a - ray_origin, ray_direction)
    side_b = cross(b - ray_origin, ray_direction)

    result = _make_miss()
    if side_a * side_b < 0.0:
        normal = normalize(vec2(a.y - b.y, b.x - a.x))
        denom = dot(ray_direction, normal)
        if ti.abs(denom) > EPSILON:
            t = dot(a - ray_origin, normal) / denom
            if t > EPSILON:
                result = HitRecord(hit=1, point=ray_origin + t * ray_direction, normal=normal)
    return result


@ti.func
def edge_crossing(a: vec2, b: vec2, p: vec2) -> ti.i32:
    """Even-odd crossing contribution of one polygon edge for point p.

    An edge counts when p.x lies in the half-open interval between its
    endpoints' x coordinates and the edge passes below p in image space
    (larger y). Near-vertical edges never count; their neighbours' half-open
    intervals already cover the shared vertices exactly once.

    Args:
        a: Edge start vertex.
        b: Edge end vertex.
        p: The query point.

    Returns:
        1 if the edge crosses the vertical ray from p, 0 otherwise.
    """
    crossing = 0
    if ti.abs(b.x - a.x) >= EPSILON:
        in_span = (a.x <= p.x and p.x < b.x) or (b.x <= p.x and p.x < a.x)
        if in_span:
            slope = (b.y - a.y) / (b.x - a.x)
            if p.y < slope * (p.x - a.x) + a.y:
                crossing = 1
    return crossing


@ti.func
def hit_directional_light(
    ray_origin: vec2,
    ray_direction: vec2,
    light_distance: real,
    facing: vec2,
) -> HitRecord:
    """Intersect a ray with a distant beam source.

    The beam is seen when the ray points back along it, i.e. within
    LIGHT_ANGULAR_RADIUS of the facing direction. The hit is synthetic:
    it sits light_distance along the ray and always uses the facing normal.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        light_distance: Distance of the synthetic hit from the ray origin.
        facing: Unit vector pointing from the scene toward the source.

    Returns:
        A HitRecord, or a miss when the ray does not look at the source.
    """
    c = dot(ray_direction, facing)
    result = _make_miss()
    if c >= EPSILON:
        ray_length = length(ray_direction)
        angle = ti.acos(tm.clamp(c / ray_length, -1.0, 1.0))
        if angle < LIGHT_ANGULAR_RADIUS:
            point = ray_origin + light_distance * ray_direction / ray_length
            result = HitRecord(hit=1, point=point, normal=facing)
    return result

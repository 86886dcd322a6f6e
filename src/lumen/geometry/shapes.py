"""Host-side shape descriptions.

Shapes are immutable dataclasses built once at scene-load time. Each one
knows how to describe itself as a node of the compiled shape table
(kind, parameters, polygon vertices, children); the actual intersection and
containment math runs in Taichi kernels (see primitives.py and csg.py).

The intersect() and is_inside() methods are convenience queries that
compile the shape into a scratch region of the table and run a small
kernel. They are meant for inspection and tests; rendering works on the
scene's compiled tables directly.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.geometry.shapes import Circle, Complement, Union
    >>> lens = Union([Circle((0.0, 0.0), 1.0), Circle((1.0, 0.0), 1.0)])
    >>> hole = Complement(lens)
    >>> hole.is_inside((0.5, 0.0))
    False
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import ClassVar

from src.lumen.geometry.primitives import ShapeKind

Point = tuple[float, float]

# Degrees in a full turn; rotations are normalized into [0, WHOLE_ANGLE)
WHOLE_ANGLE = 360.0


@dataclass(frozen=True)
class Intersection:
    """A ray-shape intersection.

    Attributes:
        point: The intersection point.
        normal: The unit surface normal. Orientation is not guaranteed to
            be outward; callers resolve it against the ray direction.
    """

    point: Point
    normal: Point


def _as_point(value: Sequence[float]) -> Point:
    x, y = value
    return (float(x), float(y))


def _unit(value: Sequence[float], what: str) -> Point:
    x, y = _as_point(value)
    norm = math.hypot(x, y)
    if norm == 0.0:
        raise ValueError(f"{what} must be a non-zero vector")
    return (x / norm, y / norm)


def normalize_rotation(degrees: float) -> float:
    """Normalize an angle in degrees into [0, 360)."""
    angle = float(degrees) % WHOLE_ANGLE
    # -1e-18 % 360.0 rounds to 360.0
    if angle >= WHOLE_ANGLE:
        angle -= WHOLE_ANGLE
    return angle


class Shape:
    """Base class of every shape.

    Subclasses set ``kind`` and override the node description hooks.
    """

    kind: ClassVar[ShapeKind]

    def children(self) -> tuple[Shape, ...]:
        """Sub-shapes combined by this shape (empty for primitives)."""
        return ()

    def node_params(self) -> tuple[float, float, float, float]:
        """Primitive parameters stored in the node table."""
        return (0.0, 0.0, 0.0, 0.0)

    def node_vertices(self) -> tuple[Point, ...]:
        """Polygon vertices stored in the node table."""
        return ()

    def intersect(self, origin: Sequence[float], direction: Sequence[float]) -> list[Intersection]:
        """Intersect a ray with this shape.

        Args:
            origin: The ray origin (x, y).
            direction: The ray direction (x, y), need not be normalized.

        Returns:
            All intersections with parameter t > EPSILON, order unspecified.
        """
        from src.lumen.geometry.csg import intersect_shape

        return intersect_shape(self, _as_point(origin), _as_point(direction))

    def is_inside(self, point: Sequence[float]) -> bool:
        """Check whether a point lies inside this shape."""
        from src.lumen.geometry.csg import shape_contains

        return shape_contains(self, _as_point(point))


@dataclass(frozen=True)
class DirectionalLight(Shape):
    """A distant beam source seen only by rays pointing back up the beam.

    Attributes:
        distance: Distance of the synthetic hit from the ray origin.
        direction: Direction in which the beam travels (normalized on
            construction).
    """

    distance: float
    direction: Point

    kind: ClassVar[ShapeKind] = ShapeKind.DIRECTIONAL_LIGHT

    def __post_init__(self) -> None:
        object.__setattr__(self, "distance", float(self.distance))
        object.__setattr__(self, "direction", _unit(self.direction, "Light direction"))

    def node_params(self) -> tuple[float, float, float, float]:
        # The stored normal faces back toward the source
        return (self.distance, -self.direction[0], -self.direction[1], 0.0)


@dataclass(frozen=True)
class Circle(Shape):
    """A solid circle.

    Attributes:
        center: The circle center.
        radius: The circle radius (positive).
    """

    center: Point
    radius: float

    kind: ClassVar[ShapeKind] = ShapeKind.CIRCLE

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _as_point(self.center))
        object.__setattr__(self, "radius", float(self.radius))
        if self.radius <= 0.0:
            raise ValueError(f"Circle radius = {self.radius} must be positive")

    def node_params(self) -> tuple[float, float, float, float]:
        return (self.center[0], self.center[1], self.radius, 0.0)


@dataclass(frozen=True)
class Plane(Shape):
    """A half-plane bounded by the line through ``point``.

    The interior is the side the normal points away from.

    Attributes:
        point: Any point on the boundary line.
        normal: The boundary normal (normalized on construction).
    """

    point: Point
    normal: Point

    kind: ClassVar[ShapeKind] = ShapeKind.PLANE

    def __post_init__(self) -> None:
        object.__setattr__(self, "point", _as_point(self.point))
        object.__setattr__(self, "normal", _unit(self.normal, "Plane normal"))

    def node_params(self) -> tuple[float, float, float, float]:
        return (self.point[0], self.point[1], self.normal[0], self.normal[1])


@dataclass(frozen=True)
class Polygon(Shape):
    """A simple polygon given by its vertices.

    Vertices are listed counter-clockwise in image space (y grows
    downwards), so each edge's left perpendicular points outwards.

    Attributes:
        points: The vertices, at least two.
    """

    points: tuple[Point, ...]

    kind: ClassVar[ShapeKind] = ShapeKind.POLYGON

    def __post_init__(self) -> None:
        points = tuple(_as_point(p) for p in self.points)
        if len(points) < 2:
            raise ValueError(f"Polygon needs at least 2 points, got {len(points)}")
        object.__setattr__(self, "points", points)

    def node_vertices(self) -> tuple[Point, ...]:
        return self.points

    @classmethod
    def regular(
        cls,
        center: Sequence[float],
        radius: float,
        sides: int,
        rotation: float = 0.0,
    ) -> Polygon:
        """Create a regular n-gon.

        Args:
            center: The polygon center.
            radius: Distance from the center to every vertex.
            sides: Number of vertices (at least 2).
            rotation: Rotation in degrees.

        Returns:
            The polygon.

        Raises:
            ValueError: If sides < 2.
        """
        cx, cy = _as_point(center)
        offset = 2.0 * math.pi * normalize_rotation(rotation) / WHOLE_ANGLE
        points = []
        for i in range(sides):
            theta = i * 2.0 * math.pi / sides + offset
            points.append((cx + radius * math.cos(theta), cy - radius * math.sin(theta)))
        return cls(tuple(points))

    @classmethod
    def star(
        cls,
        center: Sequence[float],
        radius: float,
        points: int,
        rotation: float = 0.0,
    ) -> Polygon:
        """Create a regular star with straight-through edges.

        Tips lie on ``radius``; the inner vertices are pulled in so that
        every edge lines up with the edge two tips over.

        Args:
            center: The star center.
            radius: Distance from the center to every tip.
            points: Number of tips (at least 5).
            rotation: Rotation in degrees.

        Returns:
            The polygon with 2 * points vertices.

        Raises:
            ValueError: If points < 5.
        """
        if points < 5:
            raise ValueError(f"Star polygon needs at least 5 points, got {points}")
        cx, cy = _as_point(center)
        offset = 2.0 * math.pi * normalize_rotation(rotation) / WHOLE_ANGLE
        cos = math.cos(math.pi / points)
        inner_ratio = (cos * cos * 2.0 - 1.0) / cos
        vertices = []
        for i in range(2 * points):
            theta = i * math.pi / points + offset
            length = radius * inner_ratio if i % 2 == 1 else radius
            vertices.append((cx + length * math.cos(theta), cy - length * math.sin(theta)))
        return cls(tuple(vertices))

    @classmethod
    def rectangle(
        cls,
        center: Sequence[float],
        half_extents: Sequence[float],
        rotation: float = 0.0,
    ) -> Polygon:
        """Create a rectangle from its center and half extents.

        Args:
            center: The rectangle center.
            half_extents: Half width and half height before rotation.
            rotation: Rotation in degrees.

        Returns:
            The polygon.
        """
        cx, cy = _as_point(center)
        sx, sy = _as_point(half_extents)
        theta = -2.0 * math.pi * normalize_rotation(rotation) / WHOLE_ANGLE
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        corners = [(sx, -sy), (-sx, -sy), (-sx, sy), (sx, sy)]
        return cls(
            tuple((x * cos_t - y * sin_t + cx, x * sin_t + y * cos_t + cy) for x, y in corners)
        )


@dataclass(frozen=True)
class Union(Shape):
    """Boolean union of any number of shapes.

    A child's boundary survives only where it is not inside another child.
    """

    shapes: tuple[Shape, ...]

    kind: ClassVar[ShapeKind] = ShapeKind.UNION

    def __init__(self, shapes: Iterable[Shape]) -> None:
        object.__setattr__(self, "shapes", tuple(shapes))

    def children(self) -> tuple[Shape, ...]:
        return self.shapes


@dataclass(frozen=True)
class Intersect(Shape):
    """Boolean intersection of any number of shapes.

    A child's boundary survives only where it is inside every other child.
    """

    shapes: tuple[Shape, ...]

    kind: ClassVar[ShapeKind] = ShapeKind.INTERSECT

    def __init__(self, shapes: Iterable[Shape]) -> None:
        object.__setattr__(self, "shapes", tuple(shapes))

    def children(self) -> tuple[Shape, ...]:
        return self.shapes


@dataclass(frozen=True)
class Complement(Shape):
    """Everything outside a shape; the boundary is shared, normals flip."""

    shape: Shape

    kind: ClassVar[ShapeKind] = ShapeKind.COMPLEMENT

    def children(self) -> tuple[Shape, ...]:
        return (self.shape,)

"""Geometry module for shapes and boolean combinations.

Components:
    shapes: Immutable host-side shape descriptions and constructors
    primitives: Kernel-side intersection and containment math
    csg: Compiled node table and boolean-tree evaluation

Shape trees are described on the host and compiled into Taichi fields
before rendering; see csg.compile_shape.
"""

from .primitives import LIGHT_ANGULAR_RADIUS, HitRecord, ShapeKind
from .shapes import (
    Circle,
    Complement,
    DirectionalLight,
    Intersect,
    Intersection,
    Plane,
    Polygon,
    Shape,
    Union,
)

# Note: csg is NOT imported here; it allocates Taichi fields on import.

__all__ = [
    "Shape",
    "Intersection",
    "DirectionalLight",
    "Circle",
    "Plane",
    "Polygon",
    "Union",
    "Intersect",
    "Complement",
    "ShapeKind",
    "HitRecord",
    "LIGHT_ANGULAR_RADIUS",
]

"""Scene-level nearest-hit queries over compiled shape trees.

Each entity binds the root of one compiled shape tree (see
geometry/csg.py) to its material properties. The material is stored in
Taichi fields next to the root index so the light-transport kernels can read
both in a single lookup.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.geometry.csg import compile_shape
    >>> from src.lumen.geometry.shapes import Circle
    >>> from src.lumen.scene.intersection import add_entity, clear_scene
    >>> clear_scene()
    >>> root = compile_shape(Circle((0.5, 0.5), 0.1))
    >>> add_entity(root, emissive=(2.0, 2.0, 2.0))
    0
    >>> # Use intersect_scene within a Taichi kernel
"""

import taichi as ti

from src.lumen.core.vector import color3, distance, real, vec2
from src.lumen.geometry.csg import (
    clear_shapes,
    leaf_hit,
    leaf_hit_count,
    node_first,
    resolve_hit,
)


@ti.dataclass
class EntityHit:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if the ray hit any entity, 0 otherwise.
        point: The intersection point. Only valid if hit == 1.
        normal: The unit surface normal after CSG resolution. Its
            orientation relative to the ray is left to the caller.
        distance: Euclidean distance from the ray origin to the point.
        entity: Index of the hit entity, -1 on a miss.
        emissive: Emitted radiance of the hit entity.
        reflectivity: Mirror reflectance in [0, 1].
        eta: Relative refractive index, 0 for opaque entities.
        absorption: Per-channel Beer-Lambert coefficient.
    """

    hit: ti.i32
    point: vec2
    normal: vec2
    distance: real
    entity: ti.i32
    emissive: color3
    reflectivity: real
    eta: real
    absorption: color3


# Maximum number of entities supported in the scene
MAX_ENTITIES = 256

# Entity storage: Structure of Arrays layout
entity_roots = ti.field(dtype=ti.i32, shape=MAX_ENTITIES)
entity_emissive = ti.Vector.field(3, dtype=real, shape=MAX_ENTITIES)
entity_reflectivity = ti.field(dtype=real, shape=MAX_ENTITIES)
entity_eta = ti.field(dtype=real, shape=MAX_ENTITIES)
entity_absorption = ti.Vector.field(3, dtype=real, shape=MAX_ENTITIES)
num_entities = ti.field(dtype=ti.i32, shape=())

# Output of host-side nearest-hit queries
_probe_hit = ti.field(dtype=ti.i32, shape=())
_probe_entity = ti.field(dtype=ti.i32, shape=())
_probe_point = ti.Vector.field(2, dtype=real, shape=())
_probe_normal = ti.Vector.field(2, dtype=real, shape=())


def clear_scene() -> None:
    """Clear all entities and their compiled shapes.

    Resets the counts to zero. The actual field data is not cleared but
    will be overwritten when new entities are added.
    """
    num_entities[None] = 0
    clear_shapes()


def add_entity(
    root: int,
    emissive: tuple[float, float, float] = (0.0, 0.0, 0.0),
    reflectivity: float = 0.0,
    eta: float = 0.0,
    absorption: tuple[float, float, float] = (0.0, 0.0, 0.0),
) -> int:
    """Add an entity bound to a compiled shape root.

    Args:
        root: Node index returned by compile_shape.
        emissive: Emitted radiance (R, G, B).
        reflectivity: Mirror reflectance in [0, 1].
        eta: Relative refractive index; 0 marks an opaque entity.
        absorption: Per-channel absorption coefficient per unit length.

    Returns:
        The index of the added entity.

    Raises:
        RuntimeError: If the maximum number of entities is exceeded.
    """
    idx = num_entities[None]
    if idx >= MAX_ENTITIES:
        raise RuntimeError(f"Maximum number of entities ({MAX_ENTITIES}) exceeded")
    entity_roots[idx] = root
    entity_emissive[idx] = list(emissive)
    entity_reflectivity[idx] = reflectivity
    entity_eta[idx] = eta
    entity_absorption[idx] = list(absorption)
    num_entities[None] = idx + 1
    return idx


def get_entity_count() -> int:
    """Get the number of entities in the scene."""
    return int(num_entities[None])


@ti.func
def _make_miss_record() -> EntityHit:
    return EntityHit(
        hit=0,
        point=vec2(0.0, 0.0),
        normal=vec2(0.0, 0.0),
        distance=0.0,
        entity=-1,
        emissive=color3(0.0, 0.0, 0.0),
        reflectivity=0.0,
        eta=0.0,
        absorption=color3(0.0, 0.0, 0.0),
    )


@ti.func
def intersect_scene(ray_origin: vec2, ray_direction: vec2) -> EntityHit:
    """Find the nearest hit of a ray across every entity.

    Entities are tested in insertion order and each tree's hits in
    enumeration order. The current best is replaced only when its distance
    is strictly greater than the new hit's, so the first hit found wins an
    exact tie.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).

    Returns:
        An EntityHit carrying the nearest hit and its entity's material,
        or a miss record.
    """
    result = _make_miss_record()
    for e in range(num_entities[None]):
        root = entity_roots[e]
        for leaf in range(node_first[root], root + 1):
            for k in range(leaf_hit_count(leaf)):
                rec = leaf_hit(leaf, k, ray_origin, ray_direction)
                if rec.hit == 1:
                    dist = distance(rec.point, ray_origin)
                    if result.hit == 0 or result.distance > dist:
                        keep, normal = resolve_hit(leaf, rec.point, rec.normal)
                        if keep == 1:
                            result = EntityHit(
                                hit=1,
                                point=rec.point,
                                normal=normal,
                                distance=dist,
                                entity=e,
                                emissive=entity_emissive[e],
                                reflectivity=entity_reflectivity[e],
                                eta=entity_eta[e],
                                absorption=entity_absorption[e],
                            )
    return result


@ti.kernel
def _probe_nearest(ox: real, oy: real, dx: real, dy: real):
    """Run intersect_scene for one ray and store the result."""
    rec = intersect_scene(vec2(ox, oy), vec2(dx, dy))
    _probe_hit[None] = rec.hit
    _probe_entity[None] = rec.entity
    _probe_point[None] = rec.point
    _probe_normal[None] = rec.normal


def nearest_hit(
    origin: tuple[float, float],
    direction: tuple[float, float],
) -> tuple[int, tuple[float, float], tuple[float, float]] | None:
    """Query the nearest hit from Python scope.

    Args:
        origin: The ray origin (x, y).
        direction: The ray direction (x, y).

    Returns:
        A tuple (entity_index, point, normal), or None on a miss.
    """
    _probe_nearest(origin[0], origin[1], direction[0], direction[1])
    if _probe_hit[None] == 0:
        return None
    point = _probe_point[None]
    normal = _probe_normal[None]
    return (
        int(_probe_entity[None]),
        (float(point[0]), float(point[1])),
        (float(normal[0]), float(normal[1])),
    )

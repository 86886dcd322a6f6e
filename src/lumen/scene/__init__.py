"""Scene module for entities and ray-scene queries.

Components:
    intersection: Entity storage in Taichi fields and the nearest-hit query
    manager: Host-side Color, Entity and Scene
    config: JSON render-job parsing

Scene data is organized for efficient kernel access:
    - Structure-of-Arrays layout for entity materials
    - One compiled shape-tree root per entity
"""

from .intersection import (
    MAX_ENTITIES,
    EntityHit,
    add_entity,
    clear_scene,
    get_entity_count,
    intersect_scene,
)
from .manager import Color, Entity, EntityIntersection, Scene

# Note: config is NOT imported here to avoid circular imports with core.integrator.
# Import directly from src.lumen.scene.config when needed.

__all__ = [
    "EntityHit",
    "add_entity",
    "clear_scene",
    "get_entity_count",
    "intersect_scene",
    "MAX_ENTITIES",
    "Color",
    "Entity",
    "EntityIntersection",
    "Scene",
]

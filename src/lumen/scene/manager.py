"""Host-side entities and scene upload.

An Entity binds a shape tree to its material; a Scene is an ordered list of
entities. Constructing a Scene compiles every shape tree into the node table
and uploads the materials to the entity fields used by the kernels.

Only one scene lives in the Taichi tables at a time. The most recently
loaded Scene is the active one; any Scene method that needs the tables
re-uploads its own entities first if another Scene was loaded since.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.geometry.shapes import Circle
    >>> from src.lumen.scene.manager import Color, Entity, Scene
    >>> lamp = Entity(Circle((0.5, 0.5), 0.1), emissive=Color.grey(2.0))
    >>> scene = Scene([lamp])
    >>> hit = scene.intersect((0.0, 0.5), (1.0, 0.0))
    >>> # hit.point is approximately (0.4, 0.5)
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from src.lumen.geometry.csg import compile_shape
from src.lumen.geometry.shapes import Intersection, Shape
from src.lumen.scene.intersection import (
    add_entity,
    clear_scene,
    get_entity_count,
    nearest_hit,
)


@dataclass(frozen=True)
class Color:
    """An RGB radiance triple with non-negative channels.

    Channels are not clamped; values above 1 are valid emitted radiance.
    """

    r: float
    g: float
    b: float

    def __post_init__(self) -> None:
        for name in ("r", "g", "b"):
            value = float(getattr(self, name))
            if not math.isfinite(value) or value < 0.0:
                raise ValueError(f"Color channel {name} = {value} must be finite and non-negative")
            object.__setattr__(self, name, value)

    @classmethod
    def grey(cls, value: float) -> Color:
        """Create a color with all three channels equal to value."""
        return cls(value, value, value)

    @classmethod
    def black(cls) -> Color:
        """Create the zero color."""
        return cls(0.0, 0.0, 0.0)

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.r, self.g, self.b)


@dataclass(frozen=True)
class Entity:
    """A shape tree with material properties.

    Attributes:
        shape: The root of the entity's shape tree.
        emissive: Emitted radiance.
        reflectivity: Mirror reflectance in [0, 1].
        eta: Relative refractive index; 0 for opaque entities.
        absorption: Per-channel Beer-Lambert coefficient applied to light
            travelling inside the entity.
    """

    shape: Shape
    emissive: Color = field(default_factory=Color.black)
    reflectivity: float = 0.0
    eta: float = 0.0
    absorption: Color = field(default_factory=Color.black)

    def __post_init__(self) -> None:
        if not isinstance(self.shape, Shape):
            raise ValueError(f"Entity shape must be a Shape, got {type(self.shape).__name__}")
        reflectivity = float(self.reflectivity)
        if not 0.0 <= reflectivity <= 1.0:
            raise ValueError(f"Reflectivity = {reflectivity} must be in [0, 1]")
        eta = float(self.eta)
        if not math.isfinite(eta) or eta < 0.0:
            raise ValueError(f"Eta = {eta} must be finite and non-negative")
        object.__setattr__(self, "reflectivity", reflectivity)
        object.__setattr__(self, "eta", eta)

    def to_dict(self) -> dict[str, Any]:
        """Material parameters of the entity (the shape is not serialized)."""
        return {
            "emissive": self.emissive.as_tuple(),
            "reflectivity": self.reflectivity,
            "eta": self.eta,
            "absorption": self.absorption.as_tuple(),
        }


@dataclass
class EntityIntersection:
    """The nearest hit of a ray in a scene.

    Attributes:
        intersection: The hit point and its CSG-resolved normal.
        entity: The entity that was hit.
        entity_index: Position of the entity in the scene.
    """

    intersection: Intersection
    entity: Entity
    entity_index: int

    @property
    def point(self) -> tuple[float, float]:
        return self.intersection.point

    @property
    def normal(self) -> tuple[float, float]:
        return self.intersection.normal


# The Scene whose entities currently occupy the Taichi tables
_active_scene: Scene | None = None


def _reset_active_scene() -> None:
    """Forget which Scene is loaded (the tables were cleared elsewhere)."""
    global _active_scene
    _active_scene = None


class Scene:
    """An ordered, immutable collection of entities.

    Entity order only matters for tie-breaking between hits at exactly
    the same distance.

    Attributes:
        entities: The scene's entities in insertion order.

    Example:
        >>> glass = Entity(Circle((0.5, 0.5), 0.2), eta=1.5)
        >>> lamp = Entity(Circle((0.9, 0.5), 0.05), emissive=Color.grey(4.0))
        >>> scene = Scene([glass, lamp])
        >>> len(scene)
        2
    """

    def __init__(self, entities: Iterable[Entity]) -> None:
        """Create a scene and upload it to the Taichi tables.

        Args:
            entities: The entities, in tie-break order.

        Raises:
            ValueError: If an item is not an Entity or a shape tree is too
                deep to evaluate.
            RuntimeError: If the node, vertex or entity tables overflow.
        """
        self._entities: tuple[Entity, ...] = tuple(entities)
        for index, entity in enumerate(self._entities):
            if not isinstance(entity, Entity):
                raise ValueError(f"Scene item {index} is not an Entity")
        self.load()

    @property
    def entities(self) -> tuple[Entity, ...]:
        return self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def load(self) -> None:
        """Upload this scene's shapes and materials to the Taichi tables.

        Replaces whatever scene was loaded before.
        """
        global _active_scene
        _active_scene = None
        clear_scene()
        for entity in self._entities:
            root = compile_shape(entity.shape)
            add_entity(
                root,
                emissive=entity.emissive.as_tuple(),
                reflectivity=entity.reflectivity,
                eta=entity.eta,
                absorption=entity.absorption.as_tuple(),
            )
        _active_scene = self

    def ensure_loaded(self) -> None:
        """Re-upload this scene if another one was loaded since."""
        if _active_scene is not self:
            self.load()

    def get_entity_count(self) -> int:
        """Get the number of entities uploaded to the Taichi tables."""
        self.ensure_loaded()
        return get_entity_count()

    def intersect(
        self,
        origin: Sequence[float],
        direction: Sequence[float],
    ) -> EntityIntersection | None:
        """Find the nearest hit of a ray across all entities.

        Args:
            origin: The ray origin (x, y).
            direction: The ray direction (x, y), need not be normalized.

        Returns:
            The nearest EntityIntersection, or None if nothing is hit.
        """
        self.ensure_loaded()
        result = nearest_hit(
            (float(origin[0]), float(origin[1])),
            (float(direction[0]), float(direction[1])),
        )
        if result is None:
            return None
        index, point, normal = result
        return EntityIntersection(
            intersection=Intersection(point=point, normal=normal),
            entity=self._entities[index],
            entity_index=index,
        )

"""JSON render-job configuration.

A configuration file holds a list of render jobs. Each job names an output
file, the image size, the sampling parameters and the entities to render:

    [{"enable": true, "out": "out.png", "width": 256, "height": 256,
      "stratification": 64, "max_depth": 3,
      "scenes": [{"shape": {"circle": {"cx": 0.5, "cy": 0.5, "r": 0.1}},
                  "emissive": {"grey": 2.0}, "reflectivity": 0.0,
                  "eta": 0.0, "absorption": {"black": true}}]}]

Shapes and colors are single-key objects whose key selects the variant:

    {"directional_light": {"d", "nx", "ny"}}
    {"circle": {"cx", "cy", "r"}}
    {"plane": {"px", "py", "nx", "ny"}}
    {"polygon": {"points": [[x, y], ...]}}
    {"polygon": {"regular": {"cx", "cy", "r", "n", "e"}}}
    {"polygon": {"star": {"cx", "cy", "r", "n", "e"}}}
    {"polygon": {"rectangle": {"cx", "cy", "e", "sx", "sy"}}}
    {"union": [shape, ...]}, {"intersect": [shape, ...]}
    {"complement": shape}

    {"grey": v}, {"black": true}, {"rgb": {"r", "g", "b"}}

A directional light's (nx, ny) is the direction its beam travels. Polygon
rotations ``e`` are in degrees and default to 0.

Every job is parsed and validated up front, so a bad file fails before
anything renders.

Example:
    >>> from src.lumen.scene.config import load_jobs
    >>> jobs = load_jobs("config.json")
    >>> [job.out for job in jobs if job.enable]
    ['out.png']
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.lumen.core.integrator import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    check_max_depth,
    check_stratification,
)
from src.lumen.geometry.shapes import (
    Circle,
    Complement,
    DirectionalLight,
    Intersect,
    Plane,
    Polygon,
    Shape,
    Union,
)
from src.lumen.scene.manager import Color, Entity


class ConfigError(ValueError):
    """A render-job description is malformed."""


@dataclass
class RenderJob:
    """One render job from a configuration file.

    Attributes:
        enable: Whether the job should be rendered.
        out: Output image path.
        width: Image width in pixels.
        height: Image height in pixels.
        stratification: Number of rays per pixel.
        max_depth: Trace depth of every ray.
        entities: The entities of the job's scene.
    """

    enable: bool
    out: str
    width: int
    height: int
    stratification: int
    max_depth: int
    entities: list[Entity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Job parameters without the entities."""
        return {
            "enable": self.enable,
            "out": self.out,
            "width": self.width,
            "height": self.height,
            "stratification": self.stratification,
            "max_depth": self.max_depth,
            "entities": len(self.entities),
        }


# =============================================================================
# Field helpers
# =============================================================================


def _require_dict(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a list, got {type(value).__name__}")
    return value


def _get(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise ConfigError(f"{where}: missing key '{key}'")
    return data[key]


def _number(data: dict[str, Any], key: str, where: str, default: float | None = None) -> float:
    if key not in data and default is not None:
        return default
    value = _get(data, key, where)
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: '{key}' must be a number, got {value!r}")
    return float(value)


def _integer(data: dict[str, Any], key: str, where: str) -> int:
    value = _get(data, key, where)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: '{key}' must be an integer, got {value!r}")
    return value


def _tagged(value: Any, where: str) -> tuple[str, Any]:
    data = _require_dict(value, where)
    if len(data) != 1:
        raise ConfigError(f"{where}: expected exactly one variant key, got {sorted(data)}")
    return next(iter(data.items()))


# =============================================================================
# Colors and shapes
# =============================================================================


def parse_color(value: Any, where: str = "color") -> Color:
    """Parse a color description.

    Args:
        value: One of {"grey": v}, {"black": true} or {"rgb": {...}}.
        where: Location used in error messages.

    Returns:
        The Color.

    Raises:
        ConfigError: If the description is malformed or a channel is
            negative.
    """
    tag, body = _tagged(value, where)
    try:
        if tag == "grey":
            if isinstance(body, bool) or not isinstance(body, (int, float)):
                raise ConfigError(f"{where}: 'grey' must be a number, got {body!r}")
            return Color.grey(float(body))
        if tag == "black":
            return Color.black()
        if tag == "rgb":
            rgb = _require_dict(body, f"{where}.rgb")
            return Color(
                _number(rgb, "r", f"{where}.rgb"),
                _number(rgb, "g", f"{where}.rgb"),
                _number(rgb, "b", f"{where}.rgb"),
            )
    except ConfigError:
        raise
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e
    raise ConfigError(f"{where}: unknown color '{tag}'")


def _parse_polygon(body: Any, where: str) -> Polygon:
    tag, form = _tagged(body, where)
    inner = f"{where}.{tag}"
    if tag == "points":
        points = _require_list(form, inner)
        vertices = []
        for i, point in enumerate(points):
            if (
                not isinstance(point, list)
                or len(point) != 2
                or any(isinstance(c, bool) or not isinstance(c, (int, float)) for c in point)
            ):
                raise ConfigError(f"{inner}[{i}]: expected [x, y], got {point!r}")
            vertices.append((float(point[0]), float(point[1])))
        return Polygon(vertices)

    form = _require_dict(form, inner)
    if tag in ("regular", "star"):
        center = (_number(form, "cx", inner), _number(form, "cy", inner))
        radius = _number(form, "r", inner)
        count = _integer(form, "n", inner)
        rotation = _number(form, "e", inner, default=0.0)
        if tag == "regular":
            return Polygon.regular(center, radius, count, rotation)
        return Polygon.star(center, radius, count, rotation)
    if tag == "rectangle":
        return Polygon.rectangle(
            (_number(form, "cx", inner), _number(form, "cy", inner)),
            (_number(form, "sx", inner), _number(form, "sy", inner)),
            _number(form, "e", inner, default=0.0),
        )
    raise ConfigError(f"{where}: unknown polygon form '{tag}'")


def _parse_children(body: Any, where: str) -> list[Shape]:
    return [parse_shape(child, f"{where}[{i}]") for i, child in enumerate(_require_list(body, where))]


_SHAPE_PARSERS: dict[str, Callable[[Any, str], Shape]] = {
    "directional_light": lambda body, where: DirectionalLight(
        _number(_require_dict(body, where), "d", where),
        (_number(body, "nx", where), _number(body, "ny", where)),
    ),
    "circle": lambda body, where: Circle(
        (_number(_require_dict(body, where), "cx", where), _number(body, "cy", where)),
        _number(body, "r", where),
    ),
    "plane": lambda body, where: Plane(
        (_number(_require_dict(body, where), "px", where), _number(body, "py", where)),
        (_number(body, "nx", where), _number(body, "ny", where)),
    ),
    "polygon": _parse_polygon,
    "union": lambda body, where: Union(_parse_children(body, where)),
    "intersect": lambda body, where: Intersect(_parse_children(body, where)),
    "complement": lambda body, where: Complement(parse_shape(body, where)),
}


def parse_shape(value: Any, where: str = "shape") -> Shape:
    """Parse a shape description, recursing into combinators.

    Args:
        value: A single-key object selecting the shape variant.
        where: Location used in error messages.

    Returns:
        The Shape.

    Raises:
        ConfigError: If the description is malformed or the shape
            constructor rejects its parameters.
    """
    tag, body = _tagged(value, where)
    parser = _SHAPE_PARSERS.get(tag)
    if parser is None:
        raise ConfigError(f"{where}: unknown shape '{tag}'")
    inner = f"{where}.{tag}"
    try:
        return parser(body, inner)
    except ConfigError:
        raise
    except ValueError as e:
        raise ConfigError(f"{inner}: {e}") from e


# =============================================================================
# Entities and jobs
# =============================================================================


def parse_entity(value: Any, where: str = "entity") -> Entity:
    """Parse an entity description.

    Only "shape" is required; colors default to black and reflectivity and
    eta to 0.

    Raises:
        ConfigError: If the description is malformed or a material
            parameter is out of range.
    """
    data = _require_dict(value, where)
    shape = parse_shape(_get(data, "shape", where), f"{where}.shape")
    emissive = parse_color(data.get("emissive", {"black": True}), f"{where}.emissive")
    absorption = parse_color(data.get("absorption", {"black": True}), f"{where}.absorption")
    reflectivity = _number(data, "reflectivity", where, default=0.0)
    eta = _number(data, "eta", where, default=0.0)
    try:
        return Entity(
            shape,
            emissive=emissive,
            reflectivity=reflectivity,
            eta=eta,
            absorption=absorption,
        )
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e


def _parse_job(value: Any, where: str) -> RenderJob:
    data = _require_dict(value, where)

    enable = data.get("enable", True)
    if not isinstance(enable, bool):
        raise ConfigError(f"{where}: 'enable' must be true or false, got {enable!r}")
    out = _get(data, "out", where)
    if not isinstance(out, str) or not out:
        raise ConfigError(f"{where}: 'out' must be a non-empty string, got {out!r}")

    width = _integer(data, "width", where)
    height = _integer(data, "height", where)
    if not (0 < width <= MAX_IMAGE_WIDTH and 0 < height <= MAX_IMAGE_HEIGHT):
        raise ConfigError(
            f"{where}: image size {width}x{height} must be within "
            f"1x1 and {MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
        )
    stratification = _integer(data, "stratification", where)
    max_depth = _integer(data, "max_depth", where)
    try:
        check_stratification(stratification)
        check_max_depth(max_depth)
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e

    scenes = _require_list(_get(data, "scenes", where), f"{where}.scenes")
    entities = [parse_entity(item, f"{where}.scenes[{i}]") for i, item in enumerate(scenes)]

    return RenderJob(
        enable=enable,
        out=out,
        width=width,
        height=height,
        stratification=stratification,
        max_depth=max_depth,
        entities=entities,
    )


def parse_jobs(data: Any) -> list[RenderJob]:
    """Parse a decoded configuration document.

    Args:
        data: The decoded JSON: a list of job objects.

    Returns:
        Every job, enabled or not, in file order.

    Raises:
        ConfigError: If any job is malformed.
    """
    jobs = _require_list(data, "config")
    return [_parse_job(job, f"job {i}") for i, job in enumerate(jobs)]


def parse_config(text: str) -> list[RenderJob]:
    """Parse the text of a JSON configuration file.

    Raises:
        ConfigError: If the text is not valid JSON or a job is malformed.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON: {e}") from e
    return parse_jobs(data)


def load_jobs(path: str | Path) -> list[RenderJob]:
    """Read and parse a configuration file.

    Args:
        path: Path of the JSON configuration file.

    Returns:
        Every job in file order.

    Raises:
        OSError: If the file cannot be read.
        ConfigError: If the file is not UTF-8 JSON or a job is malformed.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigError(f"{path}: not valid UTF-8: {e.reason}") from e
    return parse_config(text)

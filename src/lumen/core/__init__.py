"""Core rendering module.

Components:
    vector: 2D vector types and optics helpers (reflect, refract, Schlick,
        Beer-Lambert)
    integrator: Light transport (trace) and the stratified render kernels
    progressive: Batch renderer with progress callbacks

All compute-intensive operations use Taichi kernels.
"""

from .vector import (
    EPSILON,
    beer_lambert,
    color3,
    cross,
    distance,
    dot,
    length,
    normalize,
    real,
    reflect,
    refract,
    schlick,
    vec2,
)

# Note: integrator and progressive are NOT imported here to avoid circular imports.
# Import directly from src.lumen.core.integrator or src.lumen.core.progressive when needed.

__all__ = [
    "EPSILON",
    "real",
    "vec2",
    "color3",
    "dot",
    "cross",
    "length",
    "distance",
    "normalize",
    "reflect",
    "refract",
    "schlick",
    "beer_lambert",
]

"""2D vector and color utilities for Taichi kernels.

This module defines the double-precision vector types shared by every
kernel in the package together with the optics helpers used by the light
transport integrator: reflection, Snell refraction, Schlick reflectance and
Beer-Lambert transmittance.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.core.vector import reflect, vec2
    >>> # Use within a Taichi kernel:
    >>> # mirrored = reflect(vec2(1.0, -1.0), vec2(0.0, 1.0))
"""

import taichi as ti
import taichi.math as tm

# Scalar type used for all geometry and radiance
real = ti.f64

# Point/direction and RGB color types
vec2 = ti.types.vector(2, real)
color3 = ti.types.vector(3, real)

# Self-intersection and parallelism guard
EPSILON = 1e-6


@ti.func
def dot(a: vec2, b: vec2) -> real:
    """Compute the dot product of two 2D vectors."""
    return tm.dot(a, b)


@ti.func
def cross(a: vec2, b: vec2) -> real:
    """Compute the z component of the 3D cross product of two 2D vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        a.x * b.y - a.y * b.x; positive when b is counter-clockwise from a
        in a y-up frame.
    """
    return a.x * b.y - a.y * b.x


@ti.func
def length(v: vec2) -> real:
    """Compute the Euclidean length of a vector."""
    return tm.length(v)


@ti.func
def distance(a: vec2, b: vec2) -> real:
    """Compute the Euclidean distance between two points."""
    return tm.length(a - b)


@ti.func
def normalize(v: vec2) -> vec2:
    """Normalize a vector to unit length."""
    return tm.normalize(v)


@ti.func
def reflect(incident: vec2, normal: vec2) -> vec2:
    """Reflect an incident direction about a unit normal.

    Args:
        incident: The incoming direction.
        normal: The surface normal (unit length).

    Returns:
        incident - 2 * dot(incident, normal) * normal
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec2, normal: vec2, eta: real):
    """Refract a direction through a surface using Snell's law.

    The normal must face the incoming ray (dot(incident, normal) < 0) and
    eta is the ratio n_incident / n_transmitted.

    Args:
        incident: The incoming direction (unit length).
        normal: The oriented surface normal (unit length).
        eta: Ratio of refractive indices across the boundary.

    Returns:
        A tuple (ok, direction). ok is 0 on total internal reflection, in
        which case direction is the zero vector.
    """
    d_dot_n = tm.dot(incident, normal)
    k = 1.0 - eta * eta * (1.0 - d_dot_n * d_dot_n)
    ok = 0
    direction = vec2(0.0, 0.0)
    if k >= 0.0:
        ok = 1
        direction = eta * incident - (eta * d_dot_n + ti.sqrt(k)) * normal
    return ok, direction


@ti.func
def schlick(cos_i: real, cos_t: real, eta_i: real, eta_t: real) -> real:
    """Approximate Fresnel reflectance at a dielectric boundary.

    Uses the incident cosine when entering the denser medium and the
    transmitted cosine when leaving it.

    Args:
        cos_i: Cosine between the incident ray and the oriented normal.
        cos_t: Cosine between the transmitted ray and the reversed normal.
        eta_i: Refractive index on the incident side.
        eta_t: Refractive index on the transmitted side.

    Returns:
        The reflectance in [0, 1].
    """
    r0 = (eta_i - eta_t) / (eta_i + eta_t)
    r0 = r0 * r0
    a = 1.0 - cos_t
    if eta_i < eta_t:
        a = 1.0 - cos_i
    aa = a * a
    return r0 + (1.0 - r0) * aa * aa * a


@ti.func
def beer_lambert(absorption: color3, travelled: real) -> color3:
    """Per-channel transmittance through an absorbing medium.

    Args:
        absorption: Absorption coefficient per unit length for each channel.
        travelled: Distance travelled inside the medium.

    Returns:
        exp(-absorption * travelled) for each channel.
    """
    return ti.exp(-absorption * travelled)

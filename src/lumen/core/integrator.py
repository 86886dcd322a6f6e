"""Light transport and stratified rendering kernels.

This module implements the recursive radiance estimate ``trace`` and the
stratified sampling driver that shoots it from every pixel.

trace follows a ray to its nearest hit, adds the entity's emission and then
splits into a refracted and a reflected ray (weighted by Schlick
reflectance) until the depth budget runs out. Light travelling inside an
entity is attenuated with Beer-Lambert absorption. Since every step is a
weighted sum of its children, the recursion is evaluated in-kernel with an
explicit depth-first stack whose entries carry their accumulated weight.

Rendering places pixel (x, y) at scene point (x / s, y / s) with
s = min(width, height) and averages N rays at stratified angles
2 * pi * (i + u) / N, u uniform in [0, 1).

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=42)
    >>> from src.lumen.core.integrator import render
    >>> from src.lumen.geometry.shapes import Circle
    >>> from src.lumen.scene.manager import Color, Entity, Scene
    >>>
    >>> scene = Scene([Entity(Circle((0.5, 0.5), 0.1), emissive=Color.grey(2.0))])
    >>> image = render(scene, 256, 256, stratification=64, max_depth=3)
    >>> image.shape
    (256, 256, 3)
"""

from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.lumen.core.vector import (
    beer_lambert,
    color3,
    dot,
    real,
    reflect,
    refract,
    schlick,
    vec2,
)
from src.lumen.scene.intersection import intersect_scene

if TYPE_CHECKING:
    from src.lumen.scene.manager import Scene

# =============================================================================
# Rendering Constants
# =============================================================================

# Deepest supported recursion; a depth-first walk holds at most depth + 1 rays
MAX_TRACE_DEPTH = 31
TRACE_STACK_SIZE = MAX_TRACE_DEPTH + 1

# Color returned by rays that escape the scene
BACKGROUND_COLOR = color3(0.0, 0.0, 0.0)

# =============================================================================
# Render Target (Radiance Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Image dimensions (actual active size)
_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())

# Sum of traced radiance per pixel (preallocated to max size)
_radiance = ti.Vector.field(3, dtype=real, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Number of strata accumulated into every pixel
_strata_done = ti.field(dtype=ti.i32, shape=())

# Flag to track if render target is initialized
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def _check_image_size(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions ({width}x{height}) must be positive")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )


def check_max_depth(max_depth: int) -> None:
    """Validate a trace depth.

    Raises:
        ValueError: If max_depth is outside [0, MAX_TRACE_DEPTH].
    """
    if not 0 <= max_depth <= MAX_TRACE_DEPTH:
        raise ValueError(f"Depth = {max_depth} must be in [0, {MAX_TRACE_DEPTH}]")


def check_stratification(stratification: int) -> None:
    """Validate a per-pixel sample count.

    Raises:
        ValueError: If stratification is not positive.
    """
    if stratification <= 0:
        raise ValueError(f"Stratification = {stratification} must be positive")


def setup_render_target(width: int, height: int) -> None:
    """Initialize the render target buffers.

    Sets the active image dimensions and clears the buffers. The buffers are
    preallocated to MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If dimensions are not positive or exceed the maximum.
    """
    _check_image_size(width, height)

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1

    clear_render_target()


def clear_render_target() -> None:
    """Clear the radiance buffer and the stratum count."""
    _radiance.fill(0.0)
    _strata_done[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions.

    Returns:
        Tuple of (width, height).
    """
    return int(_image_width[None]), int(_image_height[None])


def get_strata_done() -> int:
    """Get the number of strata accumulated so far."""
    return int(_strata_done[None])


def _check_render_target_initialized() -> None:
    """Check if render target is initialized and raise if not."""
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Light Transport
# =============================================================================


@ti.func
def trace(ray_origin: vec2, ray_direction: vec2, depth: ti.i32) -> color3:
    """Estimate the radiance arriving along a ray.

    Each ray on the stack carries the weight its radiance contributes to
    the result: the product of the branch weights (reflectivity or
    1 - reflectivity) and Beer-Lambert transmittances of its ancestors.

    For one ray with nearest hit h:
        1. Escaped rays contribute BACKGROUND_COLOR.
        2. The hit is entering when dot(normal, direction) < 0, exiting
           otherwise; exiting rays travelled inside the entity and are
           attenuated by exp(-absorption * distance).
        3. The entity's emission is added.
        4. With depth left and a reflective or refractive entity, the
           normal is turned against the ray. A refractive entity spawns
           the refracted ray weighted by 1 - Schlick reflectance, or
           forces full reflectance on total internal reflection. A
           reflective entity spawns the mirrored ray.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction.
        depth: Remaining bounces; 0 returns emission only.

    Returns:
        The radiance (RGB), unclamped.
    """
    stack_ox = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_oy = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_dx = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_dy = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_wr = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_wg = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_wb = ti.Vector([0.0 for _ in range(TRACE_STACK_SIZE)], dt=real)
    stack_depth = ti.Vector([0 for _ in range(TRACE_STACK_SIZE)], dt=ti.i32)

    stack_ox[0] = ray_origin.x
    stack_oy[0] = ray_origin.y
    stack_dx[0] = ray_direction.x
    stack_dy[0] = ray_direction.y
    stack_wr[0] = 1.0
    stack_wg[0] = 1.0
    stack_wb[0] = 1.0
    stack_depth[0] = ti.min(ti.max(depth, 0), MAX_TRACE_DEPTH)
    top = 1

    radiance = color3(0.0, 0.0, 0.0)
    while top > 0:
        top -= 1
        origin = vec2(stack_ox[top], stack_oy[top])
        direction = vec2(stack_dx[top], stack_dy[top])
        weight = color3(stack_wr[top], stack_wg[top], stack_wb[top])
        remaining = stack_depth[top]

        rec = intersect_scene(origin, direction)
        if rec.hit == 0:
            radiance += weight * BACKGROUND_COLOR
        else:
            entering = dot(rec.normal, direction) < 0.0
            sign = ti.select(entering, 1.0, -1.0)
            if not entering:
                weight *= beer_lambert(rec.absorption, rec.distance)

            radiance += weight * rec.emissive

            reflectivity = rec.reflectivity
            eta = rec.eta
            if remaining > 0 and (reflectivity > 0.0 or eta > 0.0):
                normal = rec.normal * sign
                if eta > 0.0:
                    ratio = ti.select(entering, 1.0 / eta, eta)
                    ok, refracted = refract(direction, normal, ratio)
                    if ok == 0:
                        reflectivity = 1.0
                    else:
                        cos_i = -dot(direction, normal)
                        cos_t = -dot(refracted, normal)
                        eta_i = ti.select(entering, 1.0, eta)
                        eta_t = ti.select(entering, eta, 1.0)
                        reflectivity = schlick(cos_i, cos_t, eta_i, eta_t)
                        branch = weight * (1.0 - reflectivity)
                        stack_ox[top] = rec.point.x
                        stack_oy[top] = rec.point.y
                        stack_dx[top] = refracted.x
                        stack_dy[top] = refracted.y
                        stack_wr[top] = branch.x
                        stack_wg[top] = branch.y
                        stack_wb[top] = branch.z
                        stack_depth[top] = remaining - 1
                        top += 1
                if reflectivity > 0.0:
                    mirrored = reflect(direction, normal)
                    branch = weight * reflectivity
                    stack_ox[top] = rec.point.x
                    stack_oy[top] = rec.point.y
                    stack_dx[top] = mirrored.x
                    stack_dy[top] = mirrored.y
                    stack_wr[top] = branch.x
                    stack_wg[top] = branch.y
                    stack_wb[top] = branch.z
                    stack_depth[top] = remaining - 1
                    top += 1
    return radiance


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _accumulate_strata(
    width: ti.i32,
    height: ti.i32,
    first: ti.i32,
    count: ti.i32,
    strata: ti.i32,
    max_depth: ti.i32,
):
    """Trace strata [first, first + count) of every pixel and accumulate.

    Every (pixel, stratum) pair runs in parallel; results are summed into
    the radiance buffer with atomic adds.
    """
    scale = ti.cast(ti.min(width, height), real)
    for x, y, s in ti.ndrange(width, height, count):
        stratum = ti.cast(first + s, real)
        angle = 2.0 * tm.pi * (stratum + ti.random(real)) / ti.cast(strata, real)
        origin = vec2(ti.cast(x, real) / scale, ti.cast(y, real) / scale)
        color = trace(origin, vec2(ti.cos(angle), ti.sin(angle)), max_depth)

        # Check for NaN/Inf and replace with zero
        for c in ti.static(range(3)):
            if tm.isnan(color[c]) or tm.isinf(color[c]):
                color[c] = 0.0

        _radiance[x, y] += color


@ti.kernel
def _trace_single(ox: real, oy: real, dx: real, dy: real, depth: ti.i32) -> color3:
    """Trace one ray; used for testing and debugging."""
    return trace(vec2(ox, oy), vec2(dx, dy), depth)


# =============================================================================
# Public Rendering API
# =============================================================================


def render_strata(first: int, count: int, strata: int, max_depth: int) -> None:
    """Accumulate a contiguous range of strata for every pixel.

    Args:
        first: Index of the first stratum to trace.
        count: Number of strata to trace.
        strata: Total number of strata per pixel (sets the angular bins).
        max_depth: Trace depth of every ray.

    Raises:
        RuntimeError: If render target has not been set up.
        ValueError: If the range or depth is invalid.
    """
    _check_render_target_initialized()
    check_stratification(strata)
    check_max_depth(max_depth)
    if first < 0 or count < 0 or first + count > strata:
        raise ValueError(f"Strata range [{first}, {first + count}) outside [0, {strata})")
    if count == 0:
        return

    width, height = get_image_dimensions()
    _accumulate_strata(width, height, first, count, strata, max_depth)
    _strata_done[None] += count


def resolve_image() -> npt.NDArray[np.uint8]:
    """Average the accumulated strata and quantize to 8-bit color.

    Each channel becomes trunc(clamp(value * 255, 0, 255)).

    Returns:
        NumPy array of shape (height, width, 3) with dtype uint8; row index
        is the pixel's y coordinate.

    Raises:
        RuntimeError: If render target has not been set up.
    """
    _check_render_target_initialized()

    width, height = get_image_dimensions()
    samples = max(get_strata_done(), 1)

    # Extract active region and transpose from (width, height, 3)
    image = _radiance.to_numpy()[:width, :height, :] / samples
    image = np.transpose(image, (1, 0, 2))

    image = np.clip(image * 255.0, 0.0, 255.0)
    return np.trunc(image).astype(np.uint8)


def render(
    scene: "Scene",
    width: int,
    height: int,
    stratification: int,
    max_depth: int,
) -> npt.NDArray[np.uint8]:
    """Render a scene with stratified angular sampling.

    Args:
        scene: The scene to render (uploaded if it is not the active one).
        width: Image width in pixels.
        height: Image height in pixels.
        stratification: Number of rays per pixel.
        max_depth: Trace depth of every ray, in [0, MAX_TRACE_DEPTH].

    Returns:
        NumPy array of shape (height, width, 3) with dtype uint8.

    Raises:
        ValueError: If a size, the stratification or the depth is invalid.
    """
    _check_image_size(width, height)
    check_stratification(stratification)
    check_max_depth(max_depth)

    scene.ensure_loaded()
    setup_render_target(width, height)
    render_strata(0, stratification, stratification, max_depth)
    return resolve_image()


def trace_ray(
    scene: "Scene",
    origin: tuple[float, float],
    direction: tuple[float, float],
    depth: int,
) -> tuple[float, float, float]:
    """Trace a single ray from Python scope.

    Args:
        scene: The scene to trace against.
        origin: The ray origin (x, y).
        direction: The ray direction (x, y).
        depth: Remaining bounces, in [0, MAX_TRACE_DEPTH].

    Returns:
        Tuple of (R, G, B) radiance, unclamped.

    Raises:
        ValueError: If depth is out of range.
    """
    check_max_depth(depth)
    scene.ensure_loaded()
    color = _trace_single(origin[0], origin[1], direction[0], direction[1], depth)
    return (float(color[0]), float(color[1]), float(color[2]))

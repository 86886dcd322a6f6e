"""Batch renderer with progress reporting.

This module wraps the stratified rendering kernels so long renders can
report progress:
- Strata are traced in batches of contiguous angular bins
- A callback or generator reports progress after each batch
- The finished image can be fetched as uint8 or saved as PNG

Splitting the strata into batches does not change the result: every batch
traces its own bins against the same total, so the union of the batches
covers exactly the N bins a single render would.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64)
    >>> from src.lumen.core.progressive import StratifiedRenderer
    >>>
    >>> renderer = StratifiedRenderer(512, 512)
    >>> renderer.render(scene, stratification=256, max_depth=5, batch_size=16)
    >>> renderer.save_image("out.png")
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt

from src.lumen.core.integrator import (
    check_max_depth,
    check_stratification,
    clear_render_target,
    get_strata_done,
    render_strata,
    resolve_image,
    setup_render_target,
)
from src.lumen.preview.export import save_png

if TYPE_CHECKING:
    from src.lumen.scene.manager import Scene

# Type alias for progress callback
# Callback receives (strata_done, total_strata)
ProgressCallback = Callable[[int, int], None]


class StratifiedRenderer:
    """Renders a scene in batches of strata.

    The renderer owns the image dimensions and delegates to the global
    render target buffers (which are Taichi fields), so only one renderer
    can hold results at a time.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
    """

    def __init__(self, width: int, height: int) -> None:
        """Initialize the renderer.

        Args:
            width: Image width in pixels (max 2048).
            height: Image height in pixels (max 2048).

        Raises:
            ValueError: If dimensions are not positive or exceed the maximum.
        """
        self._width = width
        self._height = height
        setup_render_target(width, height)

    @property
    def width(self) -> int:
        """Get the image width."""
        return self._width

    @property
    def height(self) -> int:
        """Get the image height."""
        return self._height

    @property
    def strata_done(self) -> int:
        """Get the number of strata accumulated into every pixel."""
        return get_strata_done()

    def reset(self) -> None:
        """Clear the accumulated radiance without changing dimensions."""
        clear_render_target()

    def _prepare(self, scene: Scene, stratification: int, max_depth: int, batch_size: int) -> None:
        check_stratification(stratification)
        check_max_depth(max_depth)
        if batch_size <= 0:
            raise ValueError(f"Batch size = {batch_size} must be positive")
        scene.ensure_loaded()
        setup_render_target(self._width, self._height)

    def render(
        self,
        scene: Scene,
        stratification: int,
        max_depth: int,
        batch_size: int = 16,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Render a scene, reporting progress after each batch.

        Starts from a cleared buffer.

        Args:
            scene: The scene to render.
            stratification: Number of rays per pixel.
            max_depth: Trace depth of every ray.
            batch_size: Number of strata traced between callbacks.
            callback: Optional callback function called after each batch.
                Receives (strata_done, stratification).

        Raises:
            ValueError: If stratification, depth or batch size is invalid.

        Example:
            >>> def progress(done, total):
            ...     print(f"Progress: {done}/{total} strata")
            >>> renderer.render(scene, 64, 3, batch_size=8, callback=progress)
        """
        for done, total in self.render_progressive(scene, stratification, max_depth, batch_size):
            if callback is not None:
                callback(done, total)

    def render_progressive(
        self,
        scene: Scene,
        stratification: int,
        max_depth: int,
        batch_size: int = 16,
    ) -> Generator[tuple[int, int], None, None]:
        """Render a scene, yielding progress after each batch.

        This is a generator-based alternative to render() with callbacks.

        Args:
            scene: The scene to render.
            stratification: Number of rays per pixel.
            max_depth: Trace depth of every ray.
            batch_size: Number of strata traced before each yield.

        Yields:
            Tuple of (strata_done, stratification).

        Example:
            >>> for done, total in renderer.render_progressive(scene, 64, 3):
            ...     print(f"Progress: {done}/{total} strata")
        """
        self._prepare(scene, stratification, max_depth, batch_size)

        first = 0
        while first < stratification:
            batch = min(batch_size, stratification - first)
            render_strata(first, batch, stratification, max_depth)
            first += batch
            yield (self.strata_done, stratification)

    def get_image_uint8(self) -> npt.NDArray[np.uint8]:
        """Get the rendered image as an 8-bit NumPy array.

        Returns:
            NumPy array of shape (height, width, 3) with dtype uint8.
        """
        return resolve_image()

    def save_image(self, filepath: str) -> None:
        """Save the rendered image as PNG.

        Args:
            filepath: Path to save the image (e.g., "output.png").
        """
        save_png(self.get_image_uint8(), filepath)

    def __repr__(self) -> str:
        """Return a string representation of the renderer state."""
        return (
            f"StratifiedRenderer(width={self.width}, height={self.height}, "
            f"strata={self.strata_done})"
        )

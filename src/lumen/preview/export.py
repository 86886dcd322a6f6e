"""Image export utilities for rendered images.

Rendered images are already quantized to 8 bits per channel, so export
is a direct write without tone mapping or gamma correction.

Supported formats:
    - PNG (8-bit RGB via Pillow)

Example:
    >>> from src.lumen.core.integrator import render
    >>> from src.lumen.preview.export import save_png
    >>>
    >>> image = render(scene, 256, 256, stratification=64, max_depth=3)
    >>> save_png(image, "output.png")
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage


def save_png(image: npt.NDArray[np.uint8], filepath: str | Path) -> None:
    """Save an 8-bit RGB image as a PNG file.

    Args:
        image: Image array of shape (H, W, 3) with dtype uint8.
        filepath: Output file path (should end in .png).

    Raises:
        ValueError: If the array is not an (H, W, 3) uint8 image.
        OSError: If the file cannot be written.
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) image, got shape {image.shape}")
    if image.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image, got dtype {image.dtype}")

    pil_image = PILImage.fromarray(np.ascontiguousarray(image))
    pil_image.save(filepath, format="PNG")

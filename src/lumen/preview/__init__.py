"""Preview module for rendered output.

Components:
    export: PNG export of quantized images

Example:
    >>> from src.lumen.preview import save_png
    >>> save_png(image, "output.png")
"""

from src.lumen.preview.export import save_png

__all__ = [
    "save_png",
]

"""Base-color texture loading.

A texture handle is either a ``#rrggbb`` color code, which yields a 2×2
raster of that color, or a path to an image file. Images are read with
matplotlib's image reader (PNG natively, other formats through Pillow),
reduced to RGB and converted from sRGB to linear float.

Rasters are ``(height, width, 3)`` float64 arrays; row 0 corresponds to
v = 0.
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.image as mpimg
import numpy as np

from bake_engine.color import parse_hex_color, srgb_to_linear

logger = logging.getLogger(__name__)


def solid_color_raster(linear_rgb: np.ndarray) -> np.ndarray:
    """2×2 raster filled with one linear color."""
    return np.broadcast_to(np.asarray(linear_rgb, dtype=np.float64), (2, 2, 3)).copy()


def load_image_rgb(path: str | Path) -> np.ndarray:
    """Read an image file as sRGB floats in [0, 1]. Shape: (h, w, 3).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the image has an unsupported layout.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Texture not found: {path}")

    img = np.asarray(mpimg.imread(path))
    if np.issubdtype(img.dtype, np.integer):
        img = img.astype(np.float64) / float(np.iinfo(img.dtype).max)
    else:
        img = img.astype(np.float64)

    if img.ndim == 2:
        img = np.repeat(img[..., None], 3, axis=2)
    elif img.ndim == 3 and img.shape[2] in (3, 4):
        img = img[..., :3]
    elif img.ndim == 3 and img.shape[2] in (1, 2):
        img = np.repeat(img[..., :1], 3, axis=2)
    else:
        raise ValueError(f"Unsupported image layout {img.shape}: {path}")

    logger.debug("Loaded texture %s (%dx%d)", path.name, img.shape[1], img.shape[0])
    return img


def load_base_color(handle: str, texture_dir: str | Path | None = None) -> np.ndarray:
    """Load a base-color raster in linear RGB.

    Parameters
    ----------
    handle : str
        ``#rrggbb`` color code, or an image path (relative paths are
        resolved against ``texture_dir``).
    texture_dir : str or Path, optional
        Directory for relative image paths.

    Returns
    -------
    np.ndarray
        Linear RGB raster. Shape: (h, w, 3).
    """
    if handle.startswith("#"):
        return solid_color_raster(parse_hex_color(handle))

    path = Path(handle)
    if not path.is_absolute() and texture_dir is not None:
        path = Path(texture_dir) / path
    return srgb_to_linear(load_image_rgb(path))

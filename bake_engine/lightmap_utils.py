"""Lightmap sizing, nearest-texel lookups and color-map arithmetic.

Color maps are plain ``(height, width, 3)`` float64 arrays holding the
averaged (unweighed) value of each texel. Accumulator lightmaps are
``Lightmap`` objects. Both are kept per island in dicts keyed by the
island name.
"""

from __future__ import annotations

import math

import numpy as np

from bake_engine.accumulator import Lightmap
from bake_engine.constants import BakeOpts
from scene_ingestion.scene_types import Island

ColorMaps = dict[str, np.ndarray]
Lightmaps = dict[str, Lightmap]


# ---------------------------------------------------------------------------
# Sizing
# ---------------------------------------------------------------------------


def nearest_pow2(n: int) -> int:
    """Nearest power of two to ``n`` (>= 1). Ties round upward."""
    if n <= 1:
        return 1
    lower = 1 << (n.bit_length() - 1)
    if lower == n:
        return n
    upper = lower << 1
    return lower if (n - lower) < (upper - n) else upper


def lightmap_size_for(opts: BakeOpts, island: Island) -> int:
    """Square lightmap edge length for an island, from its surface area.

    ``sqrt(area) · pix_per_m``, truncated, clamped to
    ``[1, max_lightmap_size]``, rounded to the nearest power of two and
    capped at ``max_lightmap_size``.
    """
    size = math.sqrt(island.surface_area()) * opts.lightmap_pix_per_m
    size = min(max(int(size), 1), opts.max_lightmap_size)
    return min(nearest_pow2(size), opts.max_lightmap_size)


def lightmap_sizes(opts: BakeOpts, islands: list[Island]) -> dict[str, int]:
    return {island.name: lightmap_size_for(opts, island) for island in islands}


def empty_lightmaps(sizes: dict[str, int]) -> Lightmaps:
    """Zero-initialized accumulator lightmap per island."""
    return {name: Lightmap(size) for name, size in sizes.items()}


def black_color_maps(sizes: dict[str, int]) -> ColorMaps:
    return {name: np.zeros((size, size, 3), dtype=np.float64) for name, size in sizes.items()}


# ---------------------------------------------------------------------------
# Nearest-Texel Lookups
# ---------------------------------------------------------------------------


def at_uv_nearest_clamp(img: np.ndarray, uv: np.ndarray) -> np.ndarray:
    """Texel under ``uv``, clamping to the image border."""
    height, width = img.shape[:2]
    x = min(max(math.floor(uv[0] * width), 0), width - 1)
    y = min(max(math.floor(uv[1] * height), 0), height - 1)
    return img[y, x]


def at_uv_nearest_wrap(img: np.ndarray, uv: np.ndarray) -> np.ndarray:
    """Texel under ``uv``, repeating the image outside [0, 1)."""
    height, width = img.shape[:2]
    u = uv[0] % 1.0
    v = uv[1] % 1.0
    # u % 1.0 can round up to exactly 1.0 for tiny negative inputs
    x = min(math.floor(u * width), width - 1)
    y = min(math.floor(v * height), height - 1)
    return img[y, x]


# ---------------------------------------------------------------------------
# Unweighing and Color-Map Arithmetic
# ---------------------------------------------------------------------------


def unweigh_or_black(lm: Lightmap) -> np.ndarray:
    """Average per texel, black where a texel has no samples."""
    return lm.avg(fill=0.0)


def unweigh_lightmaps(sources: Lightmaps) -> ColorMaps:
    return {name: unweigh_or_black(lm) for name, lm in sources.items()}


def add_color_maps(a: ColorMaps, b: ColorMaps) -> ColorMaps:
    """Per-island sum. Keys of ``a`` define the result."""
    return {name: img + b[name] for name, img in a.items()}


def clamp_color_maps(maps: ColorMaps, max_value: float) -> ColorMaps:
    """Clamp every channel to ``[0, max_value]``."""
    return {name: np.clip(img, 0.0, max_value) for name, img in maps.items()}


def leak_filter(avg: np.ndarray) -> np.ndarray:
    """Fill NaN texels with the mean of their defined 3×3 neighbors.

    Parameters
    ----------
    avg : np.ndarray
        Per-texel averages, NaN where undefined. Shape: (height, width, 3).

    Returns
    -------
    np.ndarray
        Same shape. Texels with no defined neighbor stay NaN.
    """
    height, width = avg.shape[:2]
    defined = ~np.isnan(avg[..., 0])
    values = np.where(defined[..., None], avg, 0.0)

    padded_vals = np.pad(values, ((1, 1), (1, 1), (0, 0)))
    padded_def = np.pad(defined.astype(np.int64), 1)

    total = np.zeros_like(values)
    count = np.zeros((height, width), dtype=np.int64)
    for dy in range(3):
        for dx in range(3):
            total += padded_vals[dy : dy + height, dx : dx + width]
            count += padded_def[dy : dy + height, dx : dx + width]

    out = avg.copy()
    fill = ~defined & (count > 0)
    out[fill] = total[fill] / count[fill][:, None]
    return out


def unweigh(lm: Lightmap) -> np.ndarray:
    """Averages for output: leak-filtered, black where still undefined."""
    return np.nan_to_num(leak_filter(lm.avg()), nan=0.0)

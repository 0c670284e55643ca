"""Post-filters on accumulator lightmaps.

- Hole filter: texels without samples take the merged accumulator of
  their populated 3×3 neighbors; populated texels are left untouched.
  One pass fills holes one texel deep.
- Superblock filter: every texel becomes the merge of its in-bounds
  (2k+1)×(2k+1) neighborhood, k = (SUPERBLK − 1) / 2, i.e. a 3×3 box
  filter. Used to denoise indirect bounces.

Both filters return new lightmaps. Out-of-bounds neighbors are handled by
zero padding, which adds nothing to a merge.
"""

from __future__ import annotations

import numpy as np

from bake_engine.accumulator import Lightmap
from bake_engine.constants import NUM_RESAMPLE, SUPERBLK
from bake_engine.lightmap_utils import Lightmaps


def _box_sum(arr: np.ndarray, radius: int) -> np.ndarray:
    """Sum over the (2r+1)² neighborhood of the first two axes, zero padded."""
    height, width = arr.shape[:2]
    pad = [(radius, radius), (radius, radius)] + [(0, 0)] * (arr.ndim - 2)
    padded = np.pad(arr, pad)
    out = np.zeros_like(arr)
    size = 2 * radius + 1
    for dy in range(size):
        for dx in range(size):
            out += padded[dy : dy + height, dx : dx + width]
    return out


def _neighborhood_merge(lm: Lightmap, radius: int) -> Lightmap:
    populated = lm.num_samples() > 0
    return Lightmap.from_arrays(
        _box_sum(lm.partial_sums, radius),
        _box_sum(lm.counts, radius),
        _box_sum(np.where(populated, lm.cursor, 0), radius) % NUM_RESAMPLE,
    )


def hole_filter(lm: Lightmap) -> Lightmap:
    """Fill zero-sample texels with the merge of their 3×3 neighbors."""
    empty = lm.num_samples() == 0
    out = lm.copy()
    if not np.any(empty):
        return out
    merged = _neighborhood_merge(lm, 1)
    out.partial_sums[empty] = merged.partial_sums[empty]
    out.counts[empty] = merged.counts[empty]
    out.cursor[empty] = merged.cursor[empty]
    return out


def superblock_filter(lm: Lightmap) -> Lightmap:
    """Replace every texel by the merge of its superblock neighborhood."""
    return _neighborhood_merge(lm, (SUPERBLK - 1) // 2)


def hole_filter_all(lightmaps: Lightmaps) -> Lightmaps:
    return {name: hole_filter(lm) for name, lm in lightmaps.items()}


def superblock_filter_all(lightmaps: Lightmaps) -> Lightmaps:
    return {name: superblock_filter(lm) for name, lm in lightmaps.items()}

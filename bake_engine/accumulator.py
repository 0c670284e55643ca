"""Per-texel running statistics with a resampling error estimate.

Each texel accumulates samples round-robin into ``NUM_RESAMPLE`` independent
streams ("resample streams"). Comparing the streams' partial averages gives a
cheap confidence band on the texel's mean color, which drives adaptive
per-texel sampling.

Design Notes
------------
- ``Accumulator`` models one texel. It is used by the per-texel sampling
  loop and in tests.
- ``Lightmap`` stores a dense grid of accumulators as three numpy arrays
  (indexed ``[y, x]``) so that merging and filtering whole grids is
  vectorized. Per-texel access copies into / out of an ``Accumulator``.
- Merging sums corresponding streams and combines cursors modulo
  ``NUM_RESAMPLE``. The cursor only affects which stream receives future
  samples, never the merged sums, so the merge is associative and
  commutative in every quantity that matters.
"""

from __future__ import annotations

import numpy as np

from bake_engine.color import linear_to_srgb
from bake_engine.constants import ERROR_SCALE, NUM_RESAMPLE


def _interval_error(lo: np.ndarray, hi: np.ndarray) -> np.ndarray:
    """Perceptual size of a color interval: sRGB diagonal length, scaled."""
    diff = linear_to_srgb(hi) - linear_to_srgb(lo)
    return np.sqrt(np.sum(diff * diff, axis=-1)) * ERROR_SCALE


# ---------------------------------------------------------------------------
# Single Texel
# ---------------------------------------------------------------------------


class Accumulator:
    """Running sums and sample counts of one texel.

    Attributes
    ----------
    partial_sums : np.ndarray
        Per-stream color sums. Shape: (NUM_RESAMPLE, 3).
    counts : np.ndarray
        Per-stream sample counts. Shape: (NUM_RESAMPLE,).
    cursor : int
        Stream that receives the next sample.
    """

    __slots__ = ("partial_sums", "counts", "cursor")

    def __init__(
        self,
        partial_sums: np.ndarray | None = None,
        counts: np.ndarray | None = None,
        cursor: int = 0,
    ) -> None:
        if partial_sums is None:
            partial_sums = np.zeros((NUM_RESAMPLE, 3), dtype=np.float64)
        if counts is None:
            counts = np.zeros(NUM_RESAMPLE, dtype=np.int64)
        self.partial_sums = np.array(partial_sums, dtype=np.float64)
        self.counts = np.array(counts, dtype=np.int64)
        self.cursor = int(cursor)

    def add(self, sample: np.ndarray) -> None:
        """Add one sample to the current stream and advance the cursor."""
        self.partial_sums[self.cursor] += sample
        self.counts[self.cursor] += 1
        self.cursor = (self.cursor + 1) % NUM_RESAMPLE

    def add_other(self, rhs: Accumulator) -> None:
        """Merge another accumulator into this one (stream-wise)."""
        self.partial_sums += rhs.partial_sums
        self.counts += rhs.counts
        self.cursor = (self.cursor + rhs.cursor) % NUM_RESAMPLE

    def num_samples(self) -> int:
        return int(self.counts.sum())

    def sum(self) -> np.ndarray:
        return self.partial_sums.sum(axis=0)

    def avg(self) -> np.ndarray | None:
        """Mean color, or None without samples."""
        n = self.num_samples()
        if n == 0:
            return None
        return self.sum() / n

    def partial_avg(self) -> np.ndarray:
        """Per-stream averages. Only meaningful if every stream has samples."""
        return self.partial_sums / self.counts[:, None]

    def confidence_interval(self) -> tuple[np.ndarray, np.ndarray] | None:
        """Per-channel (min, max) over the streams' partial averages.

        Returns None unless every stream holds at least one sample.
        """
        if np.any(self.counts == 0):
            return None
        partial = self.partial_avg()
        return partial.min(axis=0), partial.max(axis=0)

    def error(self) -> float | None:
        """Adaptive stopping signal: perceptual width of the confidence band."""
        interval = self.confidence_interval()
        if interval is None:
            return None
        lo, hi = interval
        return float(_interval_error(lo, hi))

    def copy(self) -> Accumulator:
        return Accumulator(self.partial_sums.copy(), self.counts.copy(), self.cursor)

    def __repr__(self) -> str:
        return (
            f"Accumulator(n={self.counts.tolist()}, cursor={self.cursor}, "
            f"avg={None if self.avg() is None else self.avg().tolist()})"
        )


# ---------------------------------------------------------------------------
# Texel Grid
# ---------------------------------------------------------------------------


class Lightmap:
    """Dense 2D grid of texel accumulators.

    Parameters
    ----------
    size : int or tuple[int, int]
        Edge length of a square lightmap, or (width, height).

    Attributes
    ----------
    partial_sums : np.ndarray
        Shape: (height, width, NUM_RESAMPLE, 3), dtype float64.
    counts : np.ndarray
        Shape: (height, width, NUM_RESAMPLE), dtype int64.
    cursor : np.ndarray
        Shape: (height, width), dtype int64.
    """

    def __init__(self, size: int | tuple[int, int]) -> None:
        if isinstance(size, tuple):
            width, height = size
        else:
            width = height = int(size)
        self.partial_sums = np.zeros((height, width, NUM_RESAMPLE, 3), dtype=np.float64)
        self.counts = np.zeros((height, width, NUM_RESAMPLE), dtype=np.int64)
        self.cursor = np.zeros((height, width), dtype=np.int64)

    @classmethod
    def from_arrays(
        cls,
        partial_sums: np.ndarray,
        counts: np.ndarray,
        cursor: np.ndarray,
    ) -> Lightmap:
        height, width = cursor.shape
        lm = cls((width, height))
        lm.partial_sums[...] = partial_sums
        lm.counts[...] = counts
        lm.cursor[...] = cursor
        return lm

    # --- geometry ---------------------------------------------------------

    @property
    def width(self) -> int:
        return self.cursor.shape[1]

    @property
    def height(self) -> int:
        return self.cursor.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) in texels."""
        return self.width, self.height

    # --- per-texel access -------------------------------------------------

    def texel(self, x: int, y: int) -> Accumulator:
        """Copy of the accumulator at (x, y)."""
        return Accumulator(self.partial_sums[y, x], self.counts[y, x], self.cursor[y, x])

    def set_texel(self, x: int, y: int, acc: Accumulator) -> None:
        self.partial_sums[y, x] = acc.partial_sums
        self.counts[y, x] = acc.counts
        self.cursor[y, x] = acc.cursor

    def add(self, x: int, y: int, sample: np.ndarray) -> None:
        c = self.cursor[y, x]
        self.partial_sums[y, x, c] += sample
        self.counts[y, x, c] += 1
        self.cursor[y, x] = (c + 1) % NUM_RESAMPLE

    # --- whole-grid operations -------------------------------------------

    def add_other(self, rhs: Lightmap) -> None:
        """Merge ``rhs`` texel-by-texel into this lightmap (in place)."""
        if rhs.size != self.size:
            raise ValueError(f"Lightmap size mismatch: {self.size} vs {rhs.size}")
        self.partial_sums += rhs.partial_sums
        self.counts += rhs.counts
        self.cursor = (self.cursor + rhs.cursor) % NUM_RESAMPLE

    def copy(self) -> Lightmap:
        return Lightmap.from_arrays(self.partial_sums, self.counts, self.cursor)

    def num_samples(self) -> np.ndarray:
        """Total sample count per texel. Shape: (height, width)."""
        return self.counts.sum(axis=-1)

    def sums(self) -> np.ndarray:
        """Total color sum per texel. Shape: (height, width, 3)."""
        return self.partial_sums.sum(axis=-2)

    def avg(self, fill: float = np.nan) -> np.ndarray:
        """Mean color per texel; ``fill`` where a texel has no samples.

        Returns
        -------
        np.ndarray
            Shape: (height, width, 3).
        """
        n = self.num_samples()
        out = np.full((self.height, self.width, 3), fill, dtype=np.float64)
        has = n > 0
        out[has] = self.sums()[has] / n[has][:, None]
        return out

    def error(self) -> np.ndarray:
        """Per-texel error estimate, NaN where undefined. Shape: (height, width)."""
        defined = np.all(self.counts > 0, axis=-1)
        out = np.full((self.height, self.width), np.nan, dtype=np.float64)
        if not np.any(defined):
            return out
        partial = self.partial_sums[defined] / self.counts[defined][..., None]
        out[defined] = _interval_error(partial.min(axis=-2), partial.max(axis=-2))
        return out

    def __repr__(self) -> str:
        return f"Lightmap({self.width}x{self.height}, samples={int(self.counts.sum())})"

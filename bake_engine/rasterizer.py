"""Conservative triangle-to-texel rasterization in lightmap UV space.

Maps a triangle's three lightmap-UV corners onto the texels of a square
lightmap it touches, and picks one deterministic sample point per
touched texel.

Algorithm
---------
1. Integer pixel bounding box of the triangle: ``min = ⌊uv·size⌋``,
   ``max = ⌊uv·size⌋ + 1``, both clamped to ``[0, size − 1]``.
2. Accept a candidate pixel if its center lies inside the triangle, or
   any triangle edge crosses its UV square (slab test on the segment).
3. Sample point: UV offset (0.499, 0.501) inside the texel. The slight
   asymmetry avoids ties when an edge passes exactly through a center.
   Reject the texel if that point lies outside the triangle, otherwise
   interpolate position, normal and tangent frame barycentrically.

Notes
-----
Degenerate (zero-area) triangles produce NaN barycentrics, so every
inside test fails and the triangle covers no texel.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from scene_ingestion.scene_types import MeshBuffer

_NAN3 = (math.nan, math.nan, math.nan)

# Sample position inside a texel, in texel-relative coordinates.
TEXEL_SAMPLE_OFFSET: tuple[float, float] = (0.499, 0.501)


# ---------------------------------------------------------------------------
# 2D Bounds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bounds2D:
    """Axis-aligned rectangle ``[min_x, max_x] × [min_y, max_y]``."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def center(self) -> tuple[float, float]:
        return 0.5 * (self.min_x + self.max_x), 0.5 * (self.min_y + self.max_y)

    def size(self) -> tuple[float, float]:
        return self.max_x - self.min_x, self.max_y - self.min_y

    def intersects_segment(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
    ) -> bool:
        """Does the segment ``start → end`` touch this rectangle?

        Slab method on the normalized segment direction. Boundaries are
        inclusive so zero-width rectangles still register. A zero-length
        segment never intersects.
        """
        dx = end[0] - start[0]
        dy = end[1] - start[1]
        length = math.hypot(dx, dy)
        if not length > 0.0:
            return False

        t_enter = -math.inf
        t_exit = math.inf
        for s, d, lo, hi in (
            (start[0], dx / length, self.min_x, self.max_x),
            (start[1], dy / length, self.min_y, self.max_y),
        ):
            if d == 0.0:
                # Parallel to this slab: inside it or never.
                if s < lo or s > hi:
                    return False
                continue
            t1 = (lo - s) / d
            t2 = (hi - s) / d
            t_enter = max(t_enter, min(t1, t2))
            t_exit = min(t_exit, max(t1, t2))

        if t_exit >= max(0.0, t_enter):
            return t_enter < length
        return False


# ---------------------------------------------------------------------------
# Barycentric Coordinates
# ---------------------------------------------------------------------------


def barycentric_coordinates(
    tri: np.ndarray,
    point: tuple[float, float],
) -> tuple[float, float, float]:
    """2D barycentric coordinates of ``point`` w.r.t. triangle ``tri``.

    Parameters
    ----------
    tri : np.ndarray
        Triangle corners. Shape: (3, 2).
    point : tuple[float, float]
        Query point.

    Returns
    -------
    tuple[float, float, float]
        (λ1, λ2, λ3) with λ1 + λ2 + λ3 = 1, or all NaN for a degenerate
        triangle.
    """
    (x1, y1), (x2, y2), (x3, y3) = (
        (float(tri[0][0]), float(tri[0][1])),
        (float(tri[1][0]), float(tri[1][1])),
        (float(tri[2][0]), float(tri[2][1])),
    )
    x, y = point
    det = (y2 - y3) * (x1 - x3) + (x3 - x2) * (y1 - y3)
    if det == 0.0 or math.isnan(det):
        return _NAN3
    l1 = ((y2 - y3) * (x - x3) + (x3 - x2) * (y - y3)) / det
    l2 = ((y3 - y1) * (x - x3) + (x1 - x3) * (y - y3)) / det
    return l1, l2, 1.0 - l1 - l2


def _all_in_unit(weights: tuple[float, float, float]) -> bool:
    # NaN fails every comparison, so degenerate triangles are never inside.
    return all(0.0 <= w <= 1.0 for w in weights)


def is_inside(tri: np.ndarray, point: tuple[float, float]) -> bool:
    """Point inside the triangle, edges included."""
    return _all_in_unit(barycentric_coordinates(tri, point))


def barycentric_interpolation(values: np.ndarray, weights: tuple[float, float, float]) -> np.ndarray:
    """Weighted sum of three per-vertex values. ``values`` shape: (3, k)."""
    return values[0] * weights[0] + values[1] * weights[1] + values[2] * weights[2]


def _normalized(v: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore", divide="ignore"):
        return v / np.linalg.norm(v)


# ---------------------------------------------------------------------------
# Conservative Raster
# ---------------------------------------------------------------------------


def triangle_conservative_bounds(tri_uvs: np.ndarray, lm_size: int) -> tuple[int, int, int, int]:
    """Inclusive pixel box (x_min, y_min, x_max, y_max) covering the triangle."""
    uv_min = tri_uvs.min(axis=0)
    uv_max = tri_uvs.max(axis=0)
    hi = lm_size - 1
    x_min = min(max(int(uv_min[0] * lm_size), 0), hi)
    y_min = min(max(int(uv_min[1] * lm_size), 0), hi)
    x_max = min(max(int(uv_max[0] * lm_size) + 1, 0), hi)
    y_max = min(max(int(uv_max[1] * lm_size) + 1, 0), hi)
    return x_min, y_min, x_max, y_max


def texel_uv_range(px: int, py: int, lm_size: int) -> Bounds2D:
    """UV rectangle covered by pixel (px, py), clamped to [0, 1]."""

    def to_uv(v: int) -> float:
        return min(max(v, 0), lm_size) / lm_size

    return Bounds2D(to_uv(px), to_uv(py), to_uv(px + 1), to_uv(py + 1))


def triangle_overlaps_texel(tri_uvs: np.ndarray, texel: Bounds2D) -> bool:
    """Conservative coverage: center inside, or an edge crosses the texel."""
    if is_inside(tri_uvs, texel.center()):
        return True
    a, b, c = (tuple(p) for p in tri_uvs)
    return (
        texel.intersects_segment(a, b)
        or texel.intersects_segment(b, c)
        or texel.intersects_segment(c, a)
    )


def conservative_raster(
    tri_uvs: np.ndarray,
    lm_size: int,
) -> Iterator[tuple[tuple[int, int], Bounds2D]]:
    """Yield ``((px, py), texel_uv_range)`` for every texel the triangle touches.

    Parameters
    ----------
    tri_uvs : np.ndarray
        Lightmap UVs of the triangle corners. Shape: (3, 2).
    lm_size : int
        Lightmap edge length in pixels.
    """
    tri_uvs = np.asarray(tri_uvs, dtype=np.float64)
    x_min, y_min, x_max, y_max = triangle_conservative_bounds(tri_uvs, lm_size)
    for py in range(y_min, y_max + 1):
        for px in range(x_min, x_max + 1):
            texel = texel_uv_range(px, py, lm_size)
            if triangle_overlaps_texel(tri_uvs, texel):
                yield (px, py), texel


# ---------------------------------------------------------------------------
# Sample Point per Texel
# ---------------------------------------------------------------------------


class TexelSample(NamedTuple):
    """Surface point sampled for one texel."""

    uv: tuple[float, float]
    position: np.ndarray
    normal: np.ndarray
    tangent: np.ndarray
    bitangent: np.ndarray
    barycentric: tuple[float, float, float]


def sample_in_triangle_center(
    mesh: MeshBuffer,
    tri: tuple[int, int, int],
    tri_uvs: np.ndarray,
    texel: Bounds2D,
) -> TexelSample | None:
    """Surface point at the (near-)center of ``texel``, if inside the triangle.

    Returns
    -------
    TexelSample or None
        None if the sample point falls outside the triangle. Normal,
        tangent and bitangent are normalized. Absent tangents are zero.
    """
    w, h = texel.size()
    uv = (
        texel.min_x + TEXEL_SAMPLE_OFFSET[0] * w,
        texel.min_y + TEXEL_SAMPLE_OFFSET[1] * h,
    )
    weights = barycentric_coordinates(tri_uvs, uv)
    if not _all_in_unit(weights):
        return None

    normal = _normalized(barycentric_interpolation(mesh.triangle_normals(tri), weights))

    tangents = mesh.triangle_tangents(tri)
    tangent = (
        np.zeros(3)
        if tangents is None
        else _normalized(barycentric_interpolation(tangents, weights))
    )
    bitangents = mesh.triangle_bitangents(tri)
    bitangent = (
        np.zeros(3)
        if bitangents is None
        else _normalized(barycentric_interpolation(bitangents, weights))
    )

    position = barycentric_interpolation(mesh.triangle_positions(tri), weights)
    return TexelSample(uv, position, normal, tangent, bitangent, weights)

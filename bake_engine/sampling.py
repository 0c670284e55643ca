"""Low-discrepancy sequences and direction warps for Monte-Carlo sampling.

Samples are indexed by a Halton sequence rather than pseudo-random
numbers, so every texel draws a reproducible, well-stratified set of 2D
values. Those values are warped onto a disk (sun jitter) or onto a
cosine-weighted hemisphere (diffuse bounce).

Algorithm
---------
Radical inverse in base b of index i = Σ d_k b^k:

    φ_b(i) = Σ d_k b^(−k−1)

Halton 2D point: (φ_2(i), φ_5(i)). Base 5 instead of 3 keeps the second
axis decorrelated from the 3×3 superblock jitter added to the index.

Disk warp (area-uniform):      r = √u,  φ = 2πv
Cosine hemisphere (Malley):    lift the disk point to z = √(1 − x² − y²)

Local frames are rotated so that ẑ aligns with the requested normal.

References
----------
- Halton, J.H. (1964). "Algorithm 247: Radical-inverse quasi-random point
  sequence." Comm. ACM, 7(12), 701-702.
- Pharr, M., Jakob, W. & Humphreys, G. (2016). "Physically Based
  Rendering", 3rd ed., §13.6.
"""

from __future__ import annotations

import numpy as np

HALTON_BASES: tuple[int, int] = (2, 5)

_Z_AXIS = np.array([0.0, 0.0, 1.0])


# ---------------------------------------------------------------------------
# Halton Sequence
# ---------------------------------------------------------------------------


def radical_inverse(index: int, base: int) -> float:
    """Van der Corput radical inverse of ``index`` in ``base``, in [0, 1)."""
    inv_base = 1.0 / base
    f = inv_base
    result = 0.0
    i = index
    while i > 0:
        result += f * (i % base)
        i //= base
        f *= inv_base
    return result


def halton_2d(index: int) -> np.ndarray:
    """2D Halton point for ``index`` using bases (2, 5). Shape: (2,)."""
    return np.array(
        [radical_inverse(index, HALTON_BASES[0]), radical_inverse(index, HALTON_BASES[1])]
    )


# ---------------------------------------------------------------------------
# Local Frames
# ---------------------------------------------------------------------------


def rotation_z_to_direction(target_dir: np.ndarray) -> np.ndarray:
    """Rotation matrix mapping ẑ = (0, 0, 1) onto unit vector ``target_dir``.

    Uses Rodrigues' rotation formula, with explicit handling of the
    singular cases target ≈ +ẑ (identity) and target ≈ −ẑ (180° about x).

    Returns
    -------
    np.ndarray
        3×3 rotation matrix. Its columns form an orthonormal basis
        (tangent, bitangent, target_dir).
    """
    dot = float(np.dot(_Z_AXIS, target_dir))

    if dot > 1.0 - 1e-12:
        return np.eye(3, dtype=np.float64)

    if dot < -1.0 + 1e-12:
        return np.array([
            [1.0,  0.0,  0.0],
            [0.0, -1.0,  0.0],
            [0.0,  0.0, -1.0],
        ], dtype=np.float64)

    k = np.cross(_Z_AXIS, target_dir)
    sin_theta = np.linalg.norm(k)
    k = k / sin_theta

    K = np.array([
        [0.0, -k[2], k[1]],
        [k[2], 0.0, -k[0]],
        [-k[1], k[0], 0.0],
    ], dtype=np.float64)

    # R = I + sin(θ)·K + (1 − cos(θ))·K²
    return np.eye(3) + sin_theta * K + (1.0 - dot) * (K @ K)


# ---------------------------------------------------------------------------
# Warps
# ---------------------------------------------------------------------------


def unit_disk(rand: np.ndarray) -> np.ndarray:
    """Map a point of [0,1)² uniformly onto the unit disk. Shape: (2,)."""
    r = np.sqrt(rand[0])
    phi = 2.0 * np.pi * rand[1]
    return np.array([r * np.cos(phi), r * np.sin(phi)])


def disk_with_normal(rand: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Uniform point on the unit disk perpendicular to ``normal``.

    Parameters
    ----------
    rand : np.ndarray
        Point in [0,1)². Shape: (2,).
    normal : np.ndarray
        Unit disk normal. Shape: (3,).

    Returns
    -------
    np.ndarray
        3D offset with length ≤ 1, orthogonal to ``normal``. Shape: (3,).
    """
    x, y = unit_disk(rand)
    return rotation_z_to_direction(normal) @ np.array([x, y, 0.0])


def cosine_hemisphere(rand: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """Cosine-weighted unit direction in the hemisphere around ``normal``."""
    x, y = unit_disk(rand)
    z = np.sqrt(max(0.0, 1.0 - x * x - y * y))
    direction = rotation_z_to_direction(normal) @ np.array([x, y, z])
    return direction / np.linalg.norm(direction)

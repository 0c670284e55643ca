"""BVH-accelerated closest-hit raytracer with Möller-Trumbore intersection.

Implements a flattened (linear) Bounding Volume Hierarchy over all baked
triangles of a scene. Queries return the nearest hit together with the
surface attributes the samplers need (interpolated normal, texture and
lightmap coordinates, material and lightmap handles). Inner-loop
functions are compiled with Numba ``@njit(cache=True, nogil=True)`` so
that worker threads can trace concurrently.

Design Notes
------------
- **Flattened BVH**: Nodes are stored in contiguous 1D float64 arrays
  (no Python objects, no recursion in traversal) for Numba compatibility
  and cache locality.
- **Node layout** (8 doubles per node):
  ``[bbox_min_x, min_y, min_z, bbox_max_x, max_y, max_z, child_or_start, count_or_right]``
  - If ``count_or_right < 0``: leaf node → ``child_or_start`` = first triangle index,
    ``|count_or_right|`` = number of triangles.
  - If ``count_or_right >= 0``: internal node → ``child_or_start`` = left child node index,
    ``count_or_right`` = right child node index.
- **No backface culling**: hits on the back side of a triangle are
  reported. The samplers use them to detect sample points inside other
  geometry.
- **Precision**: float64 throughout; ε = 1e-10 for zero-tests.

References
----------
- Möller, T. & Trumbore, B. (1997). "Fast, Minimum Storage Ray-Triangle
  Intersection." J. Graphics Tools, 2(1), 21-28.
- Wald, I. (2007). "On fast Construction of SAH-based Bounding Volume
  Hierarchies." Proc. IEEE Symp. Interactive Ray Tracing, pp. 33-40.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

import numpy as np
from numba import njit

logger = logging.getLogger(__name__)

# ===================================================================
# Constants
# ===================================================================

_DEFAULT_EPSILON: float = 1e-10
_DEFAULT_MAX_LEAF: int = 4
_SAH_BINS: int = 16
_INF: float = 1e30
_STACK_SIZE: int = 128

# ===================================================================
# NODE LAYOUT: indices into the flat node array
# ===================================================================
_BBOX_MIN_X = 0
_BBOX_MIN_Y = 1
_BBOX_MIN_Z = 2
_BBOX_MAX_X = 3
_BBOX_MAX_Y = 4
_BBOX_MAX_Z = 5
_CHILD_OR_START = 6
_COUNT_OR_RIGHT = 7
_NODE_SIZE = 8  # floats per node


# ===================================================================
# MÖLLER-TRUMBORE RAY-TRIANGLE INTERSECTION: Numba JIT
# ===================================================================


@njit(cache=True, fastmath=False, nogil=True)
def moller_trumbore(
    ray_origin: np.ndarray,
    ray_dir: np.ndarray,
    v0: np.ndarray,
    v1: np.ndarray,
    v2: np.ndarray,
    epsilon: float,
) -> tuple[float, float, float]:
    """Möller-Trumbore ray-triangle intersection test.

    Tests if a ray R(t) = origin + t * dir intersects the triangle
    defined by vertices v0, v1, v2. Both faces of the triangle are hit.

    Parameters
    ----------
    ray_origin : np.ndarray
        Ray origin point [x, y, z]. Shape: (3,).
    ray_dir : np.ndarray
        Ray direction vector [dx, dy, dz]. Shape: (3,). Need not be normalized.
    v0, v1, v2 : np.ndarray
        Triangle vertex positions. Shape: (3,) each.
    epsilon : float
        Zero-test tolerance to prevent edge leakage.

    Returns
    -------
    (t, u, v) : tuple[float, float, float]
        Parametric distance and barycentric weights of v1 and v2
        (v0 has weight 1 − u − v). ``t = -1.0`` if no intersection.

    Notes
    -----
    ``fastmath=False`` keeps the floating-point evaluation order intact,
    which the epsilon comparisons at triangle edges rely on.
    """
    # Edge vectors
    e1_x = v1[0] - v0[0]
    e1_y = v1[1] - v0[1]
    e1_z = v1[2] - v0[2]

    e2_x = v2[0] - v0[0]
    e2_y = v2[1] - v0[1]
    e2_z = v2[2] - v0[2]

    # P = ray_dir × e2
    p_x = ray_dir[1] * e2_z - ray_dir[2] * e2_y
    p_y = ray_dir[2] * e2_x - ray_dir[0] * e2_z
    p_z = ray_dir[0] * e2_y - ray_dir[1] * e2_x

    # Determinant = e1 · P
    det = e1_x * p_x + e1_y * p_y + e1_z * p_z

    # Ray parallel to the triangle plane (or degenerate triangle)
    if det > -epsilon and det < epsilon:
        return -1.0, 0.0, 0.0

    inv_det = 1.0 / det

    # T = ray_origin - v0
    t_x = ray_origin[0] - v0[0]
    t_y = ray_origin[1] - v0[1]
    t_z = ray_origin[2] - v0[2]

    u = (t_x * p_x + t_y * p_y + t_z * p_z) * inv_det

    if u < -epsilon or u > 1.0 + epsilon:
        return -1.0, 0.0, 0.0

    # Q = T × e1
    q_x = t_y * e1_z - t_z * e1_y
    q_y = t_z * e1_x - t_x * e1_z
    q_z = t_x * e1_y - t_y * e1_x

    v = (ray_dir[0] * q_x + ray_dir[1] * q_y + ray_dir[2] * q_z) * inv_det

    if v < -epsilon or u + v > 1.0 + epsilon:
        return -1.0, 0.0, 0.0

    t_dist = (e2_x * q_x + e2_y * q_y + e2_z * q_z) * inv_det

    if t_dist > epsilon:
        return t_dist, u, v

    return -1.0, 0.0, 0.0


# ===================================================================
# RAY-AABB INTERSECTION: Slab Method (Numba JIT)
# ===================================================================


@njit(cache=True, fastmath=False, nogil=True)
def ray_aabb_intersect(
    ray_origin: np.ndarray,
    inv_dir: np.ndarray,
    bbox_min: np.ndarray,
    bbox_max: np.ndarray,
    t_max_limit: float,
) -> bool:
    """Test if a ray intersects an axis-aligned bounding box.

    Uses the slab method with precomputed inverse direction.

    Parameters
    ----------
    ray_origin : np.ndarray
        Ray origin [x, y, z]. Shape: (3,).
    inv_dir : np.ndarray
        Precomputed 1.0 / ray_dir for each axis. Shape: (3,).
    bbox_min, bbox_max : np.ndarray
        AABB corners. Shape: (3,).
    t_max_limit : float
        Maximum parametric distance. Boxes entirely beyond it are culled.

    Returns
    -------
    bool
        True if the ray intersects the AABB within [0, t_max_limit].
    """
    t_min = 0.0
    t_max = t_max_limit

    for axis in range(3):
        t1 = (bbox_min[axis] - ray_origin[axis]) * inv_dir[axis]
        t2 = (bbox_max[axis] - ray_origin[axis]) * inv_dir[axis]

        if t1 > t2:
            t1, t2 = t2, t1

        if t1 > t_min:
            t_min = t1
        if t2 < t_max:
            t_max = t2

        if t_min > t_max:
            return False

    return True


# ===================================================================
# BVH TRAVERSAL: Stack-based closest hit (Numba JIT)
# ===================================================================


@njit(cache=True, fastmath=False, nogil=True)
def closest_hit_bvh(
    ray_origin: np.ndarray,
    ray_dir: np.ndarray,
    bvh_nodes: np.ndarray,
    tri_verts: np.ndarray,
    ordered_tri_indices: np.ndarray,
    epsilon: float,
) -> tuple[float, int, float, float]:
    """Find the nearest triangle hit by a ray.

    Stack-based iterative traversal. Nodes whose box starts beyond the
    best hit found so far are culled.

    Parameters
    ----------
    ray_origin : np.ndarray
        Ray origin. Shape: (3,).
    ray_dir : np.ndarray
        Ray direction. Shape: (3,).
    bvh_nodes : np.ndarray
        Flattened BVH node array. Shape: (num_nodes * 8,).
    tri_verts : np.ndarray
        Triangle vertices. Shape: (num_triangles, 3, 3).
    ordered_tri_indices : np.ndarray
        Triangle indices ordered by BVH leaf assignment. Shape: (num_triangles,).
    epsilon : float
        Intersection epsilon.

    Returns
    -------
    (t, tri_idx, u, v) : tuple[float, int, float, float]
        Distance, triangle index and barycentrics of the nearest hit.
        ``tri_idx = -1`` on a miss.
    """
    inv_dir = np.empty(3, dtype=np.float64)
    for axis in range(3):
        if ray_dir[axis] == 0.0:
            inv_dir[axis] = _INF
        else:
            inv_dir[axis] = 1.0 / ray_dir[axis]

    best_t = _INF
    best_tri = -1
    best_u = 0.0
    best_v = 0.0

    stack = np.empty(_STACK_SIZE, dtype=np.int64)
    stack_ptr = 0
    stack[stack_ptr] = 0  # root
    stack_ptr += 1

    bbox_min_tmp = np.empty(3, dtype=np.float64)
    bbox_max_tmp = np.empty(3, dtype=np.float64)

    while stack_ptr > 0:
        stack_ptr -= 1
        node_idx = stack[stack_ptr]
        base = node_idx * _NODE_SIZE

        bbox_min_tmp[0] = bvh_nodes[base + _BBOX_MIN_X]
        bbox_min_tmp[1] = bvh_nodes[base + _BBOX_MIN_Y]
        bbox_min_tmp[2] = bvh_nodes[base + _BBOX_MIN_Z]
        bbox_max_tmp[0] = bvh_nodes[base + _BBOX_MAX_X]
        bbox_max_tmp[1] = bvh_nodes[base + _BBOX_MAX_Y]
        bbox_max_tmp[2] = bvh_nodes[base + _BBOX_MAX_Z]

        if not ray_aabb_intersect(ray_origin, inv_dir, bbox_min_tmp, bbox_max_tmp, best_t):
            continue

        count_or_right = bvh_nodes[base + _COUNT_OR_RIGHT]

        if count_or_right < 0:
            # LEAF NODE: test triangles
            start = int(bvh_nodes[base + _CHILD_OR_START])
            count = int(-count_or_right)
            for i in range(start, start + count):
                tri_idx = ordered_tri_indices[i]
                t_hit, u, v = moller_trumbore(
                    ray_origin,
                    ray_dir,
                    tri_verts[tri_idx, 0],
                    tri_verts[tri_idx, 1],
                    tri_verts[tri_idx, 2],
                    epsilon,
                )
                if t_hit > epsilon and t_hit < best_t:
                    best_t = t_hit
                    best_tri = tri_idx
                    best_u = u
                    best_v = v
        else:
            # INTERNAL NODE: push children
            stack[stack_ptr] = int(bvh_nodes[base + _CHILD_OR_START])
            stack_ptr += 1
            stack[stack_ptr] = int(count_or_right)
            stack_ptr += 1

    return best_t, best_tri, best_u, best_v


# ===================================================================
# BVH CONSTRUCTION: Python (one-time cost, not JIT-compiled)
# ===================================================================


def build_bvh(
    tri_verts: np.ndarray,
    max_leaf_triangles: int = _DEFAULT_MAX_LEAF,
) -> tuple[np.ndarray, np.ndarray]:
    """Build a flattened BVH over triangles with binned SAH splits.

    Parameters
    ----------
    tri_verts : np.ndarray
        Triangle vertex positions. Shape: (num_triangles, 3, 3).
    max_leaf_triangles : int
        Maximum number of triangles per leaf unless no split pays off.

    Returns
    -------
    bvh_nodes : np.ndarray
        Flattened node array. Shape: (num_nodes * 8,), dtype: float64.
    ordered_indices : np.ndarray
        Triangle indices in BVH leaf order. Shape: (num_triangles,), dtype: int64.
    """
    num_triangles = tri_verts.shape[0]
    logger.debug("Building BVH for %d triangles (max_leaf=%d)...", num_triangles, max_leaf_triangles)

    tri_min = tri_verts.min(axis=1)
    tri_max = tri_verts.max(axis=1)
    centroids = tri_verts.mean(axis=1)

    indices = np.arange(num_triangles, dtype=np.int64)
    nodes = np.zeros((2 * num_triangles - 1, _NODE_SIZE), dtype=np.float64)
    num_nodes = 0

    def write_node(idx: int, lo, hi, child_or_start: int, count_or_right: int) -> None:
        nodes[idx, _BBOX_MIN_X:_BBOX_MAX_X] = lo
        nodes[idx, _BBOX_MAX_X:_CHILD_OR_START] = hi
        nodes[idx, _CHILD_OR_START] = child_or_start
        nodes[idx, _COUNT_OR_RIGHT] = count_or_right

    def build(start: int, end: int) -> int:
        nonlocal num_nodes
        idx = num_nodes
        num_nodes += 1

        sub = indices[start:end].copy()
        lo = tri_min[sub].min(axis=0)
        hi = tri_max[sub].max(axis=0)

        split = None
        if end - start > max_leaf_triangles:
            split = _best_sah_split(sub, centroids, tri_min, tri_max, lo, hi)
        if split is None:
            # Leaves store the negated triangle count.
            write_node(idx, lo, hi, start, -(end - start))
            return idx

        axis, position = split
        left = centroids[sub, axis] < position
        mid = start + int(left.sum())
        if mid in (start, end):
            # Bins and plane disagree by round-off: median split instead.
            left = np.zeros(len(sub), dtype=bool)
            left[np.argsort(centroids[sub, axis])[: len(sub) // 2]] = True
            mid = start + len(sub) // 2
        indices[start:end] = np.concatenate((sub[left], sub[~left]))

        left_idx = build(start, mid)
        right_idx = build(mid, end)
        write_node(idx, lo, hi, left_idx, right_idx)
        return idx

    build(0, num_triangles)
    bvh_nodes = nodes[:num_nodes].ravel().copy()

    logger.debug("BVH built: %d nodes, %.2f MB node memory", num_nodes, bvh_nodes.nbytes / 1e6)
    return bvh_nodes, indices


def _surface_area(lo: np.ndarray, hi: np.ndarray) -> np.ndarray:
    """Box surface area; broadcasts over leading axes."""
    d = hi - lo
    return 2.0 * (d[..., 0] * d[..., 1] + d[..., 1] * d[..., 2] + d[..., 2] * d[..., 0])


def _best_sah_split(
    sub: np.ndarray,
    centroids: np.ndarray,
    tri_min: np.ndarray,
    tri_max: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
) -> tuple[int, float] | None:
    """Cheapest ``(axis, plane)`` over centroid bins, or None if a leaf wins.

    A split costs ``1 + (SA_L·N_L + SA_R·N_R) / SA_parent``, a leaf costs N.
    Triangles with ``centroid[axis] < plane`` go left.
    """
    parent_sa = float(_surface_area(lo, hi))
    if parent_sa < 1e-30:
        return None

    n = len(sub)
    c = centroids[sub]
    c_lo = c.min(axis=0)
    extent = c.max(axis=0) - c_lo

    best_cost = float(n)
    best = None
    for axis in range(3):
        if extent[axis] < 1e-10:
            continue
        width = extent[axis] / _SAH_BINS
        bins = np.minimum(((c[:, axis] - c_lo[axis]) / width).astype(np.int64), _SAH_BINS - 1)

        counts = np.bincount(bins, minlength=_SAH_BINS)
        bin_min = np.full((_SAH_BINS, 3), _INF)
        bin_max = np.full((_SAH_BINS, 3), -_INF)
        np.minimum.at(bin_min, bins, tri_min[sub])
        np.maximum.at(bin_max, bins, tri_max[sub])

        # Entry p describes the plane between bins p and p + 1.
        left_n = np.cumsum(counts)[:-1]
        right_n = n - left_n
        left_sa = _surface_area(
            np.minimum.accumulate(bin_min)[:-1], np.maximum.accumulate(bin_max)[:-1]
        )
        right_sa = _surface_area(
            np.minimum.accumulate(bin_min[::-1])[::-1][1:],
            np.maximum.accumulate(bin_max[::-1])[::-1][1:],
        )
        cost = 1.0 + (left_sa * left_n + right_sa * right_n) / parent_sa
        cost[(left_n == 0) | (right_n == 0)] = np.inf

        plane = int(np.argmin(cost))
        if cost[plane] < best_cost:
            best_cost = float(cost[plane])
            best = (axis, float(c_lo[axis] + (plane + 1) * width))
    return best


# ===================================================================
# HIGH-LEVEL API
# ===================================================================


class BakeFace(NamedTuple):
    """One triangle with the attributes reported on a hit."""

    vertices: np.ndarray     # (3, 3)
    normals: np.ndarray      # (3, 3)
    texcoords: np.ndarray    # (3, 2)
    lightcoords: np.ndarray  # (3, 2)
    material: str
    lightmap: str


class Hit(NamedTuple):
    """Nearest intersection with interpolated surface attributes."""

    distance: float
    normal: np.ndarray
    texcoord: np.ndarray
    lightcoord: np.ndarray
    material: str
    lightmap: str


class FaceIndex:
    """Spatial index over baked faces answering closest-hit queries.

    Built once per bake and shared read-only by all worker threads.
    """

    def __init__(
        self,
        bvh_nodes: np.ndarray,
        ordered_indices: np.ndarray,
        tri_verts: np.ndarray,
        tri_normals: np.ndarray,
        tri_texcoords: np.ndarray,
        tri_lightcoords: np.ndarray,
        material_ids: np.ndarray,
        lightmap_ids: np.ndarray,
        material_names: list[str],
        lightmap_names: list[str],
        epsilon: float = _DEFAULT_EPSILON,
    ) -> None:
        self.bvh_nodes = bvh_nodes
        self.ordered_indices = ordered_indices
        self.tri_verts = tri_verts
        self.tri_normals = tri_normals
        self.tri_texcoords = tri_texcoords
        self.tri_lightcoords = tri_lightcoords
        self.material_ids = material_ids
        self.lightmap_ids = lightmap_ids
        self.material_names = material_names
        self.lightmap_names = lightmap_names
        self.epsilon = epsilon

    @property
    def num_triangles(self) -> int:
        return self.tri_verts.shape[0]

    @classmethod
    def build(
        cls,
        faces: Sequence[BakeFace],
        max_leaf_triangles: int = _DEFAULT_MAX_LEAF,
        epsilon: float = _DEFAULT_EPSILON,
    ) -> FaceIndex:
        """Build the index from a sequence of faces."""
        n = len(faces)
        tri_verts = np.empty((n, 3, 3), dtype=np.float64)
        tri_normals = np.empty((n, 3, 3), dtype=np.float64)
        tri_texcoords = np.empty((n, 3, 2), dtype=np.float64)
        tri_lightcoords = np.empty((n, 3, 2), dtype=np.float64)
        material_ids = np.empty(n, dtype=np.int64)
        lightmap_ids = np.empty(n, dtype=np.int64)
        material_names: list[str] = []
        lightmap_names: list[str] = []
        material_lookup: dict[str, int] = {}
        lightmap_lookup: dict[str, int] = {}

        for i, face in enumerate(faces):
            tri_verts[i] = face.vertices
            tri_normals[i] = face.normals
            tri_texcoords[i] = face.texcoords
            tri_lightcoords[i] = face.lightcoords
            if face.material not in material_lookup:
                material_lookup[face.material] = len(material_names)
                material_names.append(face.material)
            if face.lightmap not in lightmap_lookup:
                lightmap_lookup[face.lightmap] = len(lightmap_names)
                lightmap_names.append(face.lightmap)
            material_ids[i] = material_lookup[face.material]
            lightmap_ids[i] = lightmap_lookup[face.lightmap]

        if n > 0:
            bvh_nodes, ordered_indices = build_bvh(tri_verts, max_leaf_triangles)
        else:
            bvh_nodes = np.zeros(0, dtype=np.float64)
            ordered_indices = np.zeros(0, dtype=np.int64)

        logger.info("Spatial index built over %d faces.", n)

        return cls(
            bvh_nodes, ordered_indices, tri_verts, tri_normals, tri_texcoords,
            tri_lightcoords, material_ids, lightmap_ids, material_names,
            lightmap_names, epsilon,
        )

    def intersect(self, origin: np.ndarray, direction: np.ndarray) -> Hit | None:
        """Nearest hit along ``origin + t·direction`` (t > 0), or None.

        The hit normal is the barycentric interpolation of the vertex
        normals, normalized.
        """
        if self.num_triangles == 0:
            return None

        t, tri, u, v = closest_hit_bvh(
            np.ascontiguousarray(origin, dtype=np.float64),
            np.ascontiguousarray(direction, dtype=np.float64),
            self.bvh_nodes,
            self.tri_verts,
            self.ordered_indices,
            self.epsilon,
        )
        if tri < 0:
            return None

        w = np.array([1.0 - u - v, u, v])
        normal = w @ self.tri_normals[tri]
        with np.errstate(invalid="ignore", divide="ignore"):
            normal = normal / np.linalg.norm(normal)

        return Hit(
            distance=float(t),
            normal=normal,
            texcoord=w @ self.tri_texcoords[tri],
            lightcoord=w @ self.tri_lightcoords[tri],
            material=self.material_names[self.material_ids[tri]],
            lightmap=self.lightmap_names[self.lightmap_ids[tri]],
        )

"""Tests for conservative lightmap rasterization.

Validates barycentric coordinates, segment/rectangle overlap, texel
coverage of small and large triangles, and the per-texel sample point.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from bake_engine.rasterizer import (
    Bounds2D,
    barycentric_coordinates,
    conservative_raster,
    is_inside,
    sample_in_triangle_center,
    texel_uv_range,
    triangle_conservative_bounds,
)
from scene_ingestion.scene_types import MeshBuffer


def _flat_mesh(uvs: np.ndarray, with_tangents: bool = True) -> MeshBuffer:
    """Mesh lying in the y = 0 plane with positions (u, 0, v)."""
    uvs = np.asarray(uvs, dtype=np.float64)
    n = uvs.shape[0]
    positions = np.column_stack([uvs[:, 0], np.zeros(n), uvs[:, 1]])
    return MeshBuffer(
        positions=positions,
        normals=np.tile([0.0, 1.0, 0.0], (n, 1)),
        texcoords=uvs,
        indices=np.arange(n).reshape(-1, 3),
        lightcoords=uvs,
        tangent_u=np.tile([1.0, 0.0, 0.0], (n, 1)) if with_tangents else None,
        tangent_v=np.tile([0.0, 0.0, 1.0], (n, 1)) if with_tangents else None,
    )


# ===================================================================
# BARYCENTRIC COORDINATES
# ===================================================================


class TestBarycentric:

    @pytest.fixture
    def tri(self) -> np.ndarray:
        return np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])

    def test_vertices(self, tri: np.ndarray) -> None:
        for i, corner in enumerate(tri):
            weights = barycentric_coordinates(tri, tuple(corner))
            expected = [0.0, 0.0, 0.0]
            expected[i] = 1.0
            np.testing.assert_allclose(weights, expected, atol=1e-12)

    def test_weights_sum_to_one(self, tri: np.ndarray) -> None:
        weights = barycentric_coordinates(tri, (0.2, 0.3))
        assert sum(weights) == pytest.approx(1.0)
        np.testing.assert_allclose(weights, [0.5, 0.2, 0.3])

    def test_inside_outside(self, tri: np.ndarray) -> None:
        assert is_inside(tri, (0.25, 0.25))
        assert is_inside(tri, (0.5, 0.5)), "edge points count as inside"
        assert not is_inside(tri, (0.6, 0.6))

    def test_degenerate_is_nan(self) -> None:
        collinear = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
        weights = barycentric_coordinates(collinear, (0.5, 0.5))
        assert all(math.isnan(w) for w in weights)
        assert not is_inside(collinear, (0.5, 0.5))


# ===================================================================
# SEGMENT / RECTANGLE OVERLAP
# ===================================================================


class TestBounds2D:

    @pytest.fixture
    def box(self) -> Bounds2D:
        return Bounds2D(0.0, 0.0, 1.0, 1.0)

    def test_crossing_segment(self, box: Bounds2D) -> None:
        assert box.intersects_segment((-1.0, 0.5), (2.0, 0.5))
        assert box.intersects_segment((-1.0, -1.0), (2.0, 2.0))

    def test_segment_inside(self, box: Bounds2D) -> None:
        assert box.intersects_segment((0.2, 0.2), (0.8, 0.3))

    def test_segment_ends_before_box(self, box: Bounds2D) -> None:
        assert not box.intersects_segment((-2.0, 0.5), (-0.5, 0.5))

    def test_segment_starts_after_box(self, box: Bounds2D) -> None:
        assert not box.intersects_segment((1.5, 0.5), (3.0, 0.5))

    def test_parallel_outside(self, box: Bounds2D) -> None:
        assert not box.intersects_segment((-1.0, 1.5), (2.0, 1.5))
        assert not box.intersects_segment((1.5, -1.0), (1.5, 2.0))

    def test_zero_length(self, box: Bounds2D) -> None:
        assert not box.intersects_segment((0.5, 0.5), (0.5, 0.5))

    def test_center_and_size(self) -> None:
        b = Bounds2D(0.25, 0.5, 0.5, 1.0)
        assert b.center() == (0.375, 0.75)
        assert b.size() == (0.25, 0.5)


# ===================================================================
# CONSERVATIVE RASTER
# ===================================================================


class TestConservativeRaster:

    def test_texel_uv_range(self) -> None:
        assert texel_uv_range(1, 2, 4) == Bounds2D(0.25, 0.5, 0.5, 0.75)

    def test_bounds_clamped(self) -> None:
        tri = np.array([[0.9, 0.9], [1.0, 0.9], [1.0, 1.0]])
        x_min, y_min, x_max, y_max = triangle_conservative_bounds(tri, 4)
        assert (x_min, y_min, x_max, y_max) == (3, 3, 3, 3)

    def test_triangle_inside_one_texel(self) -> None:
        """A triangle within one texel covers exactly that texel."""
        tri = np.array([[0.30, 0.55], [0.45, 0.55], [0.375, 0.70]])
        covered = list(conservative_raster(tri, 4))
        assert [pos for pos, _ in covered] == [(1, 2)]

        mesh = _flat_mesh(tri)
        point = sample_in_triangle_center(mesh, (0, 1, 2), tri, covered[0][1])
        assert point is not None
        assert all(0.0 <= w <= 1.0 for w in point.barycentric)

    def test_thin_triangle_through_texel_is_covered(self) -> None:
        """No texel center inside, but the edges cross several texels."""
        tri = np.array([[0.0, 0.1], [1.0, 0.1], [1.0, 0.11]])
        rows = {py for (_, py), _ in conservative_raster(tri, 8)}
        cols = {px for (px, _), _ in conservative_raster(tri, 8)}
        assert rows == {0}
        assert len(cols) >= 7

    def test_full_quad_covers_every_texel(self) -> None:
        uvs = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
        mesh = _flat_mesh(uvs)
        sampled = set()
        for tri in mesh.iter_triangle_indices():
            tri_uvs = mesh.triangle_lightcoords(tri)
            for pos, texel in conservative_raster(tri_uvs, 4):
                if sample_in_triangle_center(mesh, tri, tri_uvs, texel) is not None:
                    sampled.add(pos)
        assert sampled == {(x, y) for x in range(4) for y in range(4)}

    def test_degenerate_triangle_yields_no_samples(self) -> None:
        tri = np.array([[0.1, 0.1], [0.5, 0.5], [0.9, 0.9]])
        mesh = _flat_mesh(tri)
        for _, texel in conservative_raster(tri, 4):
            assert sample_in_triangle_center(mesh, (0, 1, 2), tri, texel) is None


# ===================================================================
# SAMPLE POINT
# ===================================================================


class TestSamplePoint:

    def test_interpolated_attributes(self) -> None:
        tri = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        mesh = _flat_mesh(tri)
        texel = texel_uv_range(0, 0, 4)
        point = sample_in_triangle_center(mesh, (0, 1, 2), tri, texel)

        assert point.uv == pytest.approx((0.499 * 0.25, 0.501 * 0.25))
        np.testing.assert_allclose(point.position, [point.uv[0], 0.0, point.uv[1]])
        np.testing.assert_allclose(point.normal, [0.0, 1.0, 0.0])
        np.testing.assert_allclose(point.tangent, [1.0, 0.0, 0.0])
        np.testing.assert_allclose(point.bitangent, [0.0, 0.0, 1.0])

    def test_missing_tangents_are_zero(self) -> None:
        tri = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        mesh = _flat_mesh(tri, with_tangents=False)
        point = sample_in_triangle_center(mesh, (0, 1, 2), tri, texel_uv_range(0, 0, 4))
        np.testing.assert_array_equal(point.tangent, np.zeros(3))
        np.testing.assert_array_equal(point.bitangent, np.zeros(3))

    def test_sample_outside_triangle_rejected(self) -> None:
        """Texel touched by an edge but whose sample point lies outside."""
        tri = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        mesh = _flat_mesh(tri)
        # Texel (3, 3) is beyond the hypotenuse u + v = 1.
        point = sample_in_triangle_center(mesh, (0, 1, 2), tri, texel_uv_range(3, 3, 4))
        assert point is None

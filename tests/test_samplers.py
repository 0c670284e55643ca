"""Tests for the Monte-Carlo light samplers.

Each sampler is evaluated at a hand-placed surface point of a small
synthetic scene and compared against the closed-form result.
"""

from __future__ import annotations

import numpy as np
import pytest

from bake_engine.constants import BakeOpts
from bake_engine.rasterizer import TexelSample
from bake_engine.samplers import (
    SamplerKind,
    is_valid_sampling_point,
    sample_area_sphx,
    sample_area_sphy,
    sample_emissive,
    sample_indirect,
    sample_occupancy,
    sample_point_lights,
    sample_sun,
    sample_sun_mask,
    sample_validity,
    sampler_for,
)
from bake_engine.sampling import cosine_hemisphere
from bake_engine.scene import Scene
from scene_ingestion.scene_types import (
    EmissiveDef,
    Island,
    MaterialDef,
    PointLightDef,
    Primitive,
)
from scene_ingestion.synthetic_scene import boxed_quad_scene, quad_mesh, quad_scene

RAND = np.array([0.3, 0.7])
UP = np.array([0.0, 1.0, 0.0])
DOWN = np.array([0.0, -1.0, 0.0])


def _point(position=(0.5, 0.0, 0.5), normal=UP) -> TexelSample:
    return TexelSample(
        uv=(0.5, 0.5),
        position=np.asarray(position, dtype=np.float64),
        normal=np.asarray(normal, dtype=np.float64),
        tangent=np.array([1.0, 0.0, 0.0]),
        bitangent=np.array([0.0, 0.0, 1.0]),
        barycentric=(1 / 3, 1 / 3, 1 / 3),
    )


def _ceiling(height: float, normal_y: float) -> Island:
    """Large horizontal plane covering every hemisphere ray from the quad."""
    mesh = quad_mesh(
        origin=(-500.0, height, -500.0),
        edge_u=(1000.0, 0.0, 0.0),
        edge_v=(0.0, 0.0, 1000.0),
        normal=(0.0, normal_y, 0.0),
    )
    return Island("ceiling", [Primitive("white", mesh)])


def _scene(parsed, opts: BakeOpts | None = None, temp: dict | None = None) -> Scene:
    if temp is None:
        temp = {island.name: np.zeros((4, 4, 3)) for island in parsed.islands}
    return Scene(opts or BakeOpts(), parsed, temp)


@pytest.fixture
def open_quad():
    return quad_scene(sun_color=(2.0, 1.0, 0.5))


# ===================================================================
# VISIBILITY RULE
# ===================================================================


class TestVisibilityRule:

    def test_front_face_is_valid(self) -> None:
        assert is_valid_sampling_point(UP, DOWN)

    def test_back_face_is_invalid(self) -> None:
        assert not is_valid_sampling_point(UP, UP)

    def test_perpendicular_is_invalid(self) -> None:
        assert not is_valid_sampling_point(UP, np.array([1.0, 0.0, 0.0]))


# ===================================================================
# SUN
# ===================================================================


class TestSun:

    def test_unoccluded_overhead(self, open_quad) -> None:
        scene = _scene(open_quad)
        np.testing.assert_allclose(sample_sun_mask(RAND, scene, None, _point()), [2.0, 1.0, 0.5])
        np.testing.assert_allclose(sample_sun(RAND, scene, None, _point()), [2.0, 1.0, 0.5])

    def test_cosine_only_in_sun_channel(self, open_quad) -> None:
        tilted = np.array([1.0, 1.0, 0.0]) / np.sqrt(2.0)
        scene = _scene(open_quad)
        point = _point(position=(0.5, 0.5, 0.5), normal=tilted)
        np.testing.assert_allclose(
            sample_sun(RAND, scene, None, point), np.array([2.0, 1.0, 0.5]) / np.sqrt(2.0)
        )
        np.testing.assert_allclose(sample_sun_mask(RAND, scene, None, point), [2.0, 1.0, 0.5])

    def test_occluded_by_front_face_is_black(self, open_quad) -> None:
        open_quad.islands.append(_ceiling(1.0, -1.0))
        scene = _scene(open_quad)
        np.testing.assert_array_equal(sample_sun_mask(RAND, scene, None, _point()), np.zeros(3))

    def test_back_face_occluder_discards(self) -> None:
        scene = _scene(boxed_quad_scene())
        assert sample_sun_mask(RAND, scene, None, _point()) is None
        assert sample_sun(RAND, scene, None, _point()) is None

    def test_facing_away_records_black_without_tracing(self) -> None:
        """Surfaces facing away from the sun record black even inside geometry.

        The probe along this point's normal would hit a back face of the
        enclosing box, yet the sample is recorded as black, not discarded.
        """
        scene = _scene(boxed_quad_scene())
        point = _point(normal=DOWN)
        np.testing.assert_array_equal(sample_validity(RAND, scene, None, point), np.zeros(3))
        np.testing.assert_array_equal(sample_sun_mask(RAND, scene, None, point), np.zeros(3))
        np.testing.assert_array_equal(sample_sun(RAND, scene, None, point), np.zeros(3))

    def test_no_sun_discards(self, open_quad) -> None:
        open_quad.metadata.sun_def = None
        assert sample_sun(RAND, _scene(open_quad), None, _point()) is None


# ===================================================================
# POINT LIGHTS / EMISSIVE
# ===================================================================


class TestPointLights:

    @pytest.fixture
    def lit_quad(self, open_quad):
        open_quad.metadata.point_lights = [
            PointLightDef(pos=np.array([0.5, 2.0, 0.5]), color=np.array([4.0, 4.0, 4.0]))
        ]
        return open_quad

    def test_inverse_square(self, lit_quad) -> None:
        color = sample_point_lights(RAND, _scene(lit_quad), None, _point())
        np.testing.assert_allclose(color, np.ones(3))

    def test_occluder_between_is_black(self, lit_quad) -> None:
        lit_quad.islands.append(_ceiling(1.0, -1.0))
        color = sample_point_lights(RAND, _scene(lit_quad), None, _point())
        np.testing.assert_array_equal(color, np.zeros(3))

    def test_object_behind_light_does_not_occlude(self, lit_quad) -> None:
        lit_quad.islands.append(_ceiling(3.0, -1.0))
        color = sample_point_lights(RAND, _scene(lit_quad), None, _point())
        np.testing.assert_allclose(color, np.ones(3))

    def test_back_face_discards(self, lit_quad) -> None:
        lit_quad.islands.append(_ceiling(1.0, 1.0))
        assert sample_point_lights(RAND, _scene(lit_quad), None, _point()) is None

    def test_sums_lights(self, lit_quad) -> None:
        lit_quad.metadata.point_lights.append(
            PointLightDef(pos=np.array([0.5, 1.0, 0.5]), color=np.array([1.0, 2.0, 3.0]))
        )
        color = sample_point_lights(RAND, _scene(lit_quad), None, _point())
        np.testing.assert_allclose(color, [2.0, 3.0, 4.0])

    def test_no_lights_discards(self, open_quad) -> None:
        assert sample_point_lights(RAND, _scene(open_quad), None, _point()) is None


class TestEmissive:

    def test_flat_strength(self, open_quad) -> None:
        open_quad.metadata.materials["lamp"] = MaterialDef(
            base_color="#ffffff", emissive=EmissiveDef(texture="#ffffff", strength=3.0)
        )
        scene = _scene(open_quad)
        prim = Primitive("lamp", open_quad.islands[0].primitives[0].mesh)
        np.testing.assert_allclose(sample_emissive(RAND, scene, prim, _point()), np.full(3, 3.0))

    def test_non_emissive_discards(self, open_quad) -> None:
        scene = _scene(open_quad)
        prim = open_quad.islands[0].primitives[0]
        assert sample_emissive(RAND, scene, prim, _point()) is None


# ===================================================================
# INDIRECT AND SPHERICAL HARMONICS
# ===================================================================


class TestIndirect:

    @pytest.fixture
    def covered_quad(self, open_quad):
        open_quad.islands.append(_ceiling(1.0, -1.0))
        temp = {"quad": np.zeros((4, 4, 3)), "ceiling": np.full((4, 4, 3), 1.5)}
        return _scene(open_quad, BakeOpts(reflectivity_factor=0.5), temp)

    def test_miss_returns_sky(self, open_quad) -> None:
        open_quad.metadata.sky_color = np.array([0.1, 0.2, 0.3])
        color = sample_indirect(RAND, _scene(open_quad), None, _point())
        np.testing.assert_allclose(color, [0.1, 0.2, 0.3])

    def test_hit_reflects_previous_bounce(self, covered_quad) -> None:
        # temp 1.5 · white base color 1.0 · reflectivity 0.5
        color = sample_indirect(RAND, covered_quad, None, _point())
        np.testing.assert_allclose(color, np.full(3, 0.75))

    def test_back_face_hit_discards(self, open_quad) -> None:
        open_quad.islands.append(_ceiling(1.0, 1.0))
        assert sample_indirect(RAND, _scene(open_quad), None, _point()) is None

    def test_sh_projections(self, covered_quad) -> None:
        direction = cosine_hemisphere(RAND, UP)
        np.testing.assert_allclose(
            sample_area_sphx(RAND, covered_quad, None, _point()), 0.75 * direction[0]
        )
        np.testing.assert_allclose(
            sample_area_sphy(RAND, covered_quad, None, _point()), 0.75 * direction[2]
        )


# ===================================================================
# DEBUG CHANNELS AND DISPATCH
# ===================================================================


class TestDebugChannels:

    def test_occupancy_always_white(self, open_quad) -> None:
        np.testing.assert_array_equal(
            sample_occupancy(RAND, _scene(open_quad), None, _point()), np.ones(3)
        )

    def test_validity_open(self, open_quad) -> None:
        np.testing.assert_array_equal(
            sample_validity(RAND, _scene(open_quad), None, _point()), np.ones(3)
        )

    def test_validity_enclosed(self) -> None:
        scene = _scene(boxed_quad_scene())
        np.testing.assert_array_equal(sample_validity(RAND, scene, None, _point()), np.zeros(3))

    def test_dispatch_covers_every_kind(self) -> None:
        for kind in SamplerKind:
            assert callable(sampler_for(kind))
        assert sampler_for(SamplerKind.SUN) is sample_sun

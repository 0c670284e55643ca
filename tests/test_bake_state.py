"""End-to-end tests for the bake orchestrator on synthetic scenes.

Expected values follow from scene geometry alone: an open quad under an
overhead sun is fully lit, a quad sealed inside a box records nothing.
"""

from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from bake_engine.constants import MAX_INTENSITY
from bake_engine.lightmap_utils import unweigh
from baking.bake_state import BakeState, channel_stats
from baking.progress import NullProgress, ProgressCallback
from scene_ingestion.scene_loader import apply_bake_opts
from scene_ingestion.synthetic_scene import boxed_quad_scene, quad_scene, room_scene


class RecordingProgress(ProgressCallback):
    def __init__(self) -> None:
        self.stages: list[str] = []
        self.stats: dict[str, dict] = {}
        self.finished_calls = 0

    def stage(self, name: str) -> None:
        self.stages.append(name)

    def pass_done(self, name: str, stats: dict) -> None:
        self.stats[name] = stats

    def finished(self, elapsed_s: float) -> None:
        self.finished_calls += 1


def _state(parsed, opts, progress=None) -> BakeState:
    apply_bake_opts(parsed.metadata, opts)
    return BakeState(opts, parsed, progress=progress or NullProgress())


# ===================================================================
# OPEN QUAD UNDER THE SUN
# ===================================================================


class TestOpenQuad:

    @pytest.fixture
    def baked(self, fast_opts) -> BakeState:
        opts = dataclasses.replace(fast_opts, sky_color=(0.5, 0.5, 0.5))
        state = _state(quad_scene(), opts)
        state.bake_full()
        return state

    def test_lightmap_size(self, baked) -> None:
        assert baked.lightmap_sizes == {"quad": 4}
        assert baked.sun_mask["quad"].size == (4, 4)

    def test_sun_mask_fully_lit(self, baked) -> None:
        np.testing.assert_allclose(unweigh(baked.sun_mask["quad"]), np.ones((4, 4, 3)))

    def test_indirect_is_sky(self, baked) -> None:
        indirect = unweigh(baked.indirect["quad"])
        np.testing.assert_allclose(indirect, np.full((4, 4, 3), 0.5))
        assert indirect.min() >= 0.0
        assert indirect.max() <= 2.0

    def test_area_light_without_emitters_equals_indirect(self, baked) -> None:
        np.testing.assert_allclose(unweigh(baked.area_sphz["quad"]), np.full((4, 4, 3), 0.5))

    def test_every_texel_sampled(self, baked) -> None:
        assert np.all(baked.occupancy["quad"].num_samples() > 0)
        np.testing.assert_allclose(unweigh(baked.validity["quad"]), np.ones((4, 4, 3)))

    def test_sh_channels_empty_when_disabled(self, baked) -> None:
        assert baked.area_sphx == {}
        assert baked.area_sphy == {}

    def test_bookkeeping(self, baked) -> None:
        assert baked.passes == 1
        assert baked.elapsed_s > 0.0
        expected = sum(
            int(lm.counts.sum()) for lm in (baked.sun_mask["quad"], baked.area_sphz["quad"])
        )
        assert baked.num_rays() == expected > 0


class TestSphericalHarmonics:

    def test_sh_channels_baked(self, fast_opts) -> None:
        opts = dataclasses.replace(
            fast_opts, sky_color=(0.5, 0.5, 0.5), spherical_harmonics=True
        )
        state = _state(quad_scene(), opts)
        state.bake_full()

        for channel in (state.area_sphx, state.area_sphy):
            assert set(channel) == {"quad"}
            values = unweigh(channel["quad"])
            assert values.shape == (4, 4, 3)
            assert np.all(np.abs(values) <= 0.5 + 1e-12)


# ===================================================================
# ENCLOSED QUAD
# ===================================================================


class TestBoxedQuad:

    @pytest.fixture
    def baked(self, fast_opts) -> BakeState:
        state = _state(boxed_quad_scene(), fast_opts)
        state.bake_full()
        return state

    def test_sizes(self, baked) -> None:
        assert baked.lightmap_sizes == {"quad": 4, "box": 16}

    def test_quad_records_nothing(self, baked) -> None:
        for channel in (baked.sun_mask, baked.indirect, baked.area_sphz):
            assert channel["quad"].num_samples().sum() == 0
            np.testing.assert_array_equal(unweigh(channel["quad"]), np.zeros((4, 4, 3)))

    def test_quad_marked_invalid(self, baked) -> None:
        np.testing.assert_array_equal(unweigh(baked.validity["quad"]), np.zeros((4, 4, 3)))


# ===================================================================
# ROOM WITH A POINT LIGHT
# ===================================================================


class TestRoom:

    def test_table_lit_by_point_light(self, fast_opts) -> None:
        opts = dataclasses.replace(fast_opts, lightmap_pix_per_m=2.0)
        state = _state(room_scene(), opts)
        state.bake_full()

        assert state.lightmap_sizes == {"walls": 16, "table": 2}
        table = unweigh(state.area_sphz["table"])
        assert np.all(table > 0.0)
        # No sun in the room.
        assert state.sun_mask["table"].num_samples().sum() == 0

    def test_bounce_buffers_clamped_near_bright_light(self, fast_opts) -> None:
        # The ceiling sits 0.6 m above a 20-unit light: direct light far above the clamp.
        opts = dataclasses.replace(fast_opts, lightmap_pix_per_m=2.0, indirect_depth=3)
        state = _state(room_scene(light_color=(20.0, 20.0, 20.0)), opts)
        state.bake_full()

        temp = state.scene.temp_lightmap
        assert set(temp) == {"walls", "table"}
        for img in temp.values():
            assert img.min() >= 0.0
            assert img.max() <= MAX_INTENSITY
        assert temp["walls"].max() == MAX_INTENSITY

        for lm in state.indirect.values():
            indirect = unweigh(lm)
            assert indirect.min() >= 0.0
            assert indirect.max() <= MAX_INTENSITY
        assert unweigh(state.indirect["walls"]).max() > 0.0


# ===================================================================
# ITERATIVE DRIVER AND PROGRESS
# ===================================================================


class TestIterative:

    def test_advance_doubles_budget(self, fast_opts) -> None:
        state = _state(quad_scene(), fast_opts)
        assert state.max_samples == 9
        assert not state.done()

        state.advance()
        assert state.opts.max_samples == 9
        assert state.max_samples == 18
        assert state.passes == 1

        state.advance()
        assert state.opts.max_samples == 18
        assert state.max_samples == 36
        assert state.passes == 2

    def test_done_at_ceiling(self, fast_opts) -> None:
        state = _state(quad_scene(), fast_opts)
        state.max_samples = 2999
        assert not state.done()
        state.max_samples = 3000
        assert state.done()

    def test_second_pass_replaces_channels(self, fast_opts) -> None:
        state = _state(quad_scene(), fast_opts)
        state.advance()
        first = state.sun_mask["quad"].num_samples().sum()
        state.advance()
        second = state.sun_mask["quad"].num_samples().sum()
        assert second == 2 * first


class TestProgress:

    def test_stage_sequence(self, fast_opts) -> None:
        progress = RecordingProgress()
        state = _state(quad_scene(), fast_opts, progress)
        assert progress.stages == ["occupancy", "validity"]

        state.bake_full()

        assert progress.stages[2:] == [
            "sun_mask",
            "sun",
            "point_lights",
            "emissive",
            "indirect 0",
            "hole filter",
        ]
        assert progress.finished_calls == 1
        assert progress.stats["sun_mask"]["texels"] == 16

    def test_channel_stats(self, fast_opts) -> None:
        state = _state(quad_scene(), fast_opts)
        stats = channel_stats(state.occupancy)
        assert stats["texels"] == 16
        assert stats["samples"] >= 16 * 9
        assert stats["mean_error"] == pytest.approx(0.0)

"""Bake orchestrator: direct light, indirect bounces, SH, hole filling.

Pipeline of one pass (``bake_full`` or one ``advance`` step)::

    sun_mask, sun, point_lights, emissive   ← integrate direct channels
    indirect ← black
    repeat indirect_depth times:
        temp_lightmap ← clamp(sun + indirect + point_lights + emissive, 0..MAX_INTENSITY)
        indirect      ← integrate(INDIRECT)       (superblock-filtered if enabled)
    area_sphz ← indirect ⊕ emissive ⊕ point_lights  (accumulator merge)
    area_sphx, area_sphy ← integrate(SH-X / SH-Y)  (if enabled)
    hole-fill every output channel

The spatial index is built once in the constructor and reused by every
pass and bounce. Each pass replaces the output channels wholesale.

Notes
-----
The iterative driver re-runs the whole pass with a doubled sample
budget (starting at SUPERBLK²) until ``done()``, which is a fixed sample
ceiling rather than an aggregate error measure.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from pathlib import Path

import numpy as np

from bake_engine.constants import (
    ITERATIVE_SAMPLE_CEILING,
    MAX_INTENSITY,
    SAMPLES_STEP,
    BakeOpts,
)
from bake_engine.lightmap_utils import (
    Lightmaps,
    add_color_maps,
    black_color_maps,
    clamp_color_maps,
    empty_lightmaps,
    lightmap_sizes,
    unweigh_lightmaps,
)
from bake_engine.samplers import SamplerKind
from bake_engine.scene import Scene
from baking.filters import hole_filter_all, superblock_filter_all
from baking.progress import LoggingProgress, ProgressCallback
from baking.scheduler import integrate
from scene_ingestion.scene_types import ParsedScene

logger = logging.getLogger(__name__)


def channel_stats(lightmaps: Lightmaps) -> dict:
    """Summary numbers of one integrated channel over all islands."""
    texels = 0
    samples = 0
    errors: list[np.ndarray] = []
    for lm in lightmaps.values():
        n = lm.num_samples()
        texels += int(np.count_nonzero(n))
        samples += int(n.sum())
        err = lm.error()
        errors.append(err[~np.isnan(err)])
    finite = np.concatenate(errors) if errors else np.zeros(0)
    return {
        "texels": texels,
        "samples": samples,
        "mean_error": float(finite.mean()) if finite.size else float("nan"),
    }


class BakeState:
    """Owns the Scene and the evolving per-channel lightmaps of one bake.

    Parameters
    ----------
    opts : BakeOpts
        Bake options.
    parsed : ParsedScene
        Islands and metadata from the scene parser.
    progress : ProgressCallback, optional
        Stage and statistics reporting. Default: ``LoggingProgress``.
    texture_dir : str or Path, optional
        Directory for relative base-color texture paths.
    num_workers : int, optional
        Worker pool size override. Default: ``opts.resolved_num_workers()``.

    Attributes
    ----------
    lightmap_sizes : dict[str, int]
        Lightmap edge length per island.
    occupancy, validity : dict[str, Lightmap]
        Debug channels, integrated once at construction.
    sun_mask, area_sphz, area_sphx, area_sphy, indirect : dict[str, Lightmap]
        Output channels of the last pass (empty before the first pass;
        SH channels stay empty unless spherical harmonics are enabled).
    """

    def __init__(
        self,
        opts: BakeOpts,
        parsed: ParsedScene,
        progress: ProgressCallback | None = None,
        texture_dir: str | Path | None = None,
        num_workers: int | None = None,
    ) -> None:
        self.progress = progress if progress is not None else LoggingProgress()
        self.num_workers = num_workers
        self.max_samples = SAMPLES_STEP
        self.passes = 0
        self.elapsed_s = 0.0

        self.lightmap_sizes = lightmap_sizes(opts, parsed.islands)
        for name, size in self.lightmap_sizes.items():
            logger.debug("Lightmap %s: %dx%d", name, size, size)

        self.scene = Scene(opts, parsed, black_color_maps(self.lightmap_sizes), texture_dir)

        self.occupancy = self._integrate("occupancy", SamplerKind.OCCUPANCY)
        self.validity = self._integrate("validity", SamplerKind.VALIDITY)

        self.sun_mask: Lightmaps = {}
        self.area_sphz: Lightmaps = {}
        self.area_sphx: Lightmaps = {}
        self.area_sphy: Lightmaps = {}
        self.indirect: Lightmaps = {}

    @property
    def opts(self) -> BakeOpts:
        """Options of the current pass."""
        return self.scene.opts

    # --- drivers -----------------------------------------------------------

    def bake_full(self) -> None:
        """Run the whole pipeline once with the configured sample budget."""
        self._advance()

    def advance(self) -> None:
        """Run the whole pipeline with the current iterative budget, then double it."""
        self.scene.opts = dataclasses.replace(self.scene.opts, max_samples=self.max_samples)
        self._advance()
        self.max_samples *= 2

    def done(self) -> bool:
        """Iterative baking is finished once the budget reaches the ceiling."""
        return self.max_samples >= ITERATIVE_SAMPLE_CEILING

    def num_rays(self) -> int:
        """Total recorded samples over the output channels."""
        return sum(
            int(lm.counts.sum())
            for channel in (self.sun_mask, self.area_sphz, self.area_sphx, self.area_sphy)
            for lm in channel.values()
        )

    # --- pipeline ----------------------------------------------------------

    def _integrate(self, name: str, kind: SamplerKind) -> Lightmaps:
        self.progress.stage(name)
        result = integrate(self.scene, kind, self.num_workers)
        self.progress.pass_done(name, channel_stats(result))
        return result

    def _advance(self) -> None:
        t0 = time.perf_counter()
        opts = self.scene.opts

        sun_mask = self._integrate("sun_mask", SamplerKind.SUN_MASK)
        sun = self._integrate("sun", SamplerKind.SUN)
        point_lights = self._integrate("point_lights", SamplerKind.POINT_LIGHTS)
        emissive = self._integrate("emissive", SamplerKind.EMISSIVE)

        direct = add_color_maps(
            add_color_maps(unweigh_lightmaps(sun), unweigh_lightmaps(point_lights)),
            unweigh_lightmaps(emissive),
        )

        indirect = empty_lightmaps(self.lightmap_sizes)
        for i in range(opts.indirect_depth):
            # Replaced wholesale: workers of the previous bounce are done.
            self.scene.temp_lightmap = clamp_color_maps(
                add_color_maps(direct, unweigh_lightmaps(indirect)),
                MAX_INTENSITY,
            )
            indirect = self._integrate(f"indirect {i}", SamplerKind.INDIRECT)
            if opts.filter:
                indirect = superblock_filter_all(indirect)

        # Combined area light: last bounce plus emissive and point lights.
        area = {name: lm.copy() for name, lm in indirect.items()}
        for name, lm in area.items():
            lm.add_other(emissive[name])
            lm.add_other(point_lights[name])

        if opts.spherical_harmonics:
            area_sphx = hole_filter_all(self._integrate("area_sphx", SamplerKind.AREA_SPHX))
            area_sphy = hole_filter_all(self._integrate("area_sphy", SamplerKind.AREA_SPHY))
        else:
            area_sphx, area_sphy = {}, {}

        self.progress.stage("hole filter")
        self.sun_mask = hole_filter_all(sun_mask)
        self.indirect = hole_filter_all(indirect)
        self.area_sphz = hole_filter_all(area)
        self.area_sphx = area_sphx
        self.area_sphy = area_sphy

        elapsed = time.perf_counter() - t0
        self.elapsed_s += elapsed
        self.passes += 1
        self.progress.finished(elapsed)

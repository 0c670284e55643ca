"""Parallel integration of one light channel over every baked triangle.

Work distribution
-----------------
1. Every (island, primitive, triangle) triple becomes one work item.
2. All items are put on a ``queue.Queue`` which is then closed by
   appending one sentinel per worker.
3. A fixed-size thread pool drains the queue. Each worker owns a private,
   zero-initialized lightmap per island and writes only to it, so no
   locks are taken while sampling.
4. After every worker returned, the private lightmaps are folded into
   one by accumulator merge. The merge is associative and commutative,
   so the result does not depend on which worker took which item.

Per-texel sampling
------------------
Samples of a texel are indexed by a Halton sequence offset by the
texel's position inside its 3×3 superblock, so neighboring texels draw
decorrelated yet fully deterministic sequences. Sampling of a texel
stops early once its error estimate drops below ``target_error``
(checked every ``ERROR_CHECK_INTERVAL`` samples after ``min_samples``).
"""

from __future__ import annotations

import logging
import queue
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple

import numpy as np

from bake_engine.accumulator import Accumulator, Lightmap
from bake_engine.constants import ERROR_CHECK_INTERVAL, SUPERBLK, BakeOpts
from bake_engine.lightmap_utils import Lightmaps, empty_lightmaps
from bake_engine.rasterizer import conservative_raster, sample_in_triangle_center
from bake_engine.samplers import SampleFn, SamplerKind, sampler_for
from bake_engine.sampling import halton_2d
from bake_engine.scene import Scene
from scene_ingestion.scene_types import Primitive

logger = logging.getLogger(__name__)

_CLOSED = object()


class WorkItem(NamedTuple):
    """Unit of parallel dispatch: one triangle of one island."""

    lightmap: str
    primitive: Primitive
    tri: tuple[int, int, int]


def build_work_list(scene: Scene) -> list[WorkItem]:
    return [
        WorkItem(island.name, prim, tri)
        for island in scene.islands
        for prim in island.primitives
        for tri in prim.mesh.iter_triangle_indices()
    ]


# ---------------------------------------------------------------------------
# Per-Texel Adaptive Loop
# ---------------------------------------------------------------------------


def superblock_index(px: int, py: int) -> int:
    """Position of a pixel inside its 3×3 superblock, in [0, 9)."""
    return (px % SUPERBLK) + SUPERBLK * (py % SUPERBLK)


def sample_texel(
    acc: Accumulator,
    sample: Callable[[np.ndarray], np.ndarray | None],
    opts: BakeOpts,
    jitter: int,
) -> int:
    """Draw samples into ``acc`` until converged or out of budget.

    Parameters
    ----------
    acc : Accumulator
        Texel accumulator, updated in place. May already hold samples.
    sample : callable
        Maps a 2D Halton value to a color or None.
    opts : BakeOpts
        Supplies ``max_samples``, ``min_samples`` and ``target_error``.
    jitter : int
        Superblock index of the texel, in [0, SUPERBLK²).

    Returns
    -------
    int
        Number of sample draws (recorded or not).
    """
    stride = SUPERBLK * SUPERBLK
    draws = 0
    for halton_i in range(opts.max_samples):
        draws += 1
        color = sample(halton_2d(stride * halton_i + jitter))
        if color is not None and np.all(np.isfinite(color)):
            acc.add(color)

        if halton_i > opts.min_samples and halton_i % ERROR_CHECK_INTERVAL == 0:
            err = acc.error()
            if err is not None and err < opts.target_error:
                break
    return draws


def bake_triangle_with(
    dst: Lightmap,
    scene: Scene,
    primitive: Primitive,
    tri: tuple[int, int, int],
    sample_fn: SampleFn,
) -> None:
    """Integrate ``sample_fn`` over every texel covered by one triangle."""
    mesh = primitive.mesh
    tri_uvs = mesh.triangle_lightcoords(tri)

    for (px, py), texel in conservative_raster(tri_uvs, dst.width):
        point = sample_in_triangle_center(mesh, tri, tri_uvs, texel)
        if point is None:
            continue

        acc = dst.texel(px, py)
        sample_texel(
            acc,
            lambda rand: sample_fn(rand, scene, primitive, point),
            scene.opts,
            superblock_index(px, py),
        )
        dst.set_texel(px, py, acc)


# ---------------------------------------------------------------------------
# Parallel Integration
# ---------------------------------------------------------------------------


def reduce_lightmaps(per_worker: list[Lightmaps]) -> Lightmaps:
    """Fold per-worker lightmap sets into one by accumulator merge.

    Raises
    ------
    RuntimeError
        If ``per_worker`` is empty.
    """
    if not per_worker:
        raise RuntimeError("Integration produced no per-worker lightmaps.")
    total = per_worker[0]
    for other in per_worker[1:]:
        for name, dst in total.items():
            dst.add_other(other[name])
    return total


def integrate(
    scene: Scene,
    kind: SamplerKind,
    num_workers: int | None = None,
) -> Lightmaps:
    """Integrate one channel over the whole scene.

    Parameters
    ----------
    scene : Scene
        Read-only working set. Lightmap sizes follow ``scene.temp_lightmap``.
    kind : SamplerKind
        Channel to integrate.
    num_workers : int, optional
        Pool size. Defaults to ``scene.opts.resolved_num_workers()``.

    Returns
    -------
    dict[str, Lightmap]
        Accumulated lightmap per island.

    Raises
    ------
    RuntimeError
        On internal faults (e.g. a work item for an unknown lightmap).
        Exceptions raised inside workers propagate unchanged.
    """
    t0 = time.perf_counter()
    sample_fn = sampler_for(kind)
    sizes = {name: img.shape[0] for name, img in scene.temp_lightmap.items()}
    n_workers = num_workers if num_workers is not None else scene.opts.resolved_num_workers()

    work: queue.Queue = queue.Queue()
    items = build_work_list(scene)
    for item in items:
        work.put(item)
    for _ in range(n_workers):
        work.put(_CLOSED)

    def _worker() -> Lightmaps:
        dst = empty_lightmaps(sizes)
        while True:
            item = work.get()
            if item is _CLOSED:
                return dst
            if item.lightmap not in dst:
                raise RuntimeError(f"No lightmap for island {item.lightmap!r}")
            bake_triangle_with(dst[item.lightmap], scene, item.primitive, item.tri, sample_fn)

    with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="bake") as pool:
        futures = [pool.submit(_worker) for _ in range(n_workers)]
        per_worker = [f.result() for f in futures]

    result = reduce_lightmaps(per_worker)

    logger.debug(
        "Integrated %s: %d triangles, %d workers, %.2fs",
        kind.value,
        len(items),
        n_workers,
        time.perf_counter() - t0,
    )
    return result

"""Read-only working set of one bake run.

The ``Scene`` bundles the spatial index over every baked triangle, the
base-color raster of every used material, the active bake options and
the temp lightmap (previous bounce's combined irradiance).

The temp lightmap is replaced wholesale between bounce iterations and is
never written while workers are sampling.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from bake_engine.constants import BakeOpts
from bake_engine.lightmap_utils import ColorMaps
from bake_engine.raytracer import BakeFace, FaceIndex
from scene_ingestion.scene_types import ParsedScene
from scene_ingestion.textures import load_base_color

logger = logging.getLogger(__name__)


def collect_bake_faces(parsed: ParsedScene) -> list[BakeFace]:
    """One ``BakeFace`` per triangle, tagged with its island as lightmap."""
    faces: list[BakeFace] = []
    for island in parsed.islands:
        for prim in island.primitives:
            mesh = prim.mesh
            for tri in mesh.iter_triangle_indices():
                faces.append(
                    BakeFace(
                        vertices=mesh.triangle_positions(tri),
                        normals=mesh.triangle_normals(tri),
                        texcoords=mesh.texcoords[list(tri)],
                        lightcoords=mesh.triangle_lightcoords(tri),
                        material=prim.material,
                        lightmap=island.name,
                    )
                )
    return faces


class Scene:
    """Spatial index, base colors, options and temp lightmap of one bake.

    Parameters
    ----------
    opts : BakeOpts
        Active options. The iterative driver swaps this for a copy with
        a different ``max_samples``.
    parsed : ParsedScene
        Islands and metadata.
    temp_lightmap : dict[str, np.ndarray]
        Initial combined lightmap per island (usually black).
    texture_dir : str or Path, optional
        Directory for relative texture paths.

    Raises
    ------
    ValueError
        If a primitive references a material missing from the palette.
    """

    def __init__(
        self,
        opts: BakeOpts,
        parsed: ParsedScene,
        temp_lightmap: ColorMaps,
        texture_dir: str | Path | None = None,
    ) -> None:
        self.opts = opts
        self.parsed = parsed
        self.temp_lightmap = temp_lightmap

        faces = collect_bake_faces(parsed)
        self.faces = FaceIndex.build(faces)
        self.base_colors = self._load_base_colors(faces, texture_dir)

    @property
    def islands(self):
        return self.parsed.islands

    @property
    def metadata(self):
        return self.parsed.metadata

    def _load_base_colors(
        self,
        faces: list[BakeFace],
        texture_dir: str | Path | None,
    ) -> dict[str, np.ndarray]:
        materials = self.parsed.metadata.materials
        base_colors: dict[str, np.ndarray] = {}
        for name in sorted({face.material for face in faces}):
            if name not in materials:
                raise ValueError(f"Material not found in palette: {name!r}")
            base_colors[name] = load_base_color(materials[name].base_color, texture_dir)
        logger.debug("Loaded %d base-color rasters.", len(base_colors))
        return base_colors

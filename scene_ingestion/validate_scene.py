"""Validate assumptions the baker makes about a parsed scene.

- Lightmap coordinates (or texture coordinates, when a mesh has no
  dedicated lightmap UVs) lie in [0, 1], up to a small round-off leeway.
- Every primitive's material exists in the material palette.

All problems are collected and reported in one ``ValueError``.
"""

from __future__ import annotations

import logging

import numpy as np

from scene_ingestion.scene_types import ParsedScene

logger = logging.getLogger(__name__)

# Leeway for round-off errors in exported UVs.
LIGHTCOORD_TOLERANCE: float = 1e-7


def _lightcoords_in_range(uvs: np.ndarray) -> np.ndarray:
    return np.all((uvs >= -LIGHTCOORD_TOLERANCE) & (uvs <= 1.0 + LIGHTCOORD_TOLERANCE), axis=-1)


def _lightcoord_errors(parsed: ParsedScene) -> list[str]:
    """At most one error per island."""
    errors: list[str] = []
    for island in parsed.islands:
        for prim in island.primitives:
            uvs = prim.mesh.uv_for_lightmap()
            bad = ~_lightcoords_in_range(uvs)
            if np.any(bad):
                first = uvs[np.argmax(bad)]
                errors.append(f"{island.name}: invalid lightcoord: {first.tolist()}")
                break
    return errors


def _material_errors(parsed: ParsedScene) -> list[str]:
    errors: list[str] = []
    palette = parsed.metadata.materials
    for island in parsed.islands:
        for prim in island.primitives:
            if prim.material not in palette:
                errors.append(f"{island.name}: material not found in palette: {prim.material!r}")
    return errors


def validate_scene(parsed: ParsedScene) -> None:
    """Raise ``ValueError`` listing every problem found.

    Raises
    ------
    ValueError
        If any lightcoord is out of range or a material is undefined.
    """
    errors = _lightcoord_errors(parsed) + _material_errors(parsed)
    if errors:
        raise ValueError(f"{len(errors)} errors:\n" + "\n".join(errors))
    logger.debug("Scene validation passed (%d islands).", len(parsed.islands))

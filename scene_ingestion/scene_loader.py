"""Scene loader: YAML scene description plus mesh arrays.

Scene file layout::

    sky_color: [0.1, 0.1, 0.2]
    sky_box: null
    sun: {dir: [0, -1, -1], color: [3, 3, 3]}
    point_lights:
      - {pos: [0, 2, 0], color: [5, 4, 3], range: 10}
    materials:
      plaster: {base_color: "#dddddd"}
      lamp: {base_color: "#ffffff", emissive: {texture: "#ffffff", strength: 4}}
    islands:
      - name: floor
        primitives:
          - {material: plaster, mesh: meshes/floor.npz}

A ``mesh`` is either a path (relative to the scene file) to an ``.npz``
archive, or an inline mapping, with keys ``positions``, ``normals``,
``texcoords``, ``indices`` and optionally ``lightcoords``, ``tangent_u``,
``tangent_v``.

Primitives without a material use ``"default"``, which is added to the
palette as plain gray when the scene does not define it.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from bake_engine.constants import BakeOpts
from scene_ingestion.scene_types import (
    EmissiveDef,
    Island,
    MaterialDef,
    MeshBuffer,
    ParsedScene,
    PointLightDef,
    Primitive,
    SceneMetadata,
    SunDef,
)

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL = "default"
DEFAULT_BASE_COLOR = "#aaaaaa"

_REQUIRED_MESH_KEYS = ("positions", "normals", "texcoords", "indices")
_OPTIONAL_MESH_KEYS = ("lightcoords", "tangent_u", "tangent_v")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_scene(scene_path: str | Path) -> ParsedScene:
    """Load a scene description file.

    Parameters
    ----------
    scene_path : str or Path
        Path to the YAML scene file.

    Returns
    -------
    ParsedScene
        Islands and metadata. Not yet validated, see ``validate_scene``.

    Raises
    ------
    FileNotFoundError
        If the scene file or a referenced mesh file does not exist.
    ValueError
        If the scene is malformed.
    """
    scene_path = Path(scene_path)
    if not scene_path.exists():
        raise FileNotFoundError(f"Scene file not found: {scene_path}")

    logger.info("Loading scene: %s", scene_path)
    with open(scene_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Scene file must contain a mapping: {scene_path}")

    parsed = parse_scene_dict(raw, base_dir=scene_path.parent)
    logger.info("Scene summary: %s", parsed.summary())
    return parsed


def parse_scene_dict(raw: dict[str, Any], base_dir: str | Path = ".") -> ParsedScene:
    """Build a ``ParsedScene`` from an already-parsed mapping.

    Relative mesh paths are resolved against ``base_dir``.
    """
    base_dir = Path(base_dir)
    metadata = _parse_metadata(raw)

    islands: list[Island] = []
    seen: set[str] = set()
    for i, raw_island in enumerate(raw.get("islands") or []):
        island = _parse_island(raw_island, i, base_dir)
        if island.name in seen:
            raise ValueError(f"Duplicate island name: {island.name!r}")
        seen.add(island.name)
        islands.append(island)

    if not islands:
        raise ValueError("Scene contains no islands.")

    return ParsedScene(islands=islands, metadata=metadata)


def apply_bake_opts(metadata: SceneMetadata, opts: BakeOpts) -> None:
    """Override the scene's sky with the baking configuration's sky."""
    metadata.sky_color = np.asarray(opts.sky_color, dtype=np.float64)
    metadata.sky_box = opts.sky_box


def load_mesh(source: str | Path | dict[str, Any], base_dir: str | Path = ".") -> MeshBuffer:
    """Load a mesh from an ``.npz`` path or an inline mapping.

    Raises
    ------
    FileNotFoundError
        If a mesh file does not exist.
    ValueError
        On missing keys or inconsistent array shapes.
    """
    if isinstance(source, dict):
        arrays = source
        origin = "inline mesh"
    else:
        path = Path(source)
        if not path.is_absolute():
            path = Path(base_dir) / path
        if not path.exists():
            raise FileNotFoundError(f"Mesh file not found: {path}")
        with np.load(path) as npz:
            arrays = {key: npz[key] for key in npz.files}
        origin = str(path)

    missing = [key for key in _REQUIRED_MESH_KEYS if key not in arrays]
    if missing:
        raise ValueError(f"{origin}: missing mesh arrays {missing}")

    kwargs = {key: arrays[key] for key in _REQUIRED_MESH_KEYS}
    for key in _OPTIONAL_MESH_KEYS:
        if arrays.get(key) is not None:
            kwargs[key] = arrays[key]
    return MeshBuffer(**kwargs)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _vec3(value: Any, what: str) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"{what} must be a 3-vector, got {value!r}")
    return arr


def _parse_metadata(raw: dict[str, Any]) -> SceneMetadata:
    materials: dict[str, MaterialDef] = {}
    for name, raw_mat in (raw.get("materials") or {}).items():
        materials[str(name)] = _parse_material(str(name), raw_mat)
    if DEFAULT_MATERIAL not in materials:
        materials[DEFAULT_MATERIAL] = MaterialDef(base_color=DEFAULT_BASE_COLOR)

    sun_def = None
    raw_sun = raw.get("sun")
    if raw_sun is not None:
        direction = _vec3(raw_sun.get("dir"), "sun.dir")
        norm = np.linalg.norm(direction)
        if norm == 0.0:
            raise ValueError("sun.dir must be non-zero.")
        sun_def = SunDef(dir=direction / norm, color=_vec3(raw_sun.get("color"), "sun.color"))

    point_lights = []
    for i, raw_light in enumerate(raw.get("point_lights") or []):
        light_range = raw_light.get("range")
        point_lights.append(
            PointLightDef(
                pos=_vec3(raw_light.get("pos"), f"point_lights[{i}].pos"),
                color=_vec3(raw_light.get("color"), f"point_lights[{i}].color"),
                range=None if light_range is None else float(light_range),
            )
        )

    sky_color = raw.get("sky_color")
    return SceneMetadata(
        materials=materials,
        sun_def=sun_def,
        point_lights=point_lights,
        sky_color=np.zeros(3) if sky_color is None else _vec3(sky_color, "sky_color"),
        sky_box=raw.get("sky_box"),
    )


def _parse_material(name: str, raw_mat: Any) -> MaterialDef:
    if not isinstance(raw_mat, dict) or "base_color" not in raw_mat:
        raise ValueError(f"Material {name!r} needs a base_color.")

    emissive = None
    raw_emissive = raw_mat.get("emissive")
    if raw_emissive is not None:
        emissive = EmissiveDef(
            texture=str(raw_emissive.get("texture", raw_mat["base_color"])),
            strength=float(raw_emissive.get("strength", 1.0)),
        )
    normal_map = raw_mat.get("normal_map")
    return MaterialDef(
        base_color=str(raw_mat["base_color"]),
        emissive=emissive,
        normal_map=None if normal_map is None else str(normal_map),
    )


def _parse_island(raw_island: Any, index: int, base_dir: Path) -> Island:
    if not isinstance(raw_island, dict) or "name" not in raw_island:
        raise ValueError(f"islands[{index}] needs a name.")

    # Island names double as lightmap handles.
    name = sys.intern(str(raw_island["name"]))
    primitives = []
    for j, raw_prim in enumerate(raw_island.get("primitives") or []):
        if "mesh" not in raw_prim:
            raise ValueError(f"{name}: primitives[{j}] needs a mesh.")
        primitives.append(
            Primitive(
                material=str(raw_prim.get("material") or DEFAULT_MATERIAL),
                mesh=load_mesh(raw_prim["mesh"], base_dir),
            )
        )

    island = Island(name=name, primitives=primitives)
    logger.debug(
        "Island %s: %d primitives, %d triangles, %.2f m²",
        name,
        len(primitives),
        island.num_triangles(),
        island.surface_area(),
    )
    return island

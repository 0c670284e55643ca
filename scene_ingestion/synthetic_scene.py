"""Parametric test scenes built from axis-aligned quads.

Scenes
------
quad
    One upward-facing 1×1 m quad in the y = 0 plane, lit by a sun
    straight overhead (``dir = (0, -1, 0)``). Nothing occludes it.
boxed_quad
    The same quad fully enclosed by a closed box with outward-facing
    normals, so every ray leaving the quad hits a back face.
room
    A closed room with inward-facing walls, a raised table-top quad and
    point lights below the ceiling.

Every face of a box gets its own cell of a 3×2 lightmap atlas, with a
small margin so neighboring faces never share texels.
"""

from __future__ import annotations

import logging

import numpy as np

from scene_ingestion.scene_types import (
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

ATLAS_MARGIN = 0.05


def generate_synthetic_scene(kind: str, **params) -> ParsedScene:
    """Build a synthetic scene by name.

    Parameters
    ----------
    kind : str
        One of ``"quad"``, ``"boxed_quad"``, ``"room"``.
    **params
        Forwarded to the scene builder.

    Raises
    ------
    ValueError
        If ``kind`` is not recognized.
    """
    generators = {
        "quad": quad_scene,
        "boxed_quad": boxed_quad_scene,
        "room": room_scene,
    }

    if kind not in generators:
        raise ValueError(
            f"Unknown synthetic scene '{kind}'. "
            f"Valid options: {list(generators.keys())}"
        )

    logger.info("Generating synthetic scene: %s", kind)
    return generators[kind](**params)


# ---------------------------------------------------------------------------
# Mesh Builders
# ---------------------------------------------------------------------------


def quad_mesh(
    origin,
    edge_u,
    edge_v,
    normal,
    uv_origin=(0.0, 0.0),
    uv_size=(1.0, 1.0),
) -> MeshBuffer:
    """Two-triangle quad spanning ``origin + s·edge_u + t·edge_v``.

    Lightmap UVs map (s, t) ∈ [0, 1]² onto the rectangle
    ``uv_origin + (s, t)·uv_size``; texture coordinates are (s, t).
    """
    origin = np.asarray(origin, dtype=np.float64)
    edge_u = np.asarray(edge_u, dtype=np.float64)
    edge_v = np.asarray(edge_v, dtype=np.float64)
    normal = np.asarray(normal, dtype=np.float64)
    normal = normal / np.linalg.norm(normal)

    st = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    positions = origin + st[:, :1] * edge_u + st[:, 1:] * edge_v
    lightcoords = np.asarray(uv_origin) + st * np.asarray(uv_size)

    return MeshBuffer(
        positions=positions,
        normals=np.tile(normal, (4, 1)),
        texcoords=st,
        indices=np.array([[0, 1, 2], [0, 2, 3]]),
        lightcoords=lightcoords,
        tangent_u=np.tile(edge_u / np.linalg.norm(edge_u), (4, 1)),
        tangent_v=np.tile(edge_v / np.linalg.norm(edge_v), (4, 1)),
    )


def merge_meshes(meshes: list[MeshBuffer]) -> MeshBuffer:
    """Concatenate meshes into one, offsetting indices."""
    offsets = np.cumsum([0] + [m.positions.shape[0] for m in meshes[:-1]])
    return MeshBuffer(
        positions=np.concatenate([m.positions for m in meshes]),
        normals=np.concatenate([m.normals for m in meshes]),
        texcoords=np.concatenate([m.texcoords for m in meshes]),
        indices=np.concatenate([m.indices + off for m, off in zip(meshes, offsets)]),
        lightcoords=np.concatenate([m.uv_for_lightmap() for m in meshes]),
        tangent_u=np.concatenate([m.tangent_u for m in meshes]),
        tangent_v=np.concatenate([m.tangent_v for m in meshes]),
    )


def box_mesh(lo, hi, inward: bool = False) -> MeshBuffer:
    """Closed axis-aligned box, one atlas cell per face.

    Normals point outward, or into the box if ``inward``.
    """
    x0, y0, z0 = np.asarray(lo, dtype=np.float64)
    x1, y1, z1 = np.asarray(hi, dtype=np.float64)
    dx, dy, dz = x1 - x0, y1 - y0, z1 - z0

    # (origin, edge_u, edge_v, outward normal)
    faces = [
        ((x1, y0, z0), (0, 0, dz), (0, dy, 0), (1, 0, 0)),
        ((x0, y0, z0), (0, 0, dz), (0, dy, 0), (-1, 0, 0)),
        ((x0, y1, z0), (dx, 0, 0), (0, 0, dz), (0, 1, 0)),
        ((x0, y0, z0), (dx, 0, 0), (0, 0, dz), (0, -1, 0)),
        ((x0, y0, z1), (dx, 0, 0), (0, dy, 0), (0, 0, 1)),
        ((x0, y0, z0), (dx, 0, 0), (0, dy, 0), (0, 0, -1)),
    ]
    sign = -1.0 if inward else 1.0
    cell = np.array([1.0 / 3.0, 1.0 / 2.0])
    quads = []
    for i, (origin, edge_u, edge_v, normal) in enumerate(faces):
        col, row = i % 3, i // 3
        quads.append(
            quad_mesh(
                origin,
                edge_u,
                edge_v,
                sign * np.asarray(normal, dtype=np.float64),
                uv_origin=(np.array([col, row]) + ATLAS_MARGIN) * cell,
                uv_size=(1.0 - 2.0 * ATLAS_MARGIN) * cell,
            )
        )
    return merge_meshes(quads)


def _floor_quad(size: float = 1.0, height: float = 0.0) -> MeshBuffer:
    """Upward-facing square in the plane y = ``height``."""
    return quad_mesh(
        origin=(0.0, height, 0.0),
        edge_u=(size, 0.0, 0.0),
        edge_v=(0.0, 0.0, size),
        normal=(0.0, 1.0, 0.0),
    )


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------


def quad_scene(
    size: float = 1.0,
    sun_color=(1.0, 1.0, 1.0),
    base_color: str = "#ffffff",
) -> ParsedScene:
    materials = {"white": MaterialDef(base_color=base_color)}
    metadata = SceneMetadata(
        materials=materials,
        sun_def=SunDef(
            dir=np.array([0.0, -1.0, 0.0]),
            color=np.asarray(sun_color, dtype=np.float64),
        ),
    )
    island = Island("quad", [Primitive("white", _floor_quad(size))])
    return ParsedScene(islands=[island], metadata=metadata)


def boxed_quad_scene(
    size: float = 1.0,
    margin: float = 0.5,
    sun_color=(1.0, 1.0, 1.0),
) -> ParsedScene:
    scene = quad_scene(size=size, sun_color=sun_color)
    scene.metadata.materials["box"] = MaterialDef(base_color="#808080")
    box = box_mesh(
        lo=(-margin, -margin, -margin),
        hi=(size + margin, margin, size + margin),
    )
    scene.islands.append(Island("box", [Primitive("box", box)]))
    return scene


def room_scene(
    width: float = 4.0,
    height: float = 3.0,
    depth: float = 4.0,
    light_color=(4.0, 4.0, 4.0),
    num_lights: int = 1,
) -> ParsedScene:
    materials = {
        "wall": MaterialDef(base_color="#cccccc"),
        "table": MaterialDef(base_color="#aa7744"),
    }
    spacing = width / (num_lights + 1)
    point_lights = [
        PointLightDef(
            pos=np.array([spacing * (i + 1), 0.8 * height, depth / 2.0]),
            color=np.asarray(light_color, dtype=np.float64),
            range=None,
        )
        for i in range(num_lights)
    ]
    metadata = SceneMetadata(materials=materials, point_lights=point_lights)

    walls = box_mesh(lo=(0.0, 0.0, 0.0), hi=(width, height, depth), inward=True)
    table = quad_mesh(
        origin=(width / 2.0 - 0.5, 0.75, depth / 2.0 - 0.5),
        edge_u=(1.0, 0.0, 0.0),
        edge_v=(0.0, 0.0, 1.0),
        normal=(0.0, 1.0, 0.0),
    )
    islands = [
        Island("walls", [Primitive("wall", walls)]),
        Island("table", [Primitive("table", table)]),
    ]
    return ParsedScene(islands=islands, metadata=metadata)

"""Scene description types: islands, primitives, meshes, materials, lights.

These types are produced by the scene loader (or the synthetic scene
builders) and consumed read-only by the baking engine.

Notes
-----
Vertex ordering of each triangle is preserved from the input. Lightmap
coordinates (``lightcoords``) live in [0, 1]²; when a mesh carries no
dedicated lightmap UVs its texture coordinates are used instead.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass
class MeshBuffer:
    """Indexed triangle mesh with per-vertex attributes.

    Attributes
    ----------
    positions : np.ndarray
        Vertex positions. Shape: (num_vertices, 3), dtype: float64.
    normals : np.ndarray
        Vertex normals. Shape: (num_vertices, 3), dtype: float64.
    texcoords : np.ndarray
        Texture coordinates. Shape: (num_vertices, 2), dtype: float64.
    indices : np.ndarray
        Triangle vertex indices. Shape: (num_triangles, 3), dtype: int64.
    lightcoords : np.ndarray or None
        Dedicated lightmap UVs in [0, 1]². Shape: (num_vertices, 2).
    tangent_u, tangent_v : np.ndarray or None
        Per-vertex tangent and bitangent. Shape: (num_vertices, 3).
    """

    positions: np.ndarray
    normals: np.ndarray
    texcoords: np.ndarray
    indices: np.ndarray
    lightcoords: np.ndarray | None = None
    tangent_u: np.ndarray | None = None
    tangent_v: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64)
        self.normals = np.asarray(self.normals, dtype=np.float64)
        self.texcoords = np.asarray(self.texcoords, dtype=np.float64)
        self.indices = np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)
        if self.lightcoords is not None:
            self.lightcoords = np.asarray(self.lightcoords, dtype=np.float64)
        if self.tangent_u is not None:
            self.tangent_u = np.asarray(self.tangent_u, dtype=np.float64)
        if self.tangent_v is not None:
            self.tangent_v = np.asarray(self.tangent_v, dtype=np.float64)
        self._check_shapes()

    def _check_shapes(self) -> None:
        """Raise ValueError on inconsistent attribute arrays."""
        n = self.positions.shape[0]
        expected = {
            "positions": (self.positions, 3),
            "normals": (self.normals, 3),
            "texcoords": (self.texcoords, 2),
            "lightcoords": (self.lightcoords, 2),
            "tangent_u": (self.tangent_u, 3),
            "tangent_v": (self.tangent_v, 3),
        }
        for name, (arr, width) in expected.items():
            if arr is None:
                continue
            if arr.ndim != 2 or arr.shape != (n, width):
                raise ValueError(
                    f"Mesh attribute '{name}' has shape {arr.shape}, expected ({n}, {width})"
                )
        if self.indices.size and (self.indices.min() < 0 or self.indices.max() >= n):
            raise ValueError(
                f"Mesh indices out of range [0, {n}): "
                f"min={self.indices.min()}, max={self.indices.max()}"
            )

    @property
    def num_triangles(self) -> int:
        return self.indices.shape[0]

    def iter_triangle_indices(self) -> Iterator[tuple[int, int, int]]:
        for i0, i1, i2 in self.indices:
            yield int(i0), int(i1), int(i2)

    def uv_for_lightmap(self) -> np.ndarray:
        """Lightmap UVs: dedicated lightcoords if present, else texcoords."""
        return self.lightcoords if self.lightcoords is not None else self.texcoords

    def triangle_lightcoords(self, tri: tuple[int, int, int]) -> np.ndarray:
        """Lightmap UVs of one triangle. Shape: (3, 2)."""
        return self.uv_for_lightmap()[list(tri)]

    def triangle_positions(self, tri: tuple[int, int, int]) -> np.ndarray:
        return self.positions[list(tri)]

    def triangle_normals(self, tri: tuple[int, int, int]) -> np.ndarray:
        return self.normals[list(tri)]

    def triangle_tangents(self, tri: tuple[int, int, int]) -> np.ndarray | None:
        return None if self.tangent_u is None else self.tangent_u[list(tri)]

    def triangle_bitangents(self, tri: tuple[int, int, int]) -> np.ndarray | None:
        return None if self.tangent_v is None else self.tangent_v[list(tri)]

    def face_areas(self) -> np.ndarray:
        """Area of every triangle [m²]. Shape: (num_triangles,)."""
        v0 = self.positions[self.indices[:, 0]]
        v1 = self.positions[self.indices[:, 1]]
        v2 = self.positions[self.indices[:, 2]]
        # |e1 × e2| = 2 · area
        return 0.5 * np.linalg.norm(np.cross(v1 - v0, v2 - v0), axis=1)


@dataclass
class Primitive:
    """One triangle mesh plus its material reference."""

    material: str
    mesh: MeshBuffer


@dataclass
class Island:
    """Named group of primitives sharing one lightmap.

    ``name`` doubles as the lightmap handle.
    """

    name: str
    primitives: list[Primitive] = field(default_factory=list)

    def surface_area(self) -> float:
        return float(sum(p.mesh.face_areas().sum() for p in self.primitives))

    def num_triangles(self) -> int:
        return sum(p.mesh.num_triangles for p in self.primitives)


# ---------------------------------------------------------------------------
# Materials and Lights
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmissiveDef:
    texture: str
    strength: float


@dataclass(frozen=True)
class MaterialDef:
    """Material palette entry.

    Attributes
    ----------
    base_color : str
        Texture handle: ``#rrggbb`` or an image path.
    emissive : EmissiveDef or None
        Flat emissive strength (and its texture handle), if any.
    normal_map : str or None
        Normal map handle. Passed through, not used while baking.
    """

    base_color: str
    emissive: EmissiveDef | None = None
    normal_map: str | None = None


@dataclass(frozen=True)
class SunDef:
    """Directional sun light.

    ``dir`` is the unit direction the light travels in (from the sun
    towards the scene), so ``-dir`` points at the sun.
    """

    dir: np.ndarray
    color: np.ndarray


@dataclass(frozen=True)
class PointLightDef:
    pos: np.ndarray
    color: np.ndarray
    range: float | None = None


@dataclass
class SceneMetadata:
    """Everything about a scene that is not island geometry."""

    materials: dict[str, MaterialDef] = field(default_factory=dict)
    sun_def: SunDef | None = None
    point_lights: list[PointLightDef] = field(default_factory=list)
    sky_color: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sky_box: str | None = None


@dataclass
class ParsedScene:
    """Islands plus metadata, as handed to the baker."""

    islands: list[Island]
    metadata: SceneMetadata

    def island(self, name: str) -> Island:
        for island in self.islands:
            if island.name == name:
                return island
        raise KeyError(name)

    def summary(self) -> dict:
        return {
            "num_islands": len(self.islands),
            "num_primitives": sum(len(i.primitives) for i in self.islands),
            "num_triangles": sum(i.num_triangles() for i in self.islands),
            "num_materials": len(self.metadata.materials),
            "num_point_lights": len(self.metadata.point_lights),
            "has_sun": self.metadata.sun_def is not None,
        }

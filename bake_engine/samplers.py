"""Monte-Carlo light samplers.

Each sampler evaluates one radiance sample at a surface point::

    sampler(rand, scene, primitive, point) -> np.ndarray | None

``rand`` is a 2D value in [0, 1)², ``point`` the rasterizer's
``TexelSample`` (position, normal, tangent frame). The return value is a
linear RGB color, or None for "do not record this sample", which is
distinct from a recorded black sample.

Visibility Rule
---------------
A ray hit is a valid sampling context iff ``hit_normal · ray_dir < 0``,
i.e. the ray reaches the front face of what it hits. A ray leaving a
sample point that is buried inside other geometry hits back faces; such
samples are discarded instead of recorded as black, so that darkness
inside closed objects does not leak into neighboring texels.

Notes
-----
The sun samplers return black without tracing a shadow ray when the
surface faces away from the sun. Such texels are therefore recorded as
valid black even where the visibility rule would discard them.
"""

from __future__ import annotations

import enum
from collections.abc import Callable

import numpy as np

from bake_engine.constants import OFFSET
from bake_engine.lightmap_utils import at_uv_nearest_clamp, at_uv_nearest_wrap
from bake_engine.rasterizer import TexelSample
from bake_engine.sampling import cosine_hemisphere, disk_with_normal
from bake_engine.scene import Scene
from scene_ingestion.scene_types import Primitive

SampleFn = Callable[[np.ndarray, Scene, Primitive, TexelSample], "np.ndarray | None"]

_BLACK = np.zeros(3)
_BLACK.setflags(write=False)
_WHITE = np.ones(3)
_WHITE.setflags(write=False)


class SamplerKind(enum.Enum):
    """Light channels that can be integrated over the scene."""

    OCCUPANCY = "occupancy"
    VALIDITY = "validity"
    SUN = "sun"
    SUN_MASK = "sun_mask"
    POINT_LIGHTS = "point_lights"
    EMISSIVE = "emissive"
    INDIRECT = "indirect"
    AREA_SPHX = "area_sphx"
    AREA_SPHY = "area_sphy"


def is_valid_sampling_point(ray_dir: np.ndarray, hit_normal: np.ndarray) -> bool:
    """True iff the ray approaches the hit surface from its front side."""
    return float(np.dot(hit_normal, ray_dir)) < 0.0


def _ray_origin(point: TexelSample) -> np.ndarray:
    # Offset along the normal against self-intersection (shadow acne).
    return point.position + OFFSET * point.normal


# ---------------------------------------------------------------------------
# Debug Channels
# ---------------------------------------------------------------------------


def sample_occupancy(rand, scene, primitive, point) -> np.ndarray | None:
    """White for every sample: sample counts reveal texel coverage."""
    return _WHITE


def sample_validity(rand, scene, primitive, point) -> np.ndarray | None:
    """Probe along the normal: black if it hits a back face, else white."""
    hit = scene.faces.intersect(_ray_origin(point), point.normal)
    if hit is not None and not is_valid_sampling_point(point.normal, hit.normal):
        return _BLACK
    return _WHITE


# ---------------------------------------------------------------------------
# Direct Light
# ---------------------------------------------------------------------------


def _sample_sun(rand: np.ndarray, scene: Scene, point: TexelSample, with_cosine: bool) -> np.ndarray | None:
    sun = scene.metadata.sun_def
    if sun is None:
        return None

    # Intensity uses the unjittered direction: no noise in fully lit areas.
    to_sun = -sun.dir
    cos_theta = float(np.dot(point.normal, to_sun))
    if cos_theta < 0.0:
        return _BLACK

    jittered = to_sun + scene.opts.sun_angular_radius_rad * disk_with_normal(rand, to_sun)
    jittered = jittered / np.linalg.norm(jittered)

    hit = scene.faces.intersect(_ray_origin(point), jittered)
    if hit is not None:
        return _BLACK if is_valid_sampling_point(jittered, hit.normal) else None
    return sun.color * cos_theta if with_cosine else sun.color


def sample_sun(rand, scene, primitive, point) -> np.ndarray | None:
    """Sun light weighted by cos θ, with a jittered shadow ray."""
    return _sample_sun(rand, scene, point, with_cosine=True)


def sample_sun_mask(rand, scene, primitive, point) -> np.ndarray | None:
    """Unoccluded sun color without cos θ (applied later at shading time)."""
    return _sample_sun(rand, scene, point, with_cosine=False)


def _sample_point_light(scene: Scene, light, point: TexelSample) -> np.ndarray | None:
    to_light = light.pos - point.position
    dist2 = float(np.dot(to_light, to_light))
    light_dist = np.sqrt(dist2)
    to_light = to_light / light_dist
    cos_theta = float(np.dot(point.normal, to_light))

    if cos_theta < 0.0:
        return _BLACK

    hit = scene.faces.intersect(_ray_origin(point), to_light)
    if hit is not None:
        if not is_valid_sampling_point(to_light, hit.normal):
            return None
        if hit.distance < light_dist:
            # Occluder between point and light.
            return _BLACK
    return light.color * (cos_theta / dist2)


def sample_point_lights(rand, scene, primitive, point) -> np.ndarray | None:
    """Sum of all point lights; None if every light discarded the sample."""
    total = None
    for light in scene.metadata.point_lights:
        color = _sample_point_light(scene, light, point)
        if color is not None:
            total = color if total is None else total + color
    return total


def sample_emissive(rand, scene, primitive, point) -> np.ndarray | None:
    emissive = scene.metadata.materials[primitive.material].emissive
    if emissive is None:
        return None
    return np.full(3, emissive.strength)


# ---------------------------------------------------------------------------
# Indirect Light
# ---------------------------------------------------------------------------


def _incoming_indirect(rand: np.ndarray, scene: Scene, point: TexelSample) -> tuple[np.ndarray, np.ndarray | None]:
    """Trace one cosine-weighted bounce ray. Returns (direction, radiance)."""
    direction = cosine_hemisphere(rand, point.normal)
    hit = scene.faces.intersect(_ray_origin(point), direction)
    if hit is None:
        return direction, scene.metadata.sky_color
    if not is_valid_sampling_point(direction, hit.normal):
        return direction, None
    light = at_uv_nearest_clamp(scene.temp_lightmap[hit.lightmap], hit.lightcoord)
    base_color = at_uv_nearest_wrap(scene.base_colors[hit.material], hit.texcoord)
    return direction, light * base_color * scene.opts.reflectivity_factor


def sample_indirect(rand, scene, primitive, point) -> np.ndarray | None:
    """Previous bounce's light reflected toward the point, or sky on a miss."""
    return _incoming_indirect(rand, scene, point)[1]


def sample_area_sphx(rand, scene, primitive, point) -> np.ndarray | None:
    """Indirect light projected on the tangent direction (SH-X)."""
    direction, color = _incoming_indirect(rand, scene, point)
    if color is None:
        return None
    return color * float(np.dot(direction, point.tangent))


def sample_area_sphy(rand, scene, primitive, point) -> np.ndarray | None:
    """Indirect light projected on the bitangent direction (SH-Y)."""
    direction, color = _incoming_indirect(rand, scene, point)
    if color is None:
        return None
    return color * float(np.dot(direction, point.bitangent))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_SAMPLERS: dict[SamplerKind, SampleFn] = {
    SamplerKind.OCCUPANCY: sample_occupancy,
    SamplerKind.VALIDITY: sample_validity,
    SamplerKind.SUN: sample_sun,
    SamplerKind.SUN_MASK: sample_sun_mask,
    SamplerKind.POINT_LIGHTS: sample_point_lights,
    SamplerKind.EMISSIVE: sample_emissive,
    SamplerKind.INDIRECT: sample_indirect,
    SamplerKind.AREA_SPHX: sample_area_sphx,
    SamplerKind.AREA_SPHY: sample_area_sphy,
}


def sampler_for(kind: SamplerKind) -> SampleFn:
    """Sampler function of a channel. Resolved once per integration pass."""
    return _SAMPLERS[kind]

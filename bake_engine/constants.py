"""Baking constants, bake options, and configuration loader.

Bake options are persisted per scene as a YAML file (``baking.yaml``).
Absent keys fall back to defaults, unknown keys are rejected. This module
provides a typed, validated, immutable interface to those options.

Notes
-----
The options are loaded once per bake and never mutated while baking.
The iterative driver swaps in a ``dataclasses.replace``'d copy with a
larger sample budget instead.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import platform
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import numpy as np
import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Baking Constants
# ---------------------------------------------------------------------------

# Shadow rays start at a small offset from the emanating surface
# to avoid shadow acne.
OFFSET: float = 1.0 / 8192.0

# Clamp for intermediate (bounce) lightmaps.
MAX_INTENSITY: float = 2.0

# Superblock edge length: sample-jitter decorrelation and box-filter size.
SUPERBLK: int = 3

# Number of independent resample streams per texel accumulator.
NUM_RESAMPLE: int = 3

# Scale applied to the sRGB confidence-interval diagonal.
ERROR_SCALE: float = 1.0 / 4.0

# Error is re-estimated every this many samples.
ERROR_CHECK_INTERVAL: int = 25

# Sample budget of the first iterative step, doubled by every advance().
SAMPLES_STEP: int = SUPERBLK * SUPERBLK

# Iterative baking stops once the budget reaches this ceiling.
ITERATIVE_SAMPLE_CEILING: int = 3000

DEFAULT_OPTS_FILENAME = "baking.yaml"


# ---------------------------------------------------------------------------
# Bake Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BakeOpts:
    """Options for lightmap baking.

    Attributes
    ----------
    max_lightmap_size : int
        Maximum lightmap width and height in pixels (e.g. 4096).
    lightmap_pix_per_m : float
        Approximate lightmap pixels per meter.
    fake_ambient : tuple[float, float, float]
        Tiny amount of fake ambient light for extremely dark areas.
        Reserved, not used by the sampling pipeline.
    max_samples : int
        Maximum number of samples per texel.
    min_samples : int
        Samples drawn before the error estimate may stop a texel early.
    target_error : float
        Per-texel error below which sampling stops.
    sun_diam_deg : float
        Angular diameter of the sun [deg].
    reflectivity_factor : float
        Scales diffuse reflectivity for indirect light (0..1). Real-world
        white plaster reflects only ~50% of light but is authored as a 100%
        white texture. Lower yields stronger ambient occlusion, higher a
        flatter, lighter look.
    indirect_depth : int
        Number of indirect bounce iterations.
    sky_color : tuple[float, float, float]
        Radiance of rays escaping the scene (linear RGB).
    sky_box : str or None
        Optional sky box texture handle, passed through to the scene metadata.
    filter : bool
        Denoise intermediate indirect lightmaps with the superblock filter.
    spherical_harmonics : bool
        Also bake the first-order directional SH-X / SH-Y channels.
    num_workers : int or None
        Worker threads for integration. None uses all available CPUs.
    """

    max_lightmap_size: int = 2048
    lightmap_pix_per_m: float = 8.0
    fake_ambient: tuple[float, float, float] = (0.001, 0.001, 0.001)
    max_samples: int = 300
    min_samples: int = 25
    target_error: float = 0.05
    sun_diam_deg: float = 0.54
    reflectivity_factor: float = 0.5
    indirect_depth: int = 3
    sky_color: tuple[float, float, float] = (0.0, 0.0, 0.0)
    sky_box: str | None = None
    filter: bool = True
    spherical_harmonics: bool = False
    num_workers: int | None = None

    @property
    def sun_angular_radius_rad(self) -> float:
        """Half angular diameter of the sun in radians."""
        return float(np.radians(self.sun_diam_deg / 2.0))

    def resolved_num_workers(self) -> int:
        """Worker pool size: configured value, else available CPU parallelism."""
        if self.num_workers is not None:
            return self.num_workers
        return os.cpu_count() or 1

    def to_dict(self) -> dict[str, Any]:
        """Plain-Python representation, suitable for YAML / JSON."""
        out = dataclasses.asdict(self)
        out["fake_ambient"] = list(self.fake_ambient)
        out["sky_color"] = list(self.sky_color)
        return out


_COLOR_FIELDS = ("fake_ambient", "sky_color")
_INT_FIELDS = ("max_lightmap_size", "max_samples", "min_samples", "indirect_depth")
_FLOAT_FIELDS = (
    "lightmap_pix_per_m",
    "target_error",
    "sun_diam_deg",
    "reflectivity_factor",
)
_BOOL_FIELDS = ("filter", "spherical_harmonics")


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def bake_opts_from_dict(raw: dict[str, Any] | None) -> BakeOpts:
    """Build validated bake options from a (possibly partial) mapping.

    Parameters
    ----------
    raw : dict or None
        Parsed YAML mapping. Absent keys take their defaults.

    Returns
    -------
    BakeOpts
        Fully populated options.

    Raises
    ------
    ValueError
        On unknown keys or invalid values.
    """
    raw = dict(raw or {})
    known = {f.name for f in fields(BakeOpts)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown bake option(s): {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _COLOR_FIELDS:
            kwargs[key] = _parse_color(key, value)
        elif key in _INT_FIELDS:
            kwargs[key] = int(value)
        elif key in _FLOAT_FIELDS:
            kwargs[key] = float(value)
        elif key in _BOOL_FIELDS:
            kwargs[key] = bool(value)
        elif key == "sky_box":
            kwargs[key] = None if value is None else str(value)
        elif key == "num_workers":
            kwargs[key] = None if value is None else int(value)

    opts = BakeOpts(**kwargs)
    _validate_opts(opts)
    return opts


def load_bake_opts(config_path: str | Path) -> BakeOpts:
    """Load bake options from YAML, creating a default file if absent.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML options file.

    Returns
    -------
    BakeOpts
        Validated bake options.

    Raises
    ------
    ValueError
        If the file contains unknown keys or invalid values.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        logger.info("No bake options at %s, writing defaults.", config_path)
        save_bake_opts(config_path, BakeOpts())

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if raw is not None and not isinstance(raw, dict):
        raise ValueError(f"Bake options must be a mapping: {config_path}")

    logger.info("Loading bake options from: %s", config_path)
    opts = bake_opts_from_dict(raw)
    logger.debug("Bake options: %s", opts)
    return opts


def save_bake_opts(config_path: str | Path, opts: BakeOpts) -> Path:
    """Write bake options as YAML. Returns the written path."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(opts.to_dict(), f, sort_keys=False)
    return config_path


def _parse_color(key: str, value: Any) -> tuple[float, float, float]:
    try:
        rgb = tuple(float(v) for v in value)
    except TypeError as exc:
        raise ValueError(f"{key} must be an RGB triple, got {value!r}") from exc
    if len(rgb) != 3:
        raise ValueError(f"{key} must have 3 components, got {len(rgb)}")
    return rgb  # type: ignore[return-value]


def _validate_opts(opts: BakeOpts) -> None:
    """Validate constraints on bake option values.

    Raises
    ------
    ValueError
        If any value is invalid.
    """
    if opts.max_lightmap_size < 1:
        raise ValueError(f"max_lightmap_size must be >= 1, got {opts.max_lightmap_size}")
    if opts.lightmap_pix_per_m <= 0:
        raise ValueError("lightmap_pix_per_m must be positive.")
    if opts.max_samples < 1:
        raise ValueError(f"max_samples must be >= 1, got {opts.max_samples}")
    if opts.min_samples < 0:
        raise ValueError("min_samples cannot be negative.")
    if opts.min_samples > opts.max_samples:
        raise ValueError(
            f"min_samples ({opts.min_samples}) exceeds max_samples ({opts.max_samples})"
        )
    if opts.target_error < 0:
        raise ValueError("target_error cannot be negative.")
    if opts.sun_diam_deg < 0:
        raise ValueError("sun_diam_deg cannot be negative.")
    if not (0.0 <= opts.reflectivity_factor <= 1.0):
        raise ValueError(
            f"reflectivity_factor must be in [0, 1], got {opts.reflectivity_factor}"
        )
    if opts.indirect_depth < 0:
        raise ValueError("indirect_depth cannot be negative.")
    if opts.num_workers is not None and opts.num_workers < 1:
        raise ValueError(f"num_workers must be >= 1, got {opts.num_workers}")

    logger.debug("Bake option validation passed.")


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  CPUs:      %s", os.cpu_count())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("=" * 70)

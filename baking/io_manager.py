"""Data I/O manager: persist baked lightmaps as PNG images and NumPy arrays.

File layout under output_dir/:
    {island}.area_sphz.png   : Combined area light, sRGB 8-bit
    {island}.sun_mask.png    : Unoccluded sun light, sRGB 8-bit
    {island}.area_sphx.png   : SH-X coefficients as 0.5·v + 0.5 (if enabled)
    {island}.area_sphy.png   : SH-Y coefficients as 0.5·v + 0.5 (if enabled)
    {island}.validity.png    : Debug: black where sample points are invalid
    {island}.occupancy.png   : Debug: sample count / max sample count
    {island}.{channel}_samples.png, {island}.{channel}_error.png
                             : Debug: per-channel sample counts and errors
    lightmaps.npz            : Averaged colors and sample counts per channel
    bake_metadata.json       : Bake options, timing, statistics (JSON)

Images are written row-major with row 0 at v = 0.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import matplotlib.image as mpimg
import numpy as np

from bake_engine.accumulator import Lightmap
from bake_engine.color import linear_to_srgb
from bake_engine.lightmap_utils import unweigh

logger = logging.getLogger(__name__)

COLOR_CHANNELS = ("area_sphz", "sun_mask")
SH_CHANNELS = ("area_sphx", "area_sphy")
DEBUG_CHANNELS = ("validity", "occupancy")

NPZ_FILENAME = "lightmaps.npz"
METADATA_FILENAME = "bake_metadata.json"

_KEY_SEP = "__"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _to_u8(values: np.ndarray) -> np.ndarray:
    return np.round(np.clip(values, 0.0, 1.0) * 255.0).astype(np.uint8)


def encode_color(lm: Lightmap) -> np.ndarray:
    """Unweighed linear color → 8-bit sRGB. Shape: (h, w, 3)."""
    return _to_u8(linear_to_srgb(unweigh(lm)))


def encode_sh(lm: Lightmap) -> np.ndarray:
    """Signed SH coefficients stored linearly as ``0.5·v + 0.5``."""
    return _to_u8(0.5 * unweigh(lm) + 0.5)


def encode_occupancy(lm: Lightmap) -> np.ndarray:
    """Sample count relative to the best-covered texel, as gray."""
    n = lm.num_samples().astype(np.float64)
    peak = n.max()
    frac = n / peak if peak > 0 else n
    return _to_u8(np.repeat(frac[..., None], 3, axis=2))


def encode_error(lm: Lightmap) -> np.ndarray:
    """Texel error relative to the largest error, black where undefined."""
    err = np.nan_to_num(lm.error(), nan=0.0)
    peak = err.max()
    frac = err / peak if peak > 0 else err
    return _to_u8(np.repeat(frac[..., None], 3, axis=2))


def _write_png(path: Path, rgb_u8: np.ndarray) -> Path:
    mpimg.imsave(path, rgb_u8)
    logger.debug("Saved %s: %dx%d", path.name, rgb_u8.shape[1], rgb_u8.shape[0])
    return path


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def save_lightmaps(output_dir: Path | str, state, debug: bool = False) -> list[Path]:
    """Save every baked channel of a ``BakeState`` to disk.

    Parameters
    ----------
    output_dir : Path or str
        Output directory (created if needed).
    state : BakeState
        Bake state after at least one pass.
    debug : bool
        Also write validity, occupancy, sample-count and error images.

    Returns
    -------
    list[Path]
        Paths to all saved files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []

    channels = {name: getattr(state, name) for name in COLOR_CHANNELS}
    if state.opts.spherical_harmonics:
        channels.update({name: getattr(state, name) for name in SH_CHANNELS})

    for channel, lightmaps in channels.items():
        encode = encode_sh if channel in SH_CHANNELS else encode_color
        for island, lm in lightmaps.items():
            saved.append(_write_png(output_dir / f"{island}.{channel}.png", encode(lm)))
            if debug:
                saved.append(
                    _write_png(
                        output_dir / f"{island}.{channel}_samples.png", encode_occupancy(lm)
                    )
                )
                saved.append(
                    _write_png(output_dir / f"{island}.{channel}_error.png", encode_error(lm))
                )

    if debug:
        for island, lm in state.validity.items():
            saved.append(_write_png(output_dir / f"{island}.validity.png", encode_color(lm)))
        for island, lm in state.occupancy.items():
            saved.append(_write_png(output_dir / f"{island}.occupancy.png", encode_occupancy(lm)))
        channels.update({name: getattr(state, name) for name in DEBUG_CHANNELS})

    # Averaged colors and sample counts (multiple arrays in one file)
    arrays: dict[str, np.ndarray] = {}
    for channel, lightmaps in channels.items():
        for island, lm in lightmaps.items():
            arrays[_KEY_SEP.join((channel, island, "avg"))] = unweigh(lm)
            arrays[_KEY_SEP.join((channel, island, "samples"))] = lm.num_samples()
    npz_path = output_dir / NPZ_FILENAME
    np.savez_compressed(npz_path, **arrays)
    saved.append(npz_path)

    # Metadata
    metadata = {
        "opts": state.opts.to_dict(),
        "passes": state.passes,
        "elapsed_s": state.elapsed_s,
        "num_rays": state.num_rays(),
        "lightmap_sizes": state.lightmap_sizes,
        "channels": list(channels),
    }
    meta_path = output_dir / METADATA_FILENAME
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(_sanitize_for_json(metadata), f, indent=2, ensure_ascii=False)
    saved.append(meta_path)

    logger.info("Saved %d files to %s", len(saved), output_dir)
    return saved


def load_lightmaps(output_dir: Path | str) -> dict:
    """Load previously saved lightmap arrays.

    Returns
    -------
    dict
        ``{channel: {island: {"avg": ndarray, "samples": ndarray}}}`` plus
        the key ``"metadata"`` holding the parsed JSON (empty if absent).

    Raises
    ------
    FileNotFoundError
        If the directory or its ``lightmaps.npz`` does not exist.
    """
    output_dir = Path(output_dir)
    npz_path = output_dir / NPZ_FILENAME
    if not npz_path.exists():
        raise FileNotFoundError(f"Lightmap archive not found: {npz_path}")

    data: dict = {}
    with np.load(npz_path) as npz:
        for key in npz.files:
            channel, rest = key.split(_KEY_SEP, 1)
            island, kind = rest.rsplit(_KEY_SEP, 1)
            data.setdefault(channel, {}).setdefault(island, {})[kind] = npz[key]

    meta_path = output_dir / METADATA_FILENAME
    if meta_path.exists():
        with open(meta_path, "r", encoding="utf-8") as f:
            data["metadata"] = json.load(f)
    else:
        logger.warning("Missing file: %s", meta_path)
        data["metadata"] = {}

    logger.info("Loaded lightmaps from %s (%d channels)", output_dir, len(data) - 1)
    return data


def _sanitize_for_json(obj: object) -> object:
    """Recursively convert NumPy types and other non-JSON types to Python natives."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    return obj

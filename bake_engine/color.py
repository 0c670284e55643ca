"""Color space helpers (sRGB transfer function, hex color codes)."""

from __future__ import annotations

import numpy as np


def linear_to_srgb(values: np.ndarray | float) -> np.ndarray:
    """Encode linear intensities with the sRGB transfer function.

    Negative values (e.g. signed spherical-harmonic coefficients) are
    encoded symmetrically: ``-srgb(|v|)``.
    """
    v = np.asarray(values, dtype=np.float64)
    a = np.abs(v)
    encoded = np.where(
        a <= 0.0031308,
        12.92 * a,
        1.055 * np.power(a, 1.0 / 2.4) - 0.055,
    )
    return np.copysign(encoded, v)


def srgb_to_linear(values: np.ndarray | float) -> np.ndarray:
    """Decode sRGB-encoded values in [0, 1] to linear intensities."""
    v = np.asarray(values, dtype=np.float64)
    return np.where(v <= 0.04045, v / 12.92, np.power((v + 0.055) / 1.055, 2.4))


def parse_hex_color(code: str) -> np.ndarray:
    """Parse ``#rrggbb`` into a linear RGB color.

    Raises
    ------
    ValueError
        If the code is not a 6-digit hex color.
    """
    digits = code.lstrip("#")
    if len(digits) != 6:
        raise ValueError(f"Invalid hex color: {code!r}")
    try:
        srgb = np.array(
            [int(digits[i : i + 2], 16) for i in (0, 2, 4)], dtype=np.float64
        ) / 255.0
    except ValueError as exc:
        raise ValueError(f"Invalid hex color: {code!r}") from exc
    return srgb_to_linear(srgb)

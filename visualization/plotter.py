"""Visualization module for baked lightmaps.

Generates diagnostic figures using matplotlib:
- Channel previews (sRGB-encoded color lightmaps)
- Sample-count heat maps (adaptive sampling coverage)
- Error heat maps (per-texel confidence-interval error)
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for headless rendering

import matplotlib.pyplot as plt
import numpy as np

from bake_engine.accumulator import Lightmap
from bake_engine.color import linear_to_srgb
from bake_engine.lightmap_utils import unweigh

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Color Configuration
# ---------------------------------------------------------------------------

_SAMPLES_CMAP = "viridis"
_ERROR_CMAP = "inferno"
_FACE_COLOR = "#1a1a2e"
_DPI = 150


def _style_axes(ax: plt.Axes, title: str) -> None:
    ax.set_xlabel("u [texel]", color="white")
    ax.set_ylabel("v [texel]", color="white")
    ax.set_title(title, fontsize=14, fontweight="bold", color="white")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444")


def _finish(fig: plt.Figure, output_path: Path | str | None, dpi: int, what: str) -> None:
    fig.tight_layout()
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, facecolor=fig.get_facecolor())
        logger.info("%s saved: %s", what, output_path)
    plt.close(fig)


def _heatmap(
    values: np.ndarray,
    cmap: str,
    label: str,
    title: str,
    output_path: Path | str | None,
    dpi: int,
    what: str,
) -> plt.Figure:
    fig, ax = plt.subplots(1, 1, figsize=(8, 7), facecolor=_FACE_COLOR)
    ax.set_facecolor(_FACE_COLOR)

    image = ax.imshow(
        np.ma.masked_invalid(values),
        cmap=cmap,
        origin="lower",
        interpolation="nearest",
    )
    cbar = fig.colorbar(image, ax=ax, label=label, shrink=0.8)
    cbar.ax.yaxis.label.set_color("white")
    cbar.ax.tick_params(colors="white")

    _style_axes(ax, title)
    _finish(fig, output_path, dpi, what)
    return fig


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def plot_lightmap(
    lm: Lightmap,
    title: str = "Lightmap",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the sRGB-encoded averages of a color lightmap.

    Parameters
    ----------
    lm : Lightmap
        Accumulated lightmap. Empty texels are leak-filtered, else black.
    title : str
        Figure title.
    output_path : Path or str, optional
        If provided, save figure to this path.
    dpi : int
        Figure resolution.

    Returns
    -------
    matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(1, 1, figsize=(8, 7), facecolor=_FACE_COLOR)
    ax.set_facecolor(_FACE_COLOR)

    rgb = np.clip(linear_to_srgb(unweigh(lm)), 0.0, 1.0)
    ax.imshow(rgb, origin="lower", interpolation="nearest")

    _style_axes(ax, title)
    _finish(fig, output_path, dpi, "Lightmap preview")
    return fig


def plot_sample_counts(
    lm: Lightmap,
    title: str = "Samples per Texel",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the number of recorded samples per texel; empty texels are masked."""
    counts = lm.num_samples().astype(np.float64)
    counts[counts == 0] = np.nan
    return _heatmap(counts, _SAMPLES_CMAP, "Samples", title, output_path, dpi, "Sample map")


def plot_error_map(
    lm: Lightmap,
    title: str = "Texel Error",
    output_path: Path | str | None = None,
    dpi: int = _DPI,
) -> plt.Figure:
    """Plot the per-texel error estimate; undefined texels are masked."""
    return _heatmap(lm.error(), _ERROR_CMAP, "Error", title, output_path, dpi, "Error map")


def generate_all_plots(
    state,
    output_dir: Path | str = "output",
    dpi: int = _DPI,
) -> list[Path]:
    """Generate diagnostic plots for every island of a bake.

    Parameters
    ----------
    state : BakeState
        Bake state after at least one pass.
    output_dir : Path or str
        Directory for output plots.
    dpi : int
        Figure resolution.

    Returns
    -------
    list[Path]
        Paths to all generated plot files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []

    for island, lm in state.area_sphz.items():
        p = output_dir / f"{island}.area_sphz.preview.png"
        plot_lightmap(lm, title=f"{island}: Area Light", output_path=p, dpi=dpi)
        saved.append(p)

        p = output_dir / f"{island}.area_sphz.samples_plot.png"
        plot_sample_counts(lm, title=f"{island}: Samples per Texel", output_path=p, dpi=dpi)
        saved.append(p)

        p = output_dir / f"{island}.area_sphz.error_plot.png"
        plot_error_map(lm, title=f"{island}: Texel Error", output_path=p, dpi=dpi)
        saved.append(p)

    for island, lm in state.sun_mask.items():
        p = output_dir / f"{island}.sun_mask.preview.png"
        plot_lightmap(lm, title=f"{island}: Sun Mask", output_path=p, dpi=dpi)
        saved.append(p)

    logger.info("Generated %d plots in %s", len(saved), output_dir)
    return saved

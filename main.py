"""Lightmap Baker: CLI entry point.

Bakes sun, point-light, emissive and multi-bounce indirect lighting of a
static scene into per-island lightmaps.

Usage
-----
    python main.py scenes/level.yaml --output baked
    python main.py scenes/level.yaml --iterative --workers 8
    python main.py --synthetic room --debug --plots
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="lightmap-baker",
        description="Lightmap Baker: progressive Monte-Carlo lightmap baking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py scenes/level.yaml\n"
            "  python main.py scenes/level.yaml --config baking.yaml --iterative\n"
            "  python main.py scenes/level.yaml --no-filter --max-samples 1000\n"
            "  python main.py --synthetic boxed_quad --debug\n"
        ),
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "scene",
        nargs="?",
        type=str,
        default=None,
        help="Path to the YAML scene description",
    )
    source.add_argument(
        "--synthetic",
        type=str,
        default=None,
        choices=["quad", "boxed_quad", "room"],
        help="Bake a built-in synthetic scene instead of a scene file",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to bake options YAML (default: baking.yaml next to the scene)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Output directory for lightmaps (default: output/)",
    )
    parser.add_argument(
        "--iterative",
        action="store_true",
        default=False,
        help="Progressive baking: save after every pass with a doubled sample budget",
    )
    parser.add_argument(
        "--filter",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Denoise indirect bounces with the superblock filter (default: from config)",
    )
    parser.add_argument(
        "--min-samples",
        type=int,
        default=None,
        help="Override minimum samples per texel",
    )
    parser.add_argument(
        "--max-samples",
        type=int,
        default=None,
        help="Override maximum samples per texel",
    )
    parser.add_argument(
        "--target-error",
        type=float,
        default=None,
        help="Override per-texel target error",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: from config, else all CPUs)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Also save validity, occupancy, sample-count and error images",
    )
    parser.add_argument(
        "--plots",
        action="store_true",
        default=False,
        help="Generate diagnostic matplotlib figures",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )

    return parser.parse_args(argv)


def _cli_overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "filter": args.filter,
        "min_samples": args.min_samples,
        "max_samples": args.max_samples,
        "target_error": args.target_error,
        "num_workers": args.workers,
    }
    return {k: v for k, v in overrides.items() if v is not None}


def run(args: argparse.Namespace) -> list[Path]:
    """Load scene and options, bake, and save. Returns the saved paths."""
    from bake_engine.constants import (
        DEFAULT_OPTS_FILENAME,
        bake_opts_from_dict,
        load_bake_opts,
        log_platform_info,
    )
    from baking.bake_state import BakeState
    from baking.io_manager import save_lightmaps
    from scene_ingestion.scene_loader import apply_bake_opts, load_scene
    from scene_ingestion.synthetic_scene import generate_synthetic_scene
    from scene_ingestion.validate_scene import validate_scene

    logger = logging.getLogger("lightmap_baker")
    log_platform_info()

    if args.synthetic:
        parsed = generate_synthetic_scene(args.synthetic)
        scene_dir = None
    else:
        scene_path = Path(args.scene)
        parsed = load_scene(scene_path)
        scene_dir = scene_path.parent

    if args.config:
        opts = load_bake_opts(args.config)
    elif scene_dir is not None:
        opts = load_bake_opts(scene_dir / DEFAULT_OPTS_FILENAME)
    else:
        opts = bake_opts_from_dict(None)

    overrides = _cli_overrides(args)
    if overrides:
        opts = dataclasses.replace(opts, **overrides)
        # Re-run validation on the overridden values.
        opts = bake_opts_from_dict(opts.to_dict())
        logger.info("CLI overrides: %s", overrides)

    apply_bake_opts(parsed.metadata, opts)
    validate_scene(parsed)

    output_dir = Path(args.output)
    state = BakeState(opts, parsed, texture_dir=scene_dir)

    saved: list[Path] = []
    if args.iterative:
        while not state.done():
            logger.info("Iterative pass %d: max_samples=%d", state.passes + 1, state.max_samples)
            state.advance()
            saved = save_lightmaps(output_dir, state, debug=args.debug)
    else:
        state.bake_full()
        saved = save_lightmaps(output_dir, state, debug=args.debug)

    if args.plots:
        from visualization.plotter import generate_all_plots

        saved.extend(generate_all_plots(state, output_dir=output_dir / "plots"))

    # Summary
    logger.info("=" * 60)
    logger.info("  BAKE COMPLETE")
    logger.info("=" * 60)
    logger.info("  Passes: %d, wall time: %.1f s", state.passes, state.elapsed_s)
    logger.info("  Recorded samples: %d", state.num_rays())
    for name, size in state.lightmap_sizes.items():
        logger.info("  %s: %dx%d", name, size, size)
    logger.info("  Output files (%d):", len(saved))
    for p in saved:
        logger.info("    → %s", p)
    logger.info("=" * 60)
    return saved


def main(argv: list[str] | None = None) -> int:
    """Main baking entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger = logging.getLogger("lightmap_baker")
    logger.info("=" * 60)
    logger.info("  Lightmap Baker")
    logger.info("=" * 60)

    try:
        run(args)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

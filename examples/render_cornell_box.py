#!/usr/bin/env python3
"""Render the Cornell box scene.

Creates the Cornell box, renders it with the chosen integrator on a pool of
worker threads and saves a tone mapped PNG.

Usage:
    python examples/render_cornell_box.py [options]

Options:
    --width WIDTH           Image width in pixels (default: 320)
    --height HEIGHT         Image height in pixels (default: 320)
    --samples SAMPLES       Samples per pixel (default: 16)
    --integrator NAME       ray-trace or path-trace (default: path-trace)
    --depth DEPTH           Maximum path depth (default: 5)
    --threads N             Worker threads (default: CPU count)
    --partition MODE        tiles or rows (default: tiles)
    --adaptive              Adaptive corner subdivision instead of --samples
    --adaptive-depth N      Maximum subdivision depth (default: 2)
    --output OUTPUT         Output file path (default: cornell_box.png)
    --cpu                   Force the CPU backend
    --quiet                 Only log warnings

Example:
    python examples/render_cornell_box.py --integrator ray-trace --samples 4
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import taichi as ti

import raymax

logger = logging.getLogger("render_cornell_box")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the Cornell box scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=320, help="Image width in pixels (default: 320)")
    parser.add_argument("--height", type=int, default=320, help="Image height in pixels (default: 320)")
    parser.add_argument("--samples", type=int, default=16, help="Samples per pixel (default: 16)")
    parser.add_argument(
        "--integrator",
        default="path-trace",
        choices=["ray-trace", "path-trace"],
        help="Light transport model (default: path-trace)",
    )
    parser.add_argument("--depth", type=int, default=5, help="Maximum path depth (default: 5)")
    parser.add_argument("--threads", type=int, default=os.cpu_count() or 1, help="Worker threads")
    parser.add_argument("--partition", default="tiles", choices=["tiles", "rows"], help="Partition mode")
    parser.add_argument("--adaptive", action="store_true", help="Adaptive sampling (ignores --samples)")
    parser.add_argument("--adaptive-depth", type=int, default=2, help="Maximum adaptive subdivision depth")
    parser.add_argument(
        "--random-spheres", type=int, default=0, help="Render N random spheres instead of the Cornell box"
    )
    parser.add_argument("--seed", type=int, default=0, help="Seed for the random scene and sampling")
    parser.add_argument("--output", type=str, default="cornell_box.png", help="Output file path")
    parser.add_argument("--cpu", action="store_true", help="Force the CPU backend")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings")
    return parser.parse_args()


def render_cornell_box(args: argparse.Namespace) -> Path:
    """Render the Cornell box scene and save to file.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports so that fields are declared after raymax.init()
    from raymax.core.config import RenderConfig
    from raymax.core.scheduler import RenderProgress, Renderer
    from raymax.preview.export import save_png
    from raymax.scene.cornell_box import create_cornell_box_scene
    from raymax.scene.generator import generate_random_scene

    config = RenderConfig.from_dict(
        {
            "integrator": args.integrator,
            "samples-per-pixel": args.samples,
            "max-depth": args.depth,
            "image-width": args.width,
            "image-height": args.height,
            "thread-count": args.threads,
            "partition-mode": args.partition,
            "seed": args.seed,
            "sampling": "adaptive" if args.adaptive else "stratified",
            "adaptive-max-depth": args.adaptive_depth,
        }
    )
    if args.random_spheres > 0:
        scene = generate_random_scene(num_spheres=args.random_spheres, seed=args.seed)
    else:
        scene = create_cornell_box_scene()

    def report(p: RenderProgress) -> None:
        if p.completed % 16 == 0 or p.completed == p.total:
            logger.info("Progress: %d/%d partitions (%.1f%%)", p.completed, p.total, 100.0 * p.fraction)

    framebuffer = Renderer().render(scene, config, progress=report)

    output_file = Path(args.output)
    save_png(framebuffer, output_file, tone_map="reinhard", gamma=2.2)
    logger.info("Saved to: %s", output_file.absolute())
    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    raymax.init(arch=ti.cpu if args.cpu else ti.gpu)

    from raymax.core.config import ConfigurationError

    try:
        render_cornell_box(args)
        return 0
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())

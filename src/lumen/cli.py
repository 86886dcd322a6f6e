#!/usr/bin/env python3
"""Render every enabled job of a JSON configuration file.

Usage:
    lumen2d [CONFIG] [options]
    python -m src.lumen.cli [CONFIG] [options]

Arguments:
    CONFIG              Configuration file (default: config.json)

Options:
    --arch {cpu,gpu}    Taichi backend (default: cpu)
    --batch-size SIZE   Strata per progress update (default: 16)
    --quiet             Suppress progress output

The whole file is parsed before anything renders; a malformed job aborts
the run. Disabled jobs and jobs without entities are skipped.

Example:
    lumen2d scenes/lens.json --arch gpu --batch-size 32
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import taichi as ti

if TYPE_CHECKING:
    from src.lumen.scene.config import RenderJob


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="lumen2d",
        description="Render 2D light transport scenes from a JSON job file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "config",
        nargs="?",
        default="config.json",
        help="Configuration file (default: config.json)",
    )
    parser.add_argument(
        "--arch",
        choices=("cpu", "gpu"),
        default="cpu",
        help="Taichi backend (default: cpu)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=16,
        help="Strata per progress update (default: 16)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    return parser.parse_args(argv)


def render_job(job: RenderJob, batch_size: int = 16, quiet: bool = False) -> Path:
    """Render one job and save its image.

    Args:
        job: The job to render.
        batch_size: Number of strata to render between progress updates.
        quiet: If True, suppress progress output.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.lumen.core.progressive import StratifiedRenderer
    from src.lumen.scene.manager import Scene

    if not quiet:
        print(
            f"Rendering {job.out} ({job.width}x{job.height}, "
            f"{job.stratification} strata, depth {job.max_depth}, "
            f"{len(job.entities)} entities)..."
        )

    scene = Scene(job.entities)
    renderer = StratifiedRenderer(job.width, job.height)

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            strata_per_sec = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} strata "
                f"({progress_pct:.1f}%) - {strata_per_sec:.1f} strata/s",
                end="",
                flush=True,
            )

    renderer.render(
        scene,
        stratification=job.stratification,
        max_depth=job.max_depth,
        batch_size=batch_size,
        callback=progress_callback,
    )

    if not quiet:
        print()  # Newline after progress

    output_file = Path(job.out)
    renderer.save_image(str(output_file))

    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    return output_file


def run(text: str, batch_size: int = 16, quiet: bool = False) -> int:
    """Parse a configuration and render its enabled jobs.

    Taichi must already be initialized.

    Args:
        text: Contents of the JSON configuration file.
        batch_size: Number of strata to render between progress updates.
        quiet: If True, suppress progress output.

    Returns:
        Process exit code.
    """
    from src.lumen.scene.config import parse_config

    if batch_size <= 0:
        print(f"Error: batch size = {batch_size} must be positive", file=sys.stderr)
        return 1

    try:
        jobs = parse_config(text)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for index, job in enumerate(jobs):
        if not job.enable:
            if not quiet:
                print(f"Skipping job {index} ({job.out}): disabled")
            continue
        if not job.entities:
            if not quiet:
                print(f"Skipping job {index} ({job.out}): no entities")
            continue
        try:
            render_job(job, batch_size=batch_size, quiet=quiet)
        except (OSError, RuntimeError, ValueError) as e:
            print(f"Error: job {index} ({job.out}): {e}", file=sys.stderr)
            return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        text = Path(args.config).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot open {args.config}: {e.strerror or e}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"Error: {args.config} is not valid UTF-8: {e.reason}", file=sys.stderr)
        return 1

    arch = ti.gpu if args.arch == "gpu" else ti.cpu
    ti.init(arch=arch, default_fp=ti.f64)
    if not args.quiet:
        print(f"Using {args.arch.upper()} backend")

    return run(text, batch_size=args.batch_size, quiet=args.quiet)


if __name__ == "__main__":
    sys.exit(main())

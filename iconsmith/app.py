"""Command-line entry point: turns images and sprite sheets into styled icons."""

import argparse
import logging
import sys
import time
from concurrent.futures import wait
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from iconsmith.config import config
from iconsmith.errors import IconsmithError
from iconsmith.imaging.pipeline import IconPipeline
from iconsmith.imaging.slicing import extract_slice, grid_slices, place_in_cell, slice_sheet
from iconsmith.io.codec import load_image, save_image
from iconsmith.io.indexer import find_images
from iconsmith.io.presets import PresetManager, merge_effects
from iconsmith.logging_setup import setup_logging
from iconsmith.models import EffectConfig, PixelBuffer

log = logging.getLogger(__name__)


def parse_grid(value: str) -> Tuple[int, int]:
    """Parses 'COLSxROWS', e.g. '5x2'."""
    try:
        cols, rows = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected COLSxROWS, got {value!r}")
    if cols <= 0 or rows <= 0:
        raise argparse.ArgumentTypeError(f"Grid must have at least one cell, got {value!r}")
    return cols, rows


def collect_inputs(paths: List[str]) -> List[Path]:
    files = []
    for p in map(Path, paths):
        if p.is_dir():
            files.extend(find_images(p))
        elif p.is_file():
            files.append(p)
        else:
            log.error("Input not found: %s", p)
    return files


def build_effects(args) -> EffectConfig:
    effects = EffectConfig()
    if args.preset:
        effects = PresetManager().get(args.preset)
    overrides = {}
    if args.aggression is not None:
        overrides["scrub_aggression"] = args.aggression
    if args.global_wipe:
        overrides["keep_internal_colors"] = False
    return merge_effects(effects, overrides) if overrides else effects


def load_sources(path: Path, args) -> List[PixelBuffer]:
    """Decodes one input; sprite sheets yield one buffer per cell."""
    buffer = load_image(path)
    if not args.sheet:
        return [buffer]
    cols, rows = args.sheet
    slices = grid_slices(buffer.width, buffer.height, cols, rows)
    if args.clean:
        return slice_sheet(buffer, slices, args.aggression, not args.global_wipe)
    return [place_in_cell(extract_slice(buffer, s)) for s in slices]


def process(args, effects: EffectConfig) -> int:
    """Runs the whole batch; returns the number of inputs that failed."""
    output_dir = Path(args.output)
    failures = 0

    with IconPipeline() as pipeline:
        names: Dict[str, str] = {}
        for path in collect_inputs(args.inputs):
            try:
                sources = load_sources(path, args)
            except IconsmithError as e:
                log.error("Skipping %s: %s", path, e)
                failures += 1
                continue
            for i, source in enumerate(sources):
                name = path.stem if len(sources) == 1 else f"{path.stem}_{i + 1:02d}"
                names[pipeline.ingest(source, name=name)] = name

        if args.clean and not args.sheet:
            cleanups = {
                asset_id: pipeline.submit_cleanup(asset_id, args.aggression, not args.global_wipe)
                for asset_id in names
            }
            wait(cleanups.values())
            for asset_id, future in cleanups.items():
                if future.exception() is not None:
                    # Skip rendering the uncleaned source
                    log.error("Cleanup of %s failed: %s", names[asset_id], future.exception())
                    failures += 1
                    pipeline.delete(asset_id)

        renders = pipeline.render_all(args.size, effects, args.timestamp)
        suffix = args.format.lower()
        for asset_id, future in renders.items():
            try:
                output = future.result()
            except (IconsmithError, ValueError) as e:
                log.error("Failed to render %s: %s", names[asset_id], e)
                failures += 1
                continue
            if output is None:
                continue
            save_image(output, output_dir / f"{names[asset_id]}.{suffix}", args.format)
            log.info("Wrote %s", output_dir / f"{names[asset_id]}.{suffix}")
    return failures


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="iconsmith - clean up and style raster icons")
    parser.add_argument("inputs", nargs="+", help="Image files or directories of images")
    parser.add_argument("-o", "--output", default="icons", help="Output directory")
    parser.add_argument("--size", type=int, default=config.getint("core", "default_size", fallback=1024),
                        help="Side of the square output icons in pixels")
    parser.add_argument("--preset", default="", help="Name of a saved effect preset")
    parser.add_argument("--format", default="PNG", help="Output format (PNG, WEBP, JPEG, BMP, ICO)")
    parser.add_argument("--clean", action="store_true", help="Remove the background and re-center before styling")
    parser.add_argument("--aggression", type=float, default=None, help="Background tolerance, 0-200")
    parser.add_argument("--global-wipe", action="store_true",
                        help="Remove background-colored pixels everywhere, not only at the border")
    parser.add_argument("--sheet", type=parse_grid, default=None, metavar="COLSxROWS",
                        help="Treat inputs as sprite sheets with this grid")
    parser.add_argument("--timestamp", type=float, default=None, help="Animation time in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging and timing information")
    args = parser.parse_args(argv)

    setup_logging(args.debug)
    t0 = time.perf_counter()
    log.info("Starting iconsmith")
    try:
        effects = build_effects(args)
    except KeyError:
        log.error("Unknown preset: %s", args.preset)
        print(f"Unknown preset: {args.preset}", file=sys.stderr)
        return 2
    if args.aggression is None:
        args.aggression = config.getfloat("cleanup", "aggression", fallback=80)

    failures = process(args, effects)
    log.info("Finished in %.3fs with %d failures", time.perf_counter() - t0, failures)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())

"""Splits sprite sheets into individual icon sources."""

import logging
from typing import Iterable, List

from PIL import Image

from iconsmith.imaging.normalizer import remove_background_and_center
from iconsmith.models import PixelBuffer, Slice

log = logging.getLogger(__name__)

DEFAULT_COLS = 5
DEFAULT_ROWS = 2
CELL_SIZE = 1024
CELL_INSET = 128
# Hand-drawn selections smaller than this in either direction are accidental clicks
MIN_SLICE_SIZE = 5


def grid_slices(width: int, height: int, cols: int = DEFAULT_COLS, rows: int = DEFAULT_ROWS) -> List[Slice]:
    """Divides a width x height sheet into cols x rows equal cells, row by row."""
    if cols <= 0 or rows <= 0:
        raise ValueError(f"Grid must have at least one cell, got {cols}x{rows}")
    cell_w = width / cols
    cell_h = height / rows
    return [
        Slice(x=c * cell_w, y=r * cell_h, w=cell_w, h=cell_h)
        for r in range(rows)
        for c in range(cols)
    ]


def filter_slices(slices: Iterable[Slice], min_size: float = MIN_SLICE_SIZE) -> List[Slice]:
    return [s for s in slices if s.w > min_size and s.h > min_size]


def extract_slice(buffer: PixelBuffer, region: Slice) -> PixelBuffer:
    """Copies the pixels under `region`, clamped to the buffer bounds."""
    x0 = max(0, min(buffer.width, int(round(region.x))))
    y0 = max(0, min(buffer.height, int(round(region.y))))
    x1 = max(x0, min(buffer.width, int(round(region.x + region.w))))
    y1 = max(y0, min(buffer.height, int(round(region.y + region.h))))
    if x1 == x0 or y1 == y0:
        raise ValueError(f"Slice {region.id} lies outside the {buffer.width}x{buffer.height} image")
    return PixelBuffer.from_array(buffer.pixels[y0:y1, x0:x1])


def place_in_cell(buffer: PixelBuffer, cell_size: int = CELL_SIZE, inset: int = CELL_INSET) -> PixelBuffer:
    """Stretches a grid cell into the middle of a transparent cell_size square.

    Grid cells are drawn as-is rather than fitted, so a non-square cell is
    distorted to the square content area like the sheet layout expects.
    """
    content_size = cell_size - 2 * inset
    if content_size <= 0:
        raise ValueError(f"Inset {inset} leaves no room in a {cell_size}px cell")
    content = buffer.to_image().resize((content_size, content_size), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (cell_size, cell_size), (0, 0, 0, 0))
    canvas.paste(content, (inset, inset))
    return PixelBuffer.from_image(canvas)


def slice_sheet(
    buffer: PixelBuffer,
    slices: Iterable[Slice],
    aggression: float = 80,
    keep_internal: bool = True,
) -> List[PixelBuffer]:
    """Cuts each slice out of the sheet and cleans and centers it."""
    results = []
    for region in filter_slices(slices):
        piece = extract_slice(buffer, region)
        results.append(remove_background_and_center(piece, aggression, keep_internal))
    log.info("Sliced sheet into %d icons", len(results))
    return results

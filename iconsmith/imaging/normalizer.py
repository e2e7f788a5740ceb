"""Crops to the opaque content, scales it uniformly and centers it on a square canvas."""

import logging
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from iconsmith.errors import EmptyContentError
from iconsmith.imaging.segmentation import segment
from iconsmith.models import PixelBuffer

log = logging.getLogger(__name__)

# Fragments smaller than this in both dimensions are treated as noise
MIN_FRAGMENT_SIZE = 4

Box = Tuple[int, int, int, int]  # x0, y0, x1, y1 inclusive


def _fragment_boxes(mask: np.ndarray) -> List[Box]:
    """Bounding boxes of the 8-connected components of `mask`.

    Works on horizontal runs instead of single pixels: runs on adjacent rows
    that touch (diagonals included) are merged with a union-find.
    """
    h, w = mask.shape
    padded = np.zeros((h, w + 2), dtype=np.int8)
    padded[:, 1:-1] = mask
    edges = np.diff(padded, axis=1)
    run_y, run_x0 = np.nonzero(edges == 1)
    _, run_end = np.nonzero(edges == -1)
    run_x1 = run_end - 1
    n = len(run_y)
    if n == 0:
        return []

    parent = list(range(n))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    # Runs come out of nonzero() in row-major order
    row_start = np.searchsorted(run_y, np.arange(h + 1))
    for y in range(1, h):
        i, i_end = int(row_start[y - 1]), int(row_start[y])
        j, j_end = int(row_start[y]), int(row_start[y + 1])
        while i < i_end and j < j_end:
            if run_x0[i] <= run_x1[j] + 1 and run_x0[j] <= run_x1[i] + 1:
                ri, rj = find(i), find(j)
                if ri != rj:
                    parent[rj] = ri
            if run_x1[i] < run_x1[j]:
                i += 1
            else:
                j += 1

    boxes = {}
    for k in range(n):
        root = find(k)
        x0, x1, y = int(run_x0[k]), int(run_x1[k]), int(run_y[k])
        if root in boxes:
            bx0, by0, bx1, by1 = boxes[root]
            boxes[root] = (min(bx0, x0), min(by0, y), max(bx1, x1), max(by1, y))
        else:
            boxes[root] = (x0, y, x1, y)
    return list(boxes.values())


def content_bounds(buffer: PixelBuffer, min_fragment_size: int = MIN_FRAGMENT_SIZE) -> Box:
    """Smallest box around the opaque content, ignoring noise fragments.

    If every fragment is below the noise threshold the whole content is used,
    so tiny sources still have a box.

    Raises:
        EmptyContentError: if the buffer has no pixel with alpha > 0.
    """
    mask = buffer.alpha > 0
    if not mask.any():
        raise EmptyContentError(f"No opaque content in {buffer.width}x{buffer.height} buffer")

    boxes = _fragment_boxes(mask)
    kept = [
        b for b in boxes
        if (b[2] - b[0] + 1) >= min_fragment_size or (b[3] - b[1] + 1) >= min_fragment_size
    ]
    if not kept:
        kept = boxes
    elif len(kept) < len(boxes):
        log.debug("Ignoring %d noise fragment(s) below %d px", len(boxes) - len(kept), min_fragment_size)

    x0 = min(b[0] for b in kept)
    y0 = min(b[1] for b in kept)
    x1 = max(b[2] for b in kept)
    y1 = max(b[3] for b in kept)
    return x0, y0, x1, y1


def normalize(
    buffer: PixelBuffer,
    output_size: int = 512,
    margin_fraction: float = 0.12,
    min_fragment_size: int = MIN_FRAGMENT_SIZE,
    max_upscale: Optional[float] = None,
) -> PixelBuffer:
    """Fits the content box into an output_size x output_size canvas.

    Args:
        buffer: Source pixels.
        output_size: Side of the square output.
        margin_fraction: Share of the canvas kept empty around the content.
        min_fragment_size: Noise threshold in pixels, see content_bounds().
        max_upscale: Optional cap on the scale factor.

    Returns:
        A new output_size x output_size buffer; blank if there is no content.
    """
    if output_size <= 0:
        raise ValueError(f"output_size must be positive, got {output_size}")
    if not 0.0 <= margin_fraction < 1.0:
        raise ValueError(f"margin_fraction must be in [0, 1), got {margin_fraction}")

    try:
        x0, y0, x1, y1 = content_bounds(buffer, min_fragment_size)
    except EmptyContentError:
        log.debug("Nothing to normalize; returning blank %dx%d canvas", output_size, output_size)
        return PixelBuffer.blank(output_size, output_size)

    box_w = x1 - x0 + 1
    box_h = y1 - y0 + 1
    available = output_size * (1.0 - margin_fraction)
    scale = min(available / box_w, available / box_h)
    if max_upscale is not None:
        scale = min(scale, max_upscale)

    dw = max(1, min(output_size, int(round(box_w * scale))))
    dh = max(1, min(output_size, int(round(box_h * scale))))

    # Upscaled icons keep hard pixel edges; downscales get proper filtering
    resample = Image.Resampling.NEAREST if scale >= 1.0 else Image.Resampling.LANCZOS
    content = buffer.to_image().crop((x0, y0, x1 + 1, y1 + 1))
    content = content.resize((dw, dh), resample)

    canvas = Image.new("RGBA", (output_size, output_size), (0, 0, 0, 0))
    canvas.paste(content, ((output_size - dw) // 2, (output_size - dh) // 2))
    log.debug(
        "Normalized %dx%d content box to %dx%d on %d canvas (scale %.3f)",
        box_w, box_h, dw, dh, output_size, scale,
    )
    return PixelBuffer.from_image(canvas)


def remove_background_and_center(
    buffer: PixelBuffer,
    aggression: float = 80,
    keep_internal: bool = True,
    output_size: int = 1024,
    margin_fraction: float = 0.0625,
    min_fragment_size: int = MIN_FRAGMENT_SIZE,
) -> PixelBuffer:
    """Segments the background away, then centers what is left."""
    cleaned = segment(buffer, aggression, keep_internal)
    return normalize(cleaned, output_size, margin_fraction, min_fragment_size)

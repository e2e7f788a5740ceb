"""Removes a flat background by color distance to the averaged corner color."""

import logging
import time
from collections import deque
from typing import Tuple

import numpy as np

from iconsmith.models import PixelBuffer

log = logging.getLogger(__name__)

# Added to the user-facing aggression (0-200) to get the distance threshold
TOLERANCE_OFFSET = 15


def estimate_background(buffer: PixelBuffer) -> Tuple[float, float, float]:
    """Averages the RGB of the four corner pixels."""
    px = buffer.pixels
    corners = np.array(
        [px[0, 0, :3], px[0, -1, :3], px[-1, 0, :3], px[-1, -1, :3]],
        dtype=np.float64,
    )
    r, g, b = corners.mean(axis=0)
    return float(r), float(g), float(b)


def color_distance(rgb: np.ndarray, reference) -> np.ndarray:
    """Euclidean RGB distance of every sample in `rgb` (..., 3) to `reference`."""
    diff = rgb.astype(np.float64) - np.asarray(reference, dtype=np.float64)
    return np.sqrt((diff * diff).sum(axis=-1))


def _flood_from_border(candidates: np.ndarray) -> np.ndarray:
    """Marks the candidate pixels reachable from the image border.

    Breadth-first and 4-connected. `visited` is one flag per pixel index and
    the work list is an explicit deque, so large images never recurse.
    """
    h, w = candidates.shape
    passable = candidates.reshape(-1).astype(np.uint8).tobytes()
    visited = bytearray(h * w)
    last_row = (h - 1) * w
    queue = deque()

    seeds = list(range(w)) + list(range(last_row, last_row + w))
    seeds += [y * w for y in range(h)] + [y * w + w - 1 for y in range(h)]
    for idx in seeds:
        if passable[idx] and not visited[idx]:
            visited[idx] = 1
            queue.append(idx)

    while queue:
        idx = queue.popleft()
        x = idx % w
        if x > 0:
            n = idx - 1
            if passable[n] and not visited[n]:
                visited[n] = 1
                queue.append(n)
        if x < w - 1:
            n = idx + 1
            if passable[n] and not visited[n]:
                visited[n] = 1
                queue.append(n)
        if idx >= w:
            n = idx - w
            if passable[n] and not visited[n]:
                visited[n] = 1
                queue.append(n)
        if idx < last_row:
            n = idx + w
            if passable[n] and not visited[n]:
                visited[n] = 1
                queue.append(n)

    return np.frombuffer(bytes(visited), dtype=np.uint8).reshape(h, w).astype(bool)


def background_mask(buffer: PixelBuffer, aggression: float, keep_internal: bool) -> np.ndarray:
    """Returns an (H, W) bool mask of the pixels segmentation would clear.

    Only RGB is compared; existing alpha is ignored, which keeps repeated
    passes idempotent.
    """
    tolerance = aggression + TOLERANCE_OFFSET
    background = estimate_background(buffer)
    candidates = color_distance(buffer.pixels[:, :, :3], background) < tolerance
    if not keep_internal:
        return candidates
    return _flood_from_border(candidates)


def segment(buffer: PixelBuffer, aggression: float = 80, keep_internal: bool = True) -> PixelBuffer:
    """Clears the alpha of background pixels.

    Args:
        buffer: Source pixels; never modified.
        aggression: 0-200, higher removes colors further from the background.
        keep_internal: If True, only background reachable from the border is
            removed, so enclosed highlights survive. If False, every matching
            pixel is removed.

    Returns:
        A new buffer of the same size. If nothing opaque would survive, an
        unmodified copy of the input.
    """
    t_start = time.perf_counter()
    mask = background_mask(buffer, aggression, keep_internal)

    result = buffer.copy()
    alpha = result.alpha
    alpha[mask] = 0

    if not np.any(alpha > 0):
        log.debug("Segmentation would clear every pixel; keeping input as-is")
        return buffer.copy()

    log.debug(
        "Segmented %dx%d (aggression=%s, keep_internal=%s): removed %d px in %.3fs",
        buffer.width, buffer.height, aggression, keep_internal,
        int(mask.sum()), time.perf_counter() - t_start,
    )
    return result

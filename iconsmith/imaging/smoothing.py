"""Edge-aware cleanup of generation and compression noise."""

import logging

import numpy as np

from iconsmith.models import PixelBuffer

log = logging.getLogger(__name__)

RADIUS = 1


def smooth(buffer: PixelBuffer, intensity: float) -> PixelBuffer:
    """Averages each opaque pixel with its similar-colored neighbours, in place.

    Neighbours are weighted by exp(-distance / sigma) with
    sigma = 5 + intensity * 0.45, so hard silhouette edges (large color jumps)
    barely mix. Transparent pixels are neither read nor written and alpha is
    never changed.

    Args:
        buffer: Pixels to clean; modified in place.
        intensity: 0-100. Values <= 0 leave the buffer untouched.

    Returns:
        The same buffer, for chaining.
    """
    if intensity <= 0:
        return buffer

    px = buffer.pixels
    opaque = px[:, :, 3] > 0
    if not opaque.any():
        return buffer

    h, w = buffer.height, buffer.width
    sigma = 5.0 + intensity * 0.45
    # Read from a snapshot so already-smoothed pixels never feed their neighbours
    rgb = px[:, :, :3].astype(np.float64)
    pad_rgb = np.pad(rgb, ((RADIUS, RADIUS), (RADIUS, RADIUS), (0, 0)))
    pad_opaque = np.pad(opaque, RADIUS)

    sums = np.zeros_like(rgb)
    weights = np.zeros((h, w), dtype=np.float64)
    for dy in range(-RADIUS, RADIUS + 1):
        for dx in range(-RADIUS, RADIUS + 1):
            n_rgb = pad_rgb[RADIUS + dy:RADIUS + dy + h, RADIUS + dx:RADIUS + dx + w]
            n_opaque = pad_opaque[RADIUS + dy:RADIUS + dy + h, RADIUS + dx:RADIUS + dx + w]
            diff = n_rgb - rgb
            dist = np.sqrt((diff * diff).sum(axis=2))
            weight = np.exp(-dist / sigma) * n_opaque
            sums += n_rgb * weight[:, :, np.newaxis]
            weights += weight

    # Opaque pixels always count themselves with weight 1
    smoothed = sums / np.maximum(weights, 1e-12)[:, :, np.newaxis]
    smoothed = np.clip(np.rint(smoothed), 0, 255).astype(np.uint8)
    rgb_view = px[:, :, :3]
    rgb_view[opaque] = smoothed[opaque]
    return buffer

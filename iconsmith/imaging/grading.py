"""Global color grading applied as the last compositor pass."""

import math

import numpy as np

from iconsmith.models import GradingSettings, PixelBuffer

# Rec. 709 luma weights used by the saturate/hue-rotate matrices
_LR, _LG, _LB = 0.213, 0.715, 0.072


def saturation_matrix(factor: float) -> np.ndarray:
    s = factor
    return np.array([
        [_LR + (1 - _LR) * s, _LG - _LG * s, _LB - _LB * s],
        [_LR - _LR * s, _LG + (1 - _LG) * s, _LB - _LB * s],
        [_LR - _LR * s, _LG - _LG * s, _LB + (1 - _LB) * s],
    ], dtype=np.float32)


def hue_rotation_matrix(degrees: float) -> np.ndarray:
    a = math.radians(degrees)
    c, s = math.cos(a), math.sin(a)
    return np.array([
        [_LR + c * (1 - _LR) - s * _LR, _LG - c * _LG - s * _LG, _LB - c * _LB + s * (1 - _LB)],
        [_LR - c * _LR + s * 0.143, _LG + c * (1 - _LG) + s * 0.140, _LB - c * _LB - s * 0.283],
        [_LR - c * _LR - s * (1 - _LR), _LG - c * _LG + s * _LG, _LB + c * (1 - _LB) + s * _LB],
    ], dtype=np.float32)


def apply_color_grading(buffer: PixelBuffer, grading: GradingSettings) -> PixelBuffer:
    """Returns a graded copy of `buffer`. Only RGB changes; alpha is kept."""
    result = buffer.copy()
    if grading.is_identity():
        return result

    px = result.pixels
    arr = px[:, :, :3].astype(np.float32)

    # 1. Brightness
    brightness = grading.brightness / 100.0
    if abs(brightness - 1.0) > 0.001:
        arr *= brightness
        np.clip(arr, 0, 255, out=arr)

    # 2. Contrast around mid-grey
    contrast = grading.contrast / 100.0
    if abs(contrast - 1.0) > 0.001:
        arr = (arr - 127.5) * contrast + 127.5
        np.clip(arr, 0, 255, out=arr)

    # 3. Saturation
    saturation = grading.saturation / 100.0
    if abs(saturation - 1.0) > 0.001:
        arr = arr @ saturation_matrix(saturation).T
        np.clip(arr, 0, 255, out=arr)

    # 4. Hue rotation
    hue = grading.hue_rotate % 360
    if abs(hue) > 0.001:
        arr = arr @ hue_rotation_matrix(hue).T
        np.clip(arr, 0, 255, out=arr)

    # 5. Vignette
    vignette = grading.vignette / 100.0
    if vignette > 0.001:
        h, w = arr.shape[:2]
        y, x = np.ogrid[:h, :w]
        cx, cy = w / 2, h / 2
        dist = np.sqrt((x - cx) ** 2 + (y - cy) ** 2)
        max_dist = np.sqrt(cx ** 2 + cy ** 2)
        dist = dist / max_dist
        vignette_mask = 1.0 - (dist ** 2) * vignette
        arr = arr * vignette_mask[:, :, np.newaxis]
        np.clip(arr, 0, 255, out=arr)

    px[:, :, :3] = np.rint(arr).astype(np.uint8)
    return result

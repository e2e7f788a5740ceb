"""Tests for the color grading pass."""

import numpy as np
import pytest

from iconsmith.imaging.grading import apply_color_grading
from iconsmith.models import EffectConfig, PixelBuffer


def _buffer(rgb=(200, 100, 50), alpha=255):
    arr = np.zeros((4, 4, 4), dtype=np.uint8)
    arr[..., :3] = rgb
    arr[..., 3] = alpha
    return PixelBuffer.from_array(arr)


def test_identity_returns_equal_copy():
    buffer = _buffer()
    result = apply_color_grading(buffer, EffectConfig().grading)
    assert result == buffer
    assert result is not buffer


def test_brightness_scales_rgb():
    result = apply_color_grading(_buffer(), EffectConfig(brightness=50).grading)
    assert tuple(result.pixels[0, 0]) == (100, 50, 25, 255)


def test_contrast_zero_is_mid_grey():
    result = apply_color_grading(_buffer(), EffectConfig(contrast=0).grading)
    assert np.all(result.pixels[..., :3] == 128)


def test_saturation_zero_is_grey():
    result = apply_color_grading(_buffer(), EffectConfig(saturation=0).grading)
    r, g, b, _ = (int(v) for v in result.pixels[0, 0])
    assert abs(r - g) <= 1 and abs(g - b) <= 1


def test_full_hue_turn_is_identity():
    buffer = _buffer()
    result = apply_color_grading(buffer, EffectConfig(hue_rotate=360).grading)
    assert result == buffer


def test_hue_rotation_changes_color():
    result = apply_color_grading(_buffer((255, 0, 0)), EffectConfig(hue_rotate=120).grading)
    r, g, b, _ = (int(v) for v in result.pixels[0, 0])
    assert g > r


@pytest.mark.parametrize("settings", [
    dict(brightness=150), dict(contrast=180), dict(saturation=200),
    dict(hue_rotate=45), dict(vignette=100),
])
def test_alpha_preserved(settings):
    buffer = _buffer(alpha=77)
    result = apply_color_grading(buffer, EffectConfig(**settings).grading)
    assert np.array_equal(result.alpha, buffer.alpha)


def test_vignette_darkens_corners_more_than_center():
    arr = np.full((41, 41, 4), 200, dtype=np.uint8)
    arr[..., 3] = 255
    result = apply_color_grading(PixelBuffer.from_array(arr), EffectConfig(vignette=80).grading)
    assert result.pixels[0, 0, 0] < result.pixels[20, 20, 0]

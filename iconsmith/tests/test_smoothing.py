"""Tests for the edge-aware smoothing filter."""

import numpy as np

from iconsmith.imaging.smoothing import smooth
from iconsmith.models import PixelBuffer


def _noisy_buffer(seed=0):
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(24, 24, 4), dtype=np.uint8)
    arr[..., 3] = rng.choice([0, 128, 255], size=(24, 24)).astype(np.uint8)
    return PixelBuffer.from_array(arr)


def test_zero_intensity_is_noop():
    buffer = _noisy_buffer()
    before = buffer.copy()
    assert smooth(buffer, 0) is buffer
    assert buffer == before


def test_alpha_and_transparent_pixels_untouched():
    buffer = _noisy_buffer(1)
    before = buffer.copy()
    smooth(buffer, 50)
    assert np.array_equal(buffer.alpha, before.alpha)
    transparent = before.alpha == 0
    assert np.array_equal(buffer.pixels[transparent], before.pixels[transparent])


def test_uniform_region_unchanged():
    arr = np.full((8, 8, 4), 255, dtype=np.uint8)
    arr[..., :3] = (40, 80, 120)
    buffer = PixelBuffer.from_array(arr)
    before = buffer.copy()
    smooth(buffer, 100)
    assert buffer == before


def test_outlier_pulled_toward_neighbours():
    arr = np.full((5, 5, 4), 255, dtype=np.uint8)
    arr[..., :3] = 100
    arr[2, 2, :3] = (110, 100, 100)
    buffer = PixelBuffer.from_array(arr)
    smooth(buffer, 50)
    r = int(buffer.pixels[2, 2, 0])
    assert 100 < r < 110


def test_transparent_neighbours_are_ignored():
    arr = np.zeros((1, 3, 4), dtype=np.uint8)
    arr[0, 0] = (50, 50, 50, 255)
    arr[0, 1] = (250, 250, 250, 0)
    arr[0, 2] = (50, 50, 50, 255)
    buffer = PixelBuffer.from_array(arr)
    smooth(buffer, 100)
    assert tuple(buffer.pixels[0, 0]) == (50, 50, 50, 255)
    assert tuple(buffer.pixels[0, 1]) == (250, 250, 250, 0)


def test_fully_transparent_buffer_is_noop():
    buffer = PixelBuffer.blank(6, 6)
    smooth(buffer, 80)
    assert not buffer.has_content()

"""Tests for sprite sheet slicing."""

import numpy as np
import pytest

from iconsmith.imaging.slicing import (
    extract_slice,
    filter_slices,
    grid_slices,
    place_in_cell,
    slice_sheet,
)
from iconsmith.models import PixelBuffer, Slice


def _sheet(cols=2, cell=40):
    """White sheet with one red square per cell."""
    arr = np.full((cell, cols * cell, 4), 255, dtype=np.uint8)
    for c in range(cols):
        x = c * cell + 10
        arr[10:30, x:x + 20] = (255, 0, 0, 255)
    return PixelBuffer.from_array(arr)


def test_grid_slices_cover_sheet_row_by_row():
    slices = grid_slices(1000, 400)
    assert len(slices) == 10
    assert (slices[0].x, slices[0].y, slices[0].w, slices[0].h) == (0, 0, 200, 200)
    assert (slices[4].x, slices[4].y) == (800, 0)
    assert (slices[9].x, slices[9].y) == (800, 200)
    assert len({s.id for s in slices}) == 10


def test_grid_slices_rejects_empty_grid():
    with pytest.raises(ValueError):
        grid_slices(100, 100, 0, 2)


def test_filter_slices_drops_tiny_selections():
    slices = [Slice(0, 0, 5, 50), Slice(0, 0, 50, 4), Slice(0, 0, 6, 6)]
    kept = filter_slices(slices)
    assert [(s.w, s.h) for s in kept] == [(6, 6)]


def test_extract_slice_clamps_to_image():
    sheet = _sheet()
    piece = extract_slice(sheet, Slice(60, -10, 100, 100))
    assert (piece.width, piece.height) == (20, 40)
    with pytest.raises(ValueError):
        extract_slice(sheet, Slice(500, 500, 10, 10))


def test_slice_to_crop_region():
    assert Slice(25, 0, 50, 100).to_crop_region(100, 100) == (0.25, 0.0, 0.75, 1.0)
    assert Slice(90, 90, 50, 50).to_crop_region(100, 100) == (0.9, 0.9, 1.0, 1.0)


def test_place_in_cell_uses_inset():
    cell = PixelBuffer.from_array(np.full((30, 50, 4), 200, dtype=np.uint8))
    placed = place_in_cell(cell)
    assert (placed.width, placed.height) == (1024, 1024)
    assert placed.alpha[512, 127] == 0
    assert placed.alpha[512, 128] > 0
    assert placed.alpha[895, 895] > 0
    assert placed.alpha[896, 512] == 0


def test_place_in_cell_rejects_oversized_inset():
    with pytest.raises(ValueError):
        place_in_cell(PixelBuffer.blank(4, 4), cell_size=100, inset=50)


def test_slice_sheet_cleans_each_cell():
    sheet = _sheet(cols=2)
    icons = slice_sheet(sheet, grid_slices(sheet.width, sheet.height, 2, 1))
    assert len(icons) == 2
    for icon in icons:
        assert (icon.width, icon.height) == (1024, 1024)
        assert icon.alpha[0, 0] == 0
        assert tuple(icon.pixels[512, 512]) == (255, 0, 0, 255)

import os
import tempfile

# Must happen before iconsmith.config creates its global AppConfig
os.environ.setdefault("ICONSMITH_HOME", tempfile.mkdtemp(prefix="iconsmith-tests-"))

import numpy as np
import pytest

from iconsmith.models import PixelBuffer

WHITE = (255, 255, 255, 255)
RED = (255, 0, 0, 255)


def _square_on_white(size=64, square=20, dot=0):
    arr = np.empty((size, size, 4), dtype=np.uint8)
    arr[:] = WHITE
    start = (size - square) // 2
    arr[start:start + square, start:start + square] = RED
    if dot:
        d = start + (square - dot) // 2
        arr[d:d + dot, d:d + dot] = WHITE
    return PixelBuffer.from_array(arr)


@pytest.fixture
def red_square():
    """64x64 white image with a centered 20x20 red square."""
    return _square_on_white()


@pytest.fixture
def red_square_with_highlight():
    """Same as red_square with a 5x5 white dot enclosed in the square."""
    return _square_on_white(dot=5)


@pytest.fixture
def solid_red():
    arr = np.empty((32, 32, 4), dtype=np.uint8)
    arr[:] = RED
    return PixelBuffer.from_array(arr)

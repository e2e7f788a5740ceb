"""Converts between encoded raster bytes and PixelBuffers.

JPEG goes through PyTurboJPEG when it is installed; every other container
(PNG, BMP, GIF, WebP, ICO, ...) is decoded by Pillow.
"""

import io
import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from iconsmith.errors import DecodeError
from iconsmith.models import PixelBuffer

log = logging.getLogger(__name__)

JPEG_MAGIC = b"\xff\xd8\xff"

try:
    from turbojpeg import TurboJPEG, TJPF_RGBA
except ImportError:
    jpeg_decoder = None
    TURBO_AVAILABLE = False
    log.warning("PyTurboJPEG not found. Falling back to Pillow for JPEG decoding.")
else:
    try:
        jpeg_decoder = TurboJPEG()
    except Exception:
        jpeg_decoder = None
        TURBO_AVAILABLE = False
        log.exception("PyTurboJPEG initialization failed. Falling back to Pillow.")
    else:
        TURBO_AVAILABLE = True
        log.info("PyTurboJPEG is available. Using it for JPEG decoding.")


def _decode_jpeg_turbo(data: bytes):
    try:
        # flags=0 keeps the accurate DCT and proper YCbCr->RGB conversion
        rgba = jpeg_decoder.decode(data, pixel_format=TJPF_RGBA, flags=0)
        return PixelBuffer.from_array(np.ascontiguousarray(rgba))
    except Exception as e:
        log.warning(f"PyTurboJPEG failed to decode image: {e}. Trying Pillow.")
        return None


def decode_image(data: bytes) -> PixelBuffer:
    """Decodes any supported container into an RGBA PixelBuffer.

    Multi-image ICO files yield their largest entry.

    Raises:
        DecodeError: if the bytes are not a readable raster image.
    """
    if not data:
        raise DecodeError("No image data")

    if TURBO_AVAILABLE and jpeg_decoder and data[:3] == JPEG_MAGIC:
        buffer = _decode_jpeg_turbo(data)
        if buffer is not None:
            return buffer

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return PixelBuffer.from_image(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"Failed to decode image: {e}") from e


def load_image(path: Union[str, Path]) -> PixelBuffer:
    """Reads and decodes an image file."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"Failed to read {path}: {e}") from e
    return decode_image(data)


def encode_image(buffer: PixelBuffer, fmt: str = "PNG") -> bytes:
    """Encodes a buffer with Pillow; formats without alpha are flattened to RGB."""
    img = buffer.to_image()
    fmt = fmt.upper()
    if fmt in ("JPEG", "JPG", "BMP"):
        img = img.convert("RGB")
        fmt = "JPEG" if fmt == "JPG" else fmt
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def save_image(buffer: PixelBuffer, path: Union[str, Path], fmt: str = None) -> Path:
    """Writes a buffer to disk atomically, inferring the format from the suffix."""
    path = Path(path)
    fmt = fmt or (path.suffix.lstrip(".") or "png")
    data = encode_image(buffer, fmt)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path.write_bytes(data)
    temp_path.replace(path)
    log.debug(f"Saved {buffer.width}x{buffer.height} image to {path}")
    return path

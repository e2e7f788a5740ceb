"""Renders a source buffer into a finished, styled icon.

The passes always run in the same order:

1. pick the active region (whole image or a crop region)
2. fit it inside the target square minus the margin
3. apply the animation transform for the given timestamp
4. draw it into an intermediate buffer (background scrub, rounded corners)
5. optional smoothing of the intermediate buffer
6. glow copies underneath
7. outline stamps behind everything drawn so far
8. the intermediate buffer on top, then color grading over the whole result

Every call is a pure function of its arguments and the `[compositor]` config;
animation reads the explicit `timestamp` and never the wall clock.
"""

import dataclasses
import logging
import math
import time
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter

from iconsmith.config import config
from iconsmith.imaging.grading import apply_color_grading
from iconsmith.imaging.segmentation import TOLERANCE_OFFSET, color_distance
from iconsmith.imaging.smoothing import smooth
from iconsmith.models import (
    AnimationSettings,
    CropRegion,
    EffectConfig,
    GlowSettings,
    OutlineSettings,
    PixelBuffer,
)

log = logging.getLogger(__name__)

DEFAULT_MARGIN_FRACTION = 0.12
# Pixel-valued effect parameters (outline width, glow blur) are authored at this size
REFERENCE_SIZE = 512
GLOW_PASSES = 3
OUTLINE_ANGLE_STEP = 20
WAVY_AMPLITUDE = 0.35
FLOAT_AMPLITUDE = 0.05
PULSE_AMPLITUDE = 0.08
SPIN_DEGREES_PER_SECOND = 90.0
# Sources below this fidelity score get a softer upscale filter
LOW_FIDELITY = 50.0


@dataclasses.dataclass(frozen=True)
class AnimationFrame:
    """Transform derived from the animation settings at one point in time."""
    offset_y: float = 0.0
    scale: float = 1.0
    angle: float = 0.0


def animation_frame(
    animation: AnimationSettings, target_size: int, timestamp: Optional[float]
) -> AnimationFrame:
    """Computes the float/pulse/spin perturbation for `timestamp` seconds."""
    if not animation.enabled:
        return AnimationFrame()
    t = float(timestamp or 0.0)
    amount = max(0.0, animation.intensity) / 100.0
    phase = 2.0 * math.pi * t * animation.speed

    if animation.kind == "float":
        return AnimationFrame(offset_y=math.sin(phase) * FLOAT_AMPLITUDE * target_size * amount)
    if animation.kind == "pulse":
        return AnimationFrame(scale=1.0 + PULSE_AMPLITUDE * amount * math.sin(phase))
    return AnimationFrame(angle=(SPIN_DEGREES_PER_SECOND * t * animation.speed) % 360.0)


def margin_fraction() -> float:
    return config.getfloat("compositor", "margin_fraction", fallback=DEFAULT_MARGIN_FRACTION)


def reference_size() -> float:
    return config.getfloat("compositor", "reference_size", fallback=REFERENCE_SIZE)


def _draws_glow(glow: GlowSettings) -> bool:
    return glow.enabled and glow.opacity > 0


def _draws_outline(outline: OutlineSettings) -> bool:
    return outline.enabled and outline.opacity > 0 and outline.width > 0


def fit_margin(target_size: int, effects: EffectConfig) -> float:
    """Empty border kept around the icon, grown to fit outline/glow when auto-fit is on.

    Effects that draw nothing (zero opacity or width) do not grow the margin.
    """
    margin = target_size * margin_fraction()
    if effects.auto_fit:
        extra = max(
            effects.outline_width if _draws_outline(effects.outline) else 0,
            effects.glow_blur if _draws_glow(effects.glow) else 0,
        )
        margin += extra * (target_size / reference_size())
    return margin


def _active_region(img: Image.Image, crop_region: Optional[CropRegion]) -> Image.Image:
    if crop_region is None:
        return img
    left, top, right, bottom = crop_region
    w, h = img.size
    x0 = min(max(int(round(left * w)), 0), w - 1)
    y0 = min(max(int(round(top * h)), 0), h - 1)
    x1 = min(max(int(round(right * w)), x0 + 1), w)
    y1 = min(max(int(round(bottom * h)), y0 + 1), h)
    return img.crop((x0, y0, x1, y1))


def _resample(is_pixel_art: bool, scale: float, fidelity_factor: Optional[float]):
    if is_pixel_art:
        return Image.Resampling.NEAREST
    if scale > 1.0 and fidelity_factor is not None and fidelity_factor < LOW_FIDELITY:
        return Image.Resampling.BICUBIC
    return Image.Resampling.LANCZOS


def _scrub_reference(arr: np.ndarray) -> Optional[np.ndarray]:
    """Top-left color, or the mean of the opaque corners when it is transparent."""
    if arr[0, 0, 3] > 0:
        return arr[0, 0, :3].astype(np.float64)
    corners = np.array([arr[0, 0], arr[0, -1], arr[-1, 0], arr[-1, -1]])
    opaque = corners[corners[:, 3] > 0]
    if len(opaque) == 0:
        return None
    return opaque[:, :3].astype(np.float64).mean(axis=0)


def _scrub_background(content: Image.Image, aggression: float) -> Image.Image:
    """Cheap global pass: clears everything close to the region's background color.

    Already transparent backgrounds (cleaned sources) have no color to match, so
    they are left alone.
    """
    arr = np.array(content, dtype=np.uint8)
    reference = _scrub_reference(arr)
    if reference is None:
        return content
    mask = color_distance(arr[:, :, :3], reference) < aggression + TOLERANCE_OFFSET
    arr[:, :, 3][mask] = 0
    return Image.fromarray(arr, "RGBA")


def _round_corners(content: Image.Image, corner_radius: float) -> Image.Image:
    if corner_radius <= 0:
        return content
    w, h = content.size
    radius = min(corner_radius, 100.0) / 100.0 * min(w, h) / 2.0
    if radius < 0.5:
        return content
    mask = Image.new("L", (w, h), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, w - 1, h - 1), radius=radius, fill=255)
    rounded = content.copy()
    rounded.putalpha(ImageChops.multiply(content.getchannel("A"), mask))
    return rounded


def render_intermediate(
    source: PixelBuffer,
    target_size: int,
    effects: EffectConfig,
    crop_region: Optional[CropRegion] = None,
    fidelity_factor: Optional[float] = None,
    timestamp: Optional[float] = None,
) -> PixelBuffer:
    """Steps 1-5: the placed, scrubbed and cleaned icon without glow or outline."""
    render = effects.render
    region = _active_region(source.to_image(), crop_region)
    sw, sh = region.size

    draw_size = max(1.0, target_size - 2.0 * fit_margin(target_size, effects))
    scale = min(draw_size / sw, draw_size / sh)
    frame = animation_frame(effects.animation, target_size, timestamp)
    scale *= frame.scale

    dw = max(1, int(round(sw * scale)))
    dh = max(1, int(round(sh * scale)))
    content = region.resize((dw, dh), _resample(render.is_pixel_art, scale, fidelity_factor))

    segmentation = effects.segmentation
    if segmentation.remove_background:
        content = _scrub_background(content, segmentation.aggression)
    content = _round_corners(content, render.corner_radius)

    if frame.angle:
        rotate_filter = Image.Resampling.NEAREST if render.is_pixel_art else Image.Resampling.BICUBIC
        # PIL rotates counter-clockwise; spin runs clockwise
        content = content.rotate(-frame.angle, resample=rotate_filter, expand=True)

    cw, ch = content.size
    x = int(round((target_size - cw) / 2.0))
    y = int(round((target_size - ch) / 2.0 + frame.offset_y))
    canvas = Image.new("RGBA", (target_size, target_size), (0, 0, 0, 0))
    # Nothing is underneath yet, so a plain paste keeps alpha exact
    canvas.paste(content, (x, y))

    intermediate = PixelBuffer.from_image(canvas)
    cleanup = effects.cleanup
    if cleanup.enabled:
        smooth(intermediate, cleanup.intensity)
    return intermediate


def _tinted(alpha: Image.Image, color, opacity: float) -> Image.Image:
    opacity = min(max(opacity, 0.0), 1.0)
    layer = Image.new("RGBA", alpha.size, tuple(color) + (0,))
    layer.putalpha(alpha.point(lambda v: int(round(v * opacity))))
    return layer


def glow_layer(base: Image.Image, glow: GlowSettings, target_size: int) -> Image.Image:
    """Blurred, tinted copy of the silhouette of `base`."""
    silhouette = base.getchannel("A")
    # Canvas-style blur amounts are twice the Gaussian sigma
    radius = max(glow.blur, 0.0) * (target_size / reference_size()) / 2.0
    if radius > 0:
        silhouette = silhouette.filter(ImageFilter.GaussianBlur(radius))
    return _tinted(silhouette, glow.color, glow.opacity)


def outline_offsets(thickness: float, style: str) -> List[Tuple[float, float]]:
    """Stamp positions around a circle of radius `thickness`.

    Stamping at a fixed angular step only approximates a true dilation, so
    wide outlines can show faint seams between stamps at non-cardinal angles.
    """
    grid = max(1, int(round(thickness / 2.0)))
    offsets = []
    for i, degrees in enumerate(range(0, 360, OUTLINE_ANGLE_STEP)):
        if style == "dotted" and i % 2:
            continue
        a = math.radians(degrees)
        r = thickness
        if style == "wavy":
            r = thickness * (1.0 + WAVY_AMPLITUDE * math.sin(3.0 * a))
        dx, dy = math.cos(a) * r, math.sin(a) * r
        if style == "pixelated":
            dx = round(dx / grid) * grid
            dy = round(dy / grid) * grid
        offsets.append((dx, dy))
    return offsets


def outline_layer(
    base: Image.Image, outline: OutlineSettings, target_size: int, is_pixel_art: bool = False
) -> Image.Image:
    """Solid-colored silhouette extruded by stamping shifted copies around a circle."""
    thickness = outline.width * (target_size / reference_size())
    silhouette = base.getchannel("A")
    resample = Image.Resampling.NEAREST if is_pixel_art else Image.Resampling.BILINEAR
    stamped = Image.new("L", base.size, 0)
    for dx, dy in outline_offsets(thickness, outline.style):
        shifted = silhouette.transform(
            base.size, Image.Transform.AFFINE, (1, 0, -dx, 0, 1, -dy), resample=resample
        )
        stamped = ImageChops.lighter(stamped, shifted)
    return _tinted(stamped, outline.color, outline.opacity)


def apply_pixel_depth(buffer: PixelBuffer, pixel_depth: str) -> PixelBuffer:
    """'8-bit' reduces to an adaptive 256-color palette; other modes keep RGBA8888."""
    if pixel_depth != "8-bit":
        return buffer
    img = buffer.to_image().quantize(colors=256, method=Image.Quantize.FASTOCTREE)
    return PixelBuffer.from_image(img.convert("RGBA"))


def composite(
    source: PixelBuffer,
    target_size: int,
    effects: Optional[EffectConfig] = None,
    crop_region: Optional[CropRegion] = None,
    fidelity_factor: Optional[float] = None,
    timestamp: Optional[float] = None,
) -> PixelBuffer:
    """Renders the final target_size x target_size icon.

    Args:
        source: Source pixels; never modified.
        target_size: Side of the square output in pixels.
        effects: Effect parameters, defaults to EffectConfig().
        crop_region: Optional (left, top, right, bottom) fractions of the source.
        fidelity_factor: 0-100 quality score of the source, see calculate_fidelity().
        timestamp: Seconds used by the animation transform; None means 0.

    Returns:
        A new buffer.
    """
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")
    effects = effects or EffectConfig()
    t_start = time.perf_counter()

    intermediate = render_intermediate(
        source, target_size, effects, crop_region, fidelity_factor, timestamp
    )
    base = intermediate.to_image()
    canvas = Image.new("RGBA", base.size, (0, 0, 0, 0))

    glow = effects.glow
    if _draws_glow(glow):
        layer = glow_layer(base, glow, target_size)
        for _ in range(GLOW_PASSES):
            canvas.alpha_composite(layer)

    outline = effects.outline
    if _draws_outline(outline):
        layer = outline_layer(base, outline, target_size, effects.is_pixel_art)
        # Behind whatever is already on the canvas
        canvas = Image.alpha_composite(layer, canvas)

    canvas.alpha_composite(base)

    result = apply_color_grading(PixelBuffer.from_image(canvas), effects.grading)
    result = apply_pixel_depth(result, effects.pixel_depth)
    log.debug(
        "Composited %dx%d source into %d icon in %.3fs",
        source.width, source.height, target_size, time.perf_counter() - t_start,
    )
    return result

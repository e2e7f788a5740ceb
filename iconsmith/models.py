"""Core data types for the icon pipeline."""

import dataclasses
import hashlib
import json
import uuid
from typing import Any, Dict, Optional, Tuple

import numpy as np
from PIL import Image, ImageColor

OUTLINE_STYLES = ("solid", "dotted", "wavy", "pixelated")
ANIMATION_TYPES = ("float", "pulse", "spin")
PIXEL_DEPTHS = ("none", "32-bit", "8-bit")

RGB = Tuple[int, int, int]
# (left, top, right, bottom) as fractions of the image size
CropRegion = Tuple[float, float, float, float]


@dataclasses.dataclass(eq=False)
class PixelBuffer:
    """A width x height grid of RGBA samples stored as one flat uint8 array."""
    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError(f"Invalid buffer size {self.width}x{self.height}")
        self.width = int(self.width)
        self.height = int(self.height)
        data = np.ascontiguousarray(self.data)
        if data.dtype != np.uint8:
            data = np.clip(data, 0, 255).astype(np.uint8)
        data = data.reshape(-1)
        expected = self.width * self.height * 4
        if data.size != expected:
            raise ValueError(
                f"Buffer holds {data.size} samples, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )
        self.data = data

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        """A fully transparent buffer."""
        return cls(width, height, np.zeros(width * height * 4, dtype=np.uint8))

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """Builds a buffer from an (H, W, 4) or (H, W, 3) array."""
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Expected an (H, W, 3|4) array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            arr = np.clip(np.rint(arr), 0, 255).astype(np.uint8)
        h, w = arr.shape[:2]
        if arr.shape[2] == 3:
            alpha = np.full((h, w, 1), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=2)
        return cls(w, h, arr.copy())

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelBuffer":
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls.from_array(np.asarray(img, dtype=np.uint8))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels.copy(), "RGBA")

    @property
    def pixels(self) -> np.ndarray:
        """(H, W, 4) view onto the flat sample array."""
        return self.data.reshape(self.height, self.width, 4)

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.data.copy())

    def has_content(self) -> bool:
        return bool(np.any(self.alpha > 0))

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.data, other.data)
        )

    def __sizeof__(self) -> int:
        return self.data.nbytes


@dataclasses.dataclass
class Slice:
    """A rectangular region of a larger sheet, in pixels."""
    x: float
    y: float
    w: float
    h: float
    id: str = dataclasses.field(default_factory=lambda: uuid.uuid4().hex)

    def to_crop_region(self, image_width: int, image_height: int) -> CropRegion:
        """Converts to (left, top, right, bottom) fractions of the image."""
        left = max(0.0, min(1.0, self.x / image_width))
        top = max(0.0, min(1.0, self.y / image_height))
        right = max(left, min(1.0, (self.x + self.w) / image_width))
        bottom = max(top, min(1.0, (self.y + self.h) / image_height))
        return left, top, right, bottom


@dataclasses.dataclass
class ProcessedAsset:
    """One icon being worked on: its source and its latest rendered output."""
    asset_id: str
    source: PixelBuffer
    output: Optional[PixelBuffer] = None
    name: str = ""
    label: str = ""
    fidelity: float = 100.0
    # Bumped every time the source buffer is replaced
    generation: int = 0


def parse_color(value: Any) -> RGB:
    """Parses '#rrggbb', CSS color names or an RGB tuple."""
    if isinstance(value, (tuple, list)):
        r, g, b = (int(c) for c in value[:3])
        return r, g, b
    rgb = ImageColor.getrgb(str(value))
    return rgb[0], rgb[1], rgb[2]


@dataclasses.dataclass(frozen=True)
class SegmentationSettings:
    remove_background: bool
    aggression: float
    keep_internal: bool


@dataclasses.dataclass(frozen=True)
class CleanupSettings:
    enabled: bool
    intensity: float


@dataclasses.dataclass(frozen=True)
class GlowSettings:
    enabled: bool
    blur: float
    color: RGB
    opacity: float


@dataclasses.dataclass(frozen=True)
class OutlineSettings:
    enabled: bool
    width: float
    color: RGB
    opacity: float
    style: str


@dataclasses.dataclass(frozen=True)
class GradingSettings:
    brightness: float
    contrast: float
    saturation: float
    hue_rotate: float
    vignette: float

    def is_identity(self) -> bool:
        return (
            abs(self.brightness - 100) < 0.001
            and abs(self.contrast - 100) < 0.001
            and abs(self.saturation - 100) < 0.001
            and abs(self.hue_rotate % 360) < 0.001
            and self.vignette < 0.001
        )


@dataclasses.dataclass(frozen=True)
class AnimationSettings:
    enabled: bool
    kind: str
    speed: float
    intensity: float


@dataclasses.dataclass(frozen=True)
class RenderSettings:
    is_pixel_art: bool
    auto_fit: bool
    corner_radius: float
    pixel_depth: str


@dataclasses.dataclass
class EffectConfig:
    """Flat set of user-facing effect parameters.

    Every field can be set on its own; the grouped properties below hand each
    compositor stage just the parameters it cares about.
    """
    # Background removal
    remove_background: bool = True
    scrub_aggression: float = 80
    keep_internal_colors: bool = True
    # Smart cleanup
    cleanup_enabled: bool = True
    cleanup_intensity: float = 50
    # Outline
    outline_enabled: bool = False
    outline_width: float = 5
    outline_color: str = "#ffffff"
    outline_opacity: float = 1.0
    outline_style: str = "solid"
    # Glow
    glow_enabled: bool = False
    glow_blur: float = 15
    glow_color: str = "#00ff00"
    glow_opacity: float = 0.6
    # Color grading, percent (100 = unchanged) except hue in degrees
    brightness: float = 100
    contrast: float = 100
    saturation: float = 100
    hue_rotate: float = 0
    vignette: float = 0
    # Animation
    animation_enabled: bool = False
    animation_type: str = "float"
    animation_speed: float = 1.0
    animation_intensity: float = 50
    # Rendering
    is_pixel_art: bool = False
    auto_fit: bool = True
    corner_radius: float = 0
    pixel_depth: str = "none"

    def __post_init__(self):
        if self.outline_style not in OUTLINE_STYLES:
            raise ValueError(f"Unknown outline style: {self.outline_style!r}")
        if self.animation_type not in ANIMATION_TYPES:
            raise ValueError(f"Unknown animation type: {self.animation_type!r}")
        if self.pixel_depth not in PIXEL_DEPTHS:
            raise ValueError(f"Unknown pixel depth: {self.pixel_depth!r}")
        # Fail early on unparseable colors rather than mid-render
        parse_color(self.outline_color)
        parse_color(self.glow_color)

    @property
    def segmentation(self) -> SegmentationSettings:
        return SegmentationSettings(
            remove_background=self.remove_background,
            aggression=float(self.scrub_aggression),
            keep_internal=self.keep_internal_colors,
        )

    @property
    def cleanup(self) -> CleanupSettings:
        return CleanupSettings(self.cleanup_enabled, float(self.cleanup_intensity))

    @property
    def glow(self) -> GlowSettings:
        return GlowSettings(
            enabled=self.glow_enabled,
            blur=float(self.glow_blur),
            color=parse_color(self.glow_color),
            opacity=float(self.glow_opacity),
        )

    @property
    def outline(self) -> OutlineSettings:
        return OutlineSettings(
            enabled=self.outline_enabled,
            width=float(self.outline_width),
            color=parse_color(self.outline_color),
            opacity=float(self.outline_opacity),
            style=self.outline_style,
        )

    @property
    def grading(self) -> GradingSettings:
        return GradingSettings(
            brightness=float(self.brightness),
            contrast=float(self.contrast),
            saturation=float(self.saturation),
            hue_rotate=float(self.hue_rotate),
            vignette=float(self.vignette),
        )

    @property
    def animation(self) -> AnimationSettings:
        return AnimationSettings(
            enabled=self.animation_enabled,
            kind=self.animation_type,
            speed=float(self.animation_speed),
            intensity=float(self.animation_intensity),
        )

    @property
    def render(self) -> RenderSettings:
        return RenderSettings(
            is_pixel_art=self.is_pixel_art,
            auto_fit=self.auto_fit,
            corner_radius=float(self.corner_radius),
            pixel_depth=self.pixel_depth,
        )

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def fingerprint(self) -> str:
        """Stable short hash of all parameters, used in render cache keys."""
        payload = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]

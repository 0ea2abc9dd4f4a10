"""
Image normalization for math-problem OCR.

Provides:
- Raw image decoding with dimension metadata
- Bounded rescaling onto a white canvas
- Otsu threshold computation over a luminance histogram
- Widened-band binarization and a contrast/brightness sharpening pass
- A fail-open ``normalize`` that never blocks the pipeline
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Optional, Tuple
import numpy as np

from ..config import ImageConfig
from .outcomes import FailureKind

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class RawImage:
    """An uploaded image: encoded bytes plus decoded pixels when available."""
    data: bytes
    width: int = 0
    height: int = 0
    channels: int = 0
    pixels: Optional[np.ndarray] = field(default=None, repr=False, compare=False)
    name: str = ""

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "") -> "RawImage":
        """
        Decode an encoded image buffer.

        Undecodable data still yields a RawImage (with zero dimensions) so
        the normalizer can pass it through to the OCR engine unchanged.
        """
        import cv2

        buffer = np.frombuffer(data, dtype=np.uint8)
        pixels = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None

        if pixels is None:
            logger.warning(f"Could not decode image {name or '<bytes>'} ({len(data)} bytes)")
            return cls(data=data, name=name)

        # imdecode with IMREAD_UNCHANGED ignores the EXIF orientation tag
        pixels = apply_orientation(pixels, exif_orientation(data))
        return cls.from_array(pixels, name=name, data=data)

    @classmethod
    def from_array(
        cls,
        pixels: np.ndarray,
        name: str = "",
        data: Optional[bytes] = None
    ) -> "RawImage":
        """Wrap an already decoded array (BGR, BGRA or grayscale)."""
        if data is None:
            import cv2
            ok, encoded = cv2.imencode(".png", pixels)
            data = encoded.tobytes() if ok else b""

        height, width = pixels.shape[:2]
        channels = 1 if pixels.ndim == 2 else pixels.shape[2]
        return cls(
            data=data,
            width=width,
            height=height,
            channels=channels,
            pixels=pixels,
            name=name
        )

    @property
    def is_decoded(self) -> bool:
        return self.pixels is not None


@dataclass(frozen=True)
class NormalizedImage:
    """
    Binary image handed to every recognition attempt.

    When normalization was skipped or failed, ``pixels`` holds the raw
    decoded image (or None if it never decoded), ``failure`` is
    NORMALIZATION_DEGRADED and ``degraded_reason`` says why.
    """
    pixels: Optional[np.ndarray] = field(repr=False, compare=False)
    source: RawImage = field(repr=False)
    scale: float = 1.0
    threshold: Optional[int] = None
    degraded_reason: Optional[str] = None
    failure: Optional[FailureKind] = None

    @property
    def is_degraded(self) -> bool:
        return self.failure is not None

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the image the OCR engine will see."""
        if self.pixels is None:
            return (self.source.width, self.source.height)
        return (self.pixels.shape[1], self.pixels.shape[0])

    def to_ocr_input(self):
        """Return something pytesseract accepts: an array or a PIL image."""
        if self.pixels is not None:
            return self.pixels

        import io
        from PIL import Image, ImageOps
        return ImageOps.exif_transpose(Image.open(io.BytesIO(self.source.data)))


# ============================================================================
# Orientation
# ============================================================================

def exif_orientation(data: bytes) -> int:
    """EXIF orientation (1-8) of an encoded image; 1 when absent or unreadable."""
    import io
    from PIL import Image

    try:
        with Image.open(io.BytesIO(data)) as img:
            orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
    except Exception as e:
        logger.debug(f"No EXIF orientation available: {e}")
        return 1

    return orientation if orientation in range(1, 9) else 1


def apply_orientation(pixels: np.ndarray, orientation: int) -> np.ndarray:
    """
    Rotate/flip decoded pixels so they display upright.

    Follows the same mapping as ``PIL.ImageOps.exif_transpose``: 6 is a
    photo taken with the phone turned clockwise and needs a 90° clockwise
    rotation, 8 the opposite.
    """
    if orientation == 2:
        pixels = pixels[:, ::-1]
    elif orientation == 3:
        pixels = np.rot90(pixels, 2)
    elif orientation == 4:
        pixels = pixels[::-1]
    elif orientation == 5:
        pixels = np.swapaxes(pixels, 0, 1)
    elif orientation == 6:
        pixels = np.rot90(pixels, -1)
    elif orientation == 7:
        pixels = np.swapaxes(pixels, 0, 1)[::-1, ::-1]
    elif orientation == 8:
        pixels = np.rot90(pixels, 1)
    else:
        return pixels

    return np.ascontiguousarray(pixels)


# ============================================================================
# Geometry
# ============================================================================

def compute_scale(width: int, height: int, config: Optional[ImageConfig] = None) -> float:
    """
    Scale factor that upsamples small images (up to ``max_upscale``) and caps
    the longest side at ``max_canvas_size``.
    """
    config = config or ImageConfig()
    return min(config.max_upscale, config.max_canvas_size / max(width, height))


def target_size(
    width: int,
    height: int,
    config: Optional[ImageConfig] = None
) -> Tuple[int, int]:
    """Canvas size (width, height) for a source of the given dimensions."""
    scale = compute_scale(width, height, config)
    # 1e-9 absorbs products like 1100 * (3000 / 1100) == 2999.9999999999995
    new_width = max(1, math.floor(width * scale + 1e-9))
    new_height = max(1, math.floor(height * scale + 1e-9))
    return new_width, new_height


def has_valid_dimensions(image: RawImage, config: Optional[ImageConfig] = None) -> bool:
    """True if the image decoded and fits within the sanity cap."""
    config = config or ImageConfig()
    if not image.is_decoded or not image.width or not image.height:
        return False
    return image.width <= config.max_source_size and image.height <= config.max_source_size


# ============================================================================
# Core Processing Functions
# ============================================================================

def _to_uint8(pixels: np.ndarray) -> np.ndarray:
    if pixels.dtype == np.uint8:
        return pixels
    if pixels.dtype == np.uint16:
        return (pixels >> 8).astype(np.uint8)
    if np.issubdtype(pixels.dtype, np.floating):
        return np.clip(pixels * 255.0, 0, 255).astype(np.uint8)
    return np.clip(pixels, 0, 255).astype(np.uint8)


def render_on_white(pixels: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """
    Composite an image onto a white background and resize it with smoothing.

    Args:
        pixels: Source image (grayscale, BGR or BGRA)
        size: Target (width, height)

    Returns:
        BGR uint8 canvas of the requested size
    """
    import cv2

    src = _to_uint8(pixels)
    alpha = None

    if src.ndim == 2:
        bgr = cv2.cvtColor(src, cv2.COLOR_GRAY2BGR)
    elif src.shape[2] == 1:
        bgr = cv2.cvtColor(src[:, :, 0], cv2.COLOR_GRAY2BGR)
    elif src.shape[2] == 4:
        bgr = src[:, :, :3]
        alpha = src[:, :, 3:4].astype(np.float32) / 255.0
    elif src.shape[2] == 3:
        bgr = src
    else:
        raise ValueError(f"Unexpected image shape: {src.shape}")

    if alpha is not None:
        blended = bgr.astype(np.float32) * alpha + 255.0 * (1.0 - alpha)
        bgr = np.clip(np.rint(blended), 0, 255).astype(np.uint8)

    src_h, src_w = bgr.shape[:2]
    if (src_w, src_h) == tuple(size):
        return bgr.copy()

    upscale = size[0] * size[1] > src_w * src_h
    interpolation = cv2.INTER_CUBIC if upscale else cv2.INTER_AREA
    return cv2.resize(bgr, tuple(size), interpolation=interpolation)


def luminance(image: np.ndarray) -> np.ndarray:
    """Unrounded 0.299R + 0.587G + 0.114B luminance of a BGR (or gray) image."""
    if image.ndim == 2:
        return image.astype(np.float64)
    blue = image[:, :, 0].astype(np.float64)
    green = image[:, :, 1].astype(np.float64)
    red = image[:, :, 2].astype(np.float64)
    return 0.299 * red + 0.587 * green + 0.114 * blue


def luminance_histogram(gray: np.ndarray) -> np.ndarray:
    """256-bin histogram of luminance rounded half-up."""
    levels = np.clip(np.floor(gray + 0.5), 0, 255).astype(np.int64)
    return np.bincount(levels.ravel(), minlength=256)


def otsu_threshold(histogram: np.ndarray) -> int:
    """
    Otsu threshold: the level maximizing between-class variance
    ``wB * wF * (mB - mF)^2``, where the background class holds levels <= t.

    When the maximum is reached on a run of consecutive levels (empty bins
    between two classes), the midpoint of the first such run is returned.

    Args:
        histogram: 256 pixel counts

    Returns:
        Threshold level in [0, 255]; 0 for empty or single-level histograms
    """
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total == 0:
        return 0

    levels = np.arange(hist.size, dtype=np.float64)
    weight_b = np.cumsum(hist)
    sum_b = np.cumsum(levels * hist)
    weight_f = total - weight_b
    total_sum = sum_b[-1]

    valid = (weight_b > 0) & (weight_f > 0)
    between = np.zeros_like(hist)
    mean_b = sum_b[valid] / weight_b[valid]
    mean_f = (total_sum - sum_b[valid]) / weight_f[valid]
    between[valid] = weight_b[valid] * weight_f[valid] * (mean_b - mean_f) ** 2

    best = between.max()
    if best <= 0:
        return 0

    first = int(np.argmax(between))
    last = first
    while last + 1 < between.size and between[last + 1] == best:
        last += 1

    return (first + last) // 2


def binarize(
    gray: np.ndarray,
    threshold: int,
    band_lower: float = 0.9,
    band_upper: float = 1.1
) -> np.ndarray:
    """
    Map luminance to 0/255 with a widened decision band around ``threshold``.

    Pixels above ``band_upper * t`` are white, below ``band_lower * t`` black,
    and the remainder are compared against ``t`` directly.
    """
    white = gray > threshold * band_upper
    black = gray < threshold * band_lower
    middle = np.where(gray > threshold, 255, 0)
    binary = np.select([white, black], [255, 0], default=middle)
    return binary.astype(np.uint8)


def sharpen(image: np.ndarray, contrast: float = 1.2, brightness: float = 1.1) -> np.ndarray:
    """Contrast around mid-grey followed by a brightness multiplier, clipped."""
    out = (image.astype(np.float32) - 127.5) * contrast + 127.5
    out = out * brightness
    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


# ============================================================================
# Main Normalization Pipeline
# ============================================================================

def passthrough(image: RawImage, reason: str) -> NormalizedImage:
    """Wrap the raw image unmodified, recording why enhancement was skipped."""
    pixels = image.pixels
    if pixels is not None:
        pixels = pixels.view()
        pixels.setflags(write=False)
    return NormalizedImage(
        pixels=pixels,
        source=image,
        degraded_reason=reason,
        failure=FailureKind.NORMALIZATION_DEGRADED
    )


def _normalize_pixels(image: RawImage, config: ImageConfig) -> NormalizedImage:
    scale = compute_scale(image.width, image.height, config)
    size = target_size(image.width, image.height, config)

    canvas = render_on_white(image.pixels, size)
    gray = luminance(canvas)
    threshold = otsu_threshold(luminance_histogram(gray))
    binary = binarize(gray, threshold, config.band_lower, config.band_upper)
    result = sharpen(binary, config.contrast, config.brightness)
    result.setflags(write=False)

    logger.debug(
        f"Normalized {image.width}x{image.height} -> {size[0]}x{size[1]} "
        f"(scale={scale:.2f}, threshold={threshold})"
    )
    return NormalizedImage(pixels=result, source=image, scale=scale, threshold=threshold)


def normalize(image: RawImage, config: Optional[ImageConfig] = None) -> NormalizedImage:
    """
    Rescale, binarize and sharpen an image for OCR.

    Best-effort: malformed dimensions, processing errors and running past
    ``config.timeout_seconds`` all return the raw image unmodified.

    A timed-out worker cannot be interrupted: it keeps running in the
    background until its pass finishes, and its result is discarded.

    Args:
        image: Raw uploaded image
        config: Normalization parameters

    Returns:
        NormalizedImage (degraded when enhancement did not complete)
    """
    config = config or ImageConfig()

    if not has_valid_dimensions(image, config):
        logger.warning(
            f"Unsuitable image dimensions ({image.width}x{image.height}), using original"
        )
        return passthrough(image, "invalid dimensions")

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="normalize")
    future = executor.submit(_normalize_pixels, image, config)
    try:
        return future.result(timeout=config.timeout_seconds)
    except FuturesTimeout:
        logger.warning(
            f"Normalization exceeded {config.timeout_seconds:.1f}s, using original"
        )
        return passthrough(image, "timeout")
    except Exception as e:
        logger.warning(f"Normalization failed, using original: {e}")
        return passthrough(image, f"processing error: {e}")
    finally:
        executor.shutdown(wait=False)

"""Codec adapter: decode, encode and pixel primitives for the pipeline stages.

Pillow reads and writes the container formats, NumPy does the
per-pixel arithmetic and OpenCV provides Gaussian kernels, resizing and the
CIE Lab conversions used for luminance-only operations. All functions are
pure: they never modify their inputs.
"""

from __future__ import annotations

import io
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, cast

import cv2
import numpy as np
from PIL import Image

from jpg2png.errors import CodecError
from jpg2png.models import ImageBuffer, ImageFormat, ImageMetadata

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray

# Re-encode settings used when a stage keeps the source format
DEFAULT_JPEG_QUALITY = 80
DEFAULT_WEBP_QUALITY = 80
DEFAULT_PNG_COMPRESSION = 6

# Local contrast (L* units) separating flat from jagged areas when sharpening
SHARPEN_THRESHOLD = 2.0

WEBP_EFFORT = 6

_GRAYSCALE_MODES = frozenset({"1", "L", "LA", "La", "I", "I;16", "F"})


@dataclass(frozen=True)
class Raster:
    """Decoded pixels plus what is needed to re-encode them.

    Attributes:
        pixels: RGB float32 array in the 0-1 range, shape (height, width, 3)
        alpha: Alpha float32 array in the 0-1 range, or None
        grayscale: Whether the source was single-channel
        source_format: Pillow format name of the buffer this came from
    """

    pixels: NDArray[np.float32]
    alpha: NDArray[np.float32] | None
    grayscale: bool
    source_format: str

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def format(self) -> ImageFormat:
        return ImageFormat.from_pil(self.source_format)


@contextmanager
def open_image(buffer: ImageBuffer) -> Iterator[Image.Image]:
    """Open an encoded buffer and close the codec handle on every exit path.

    Raises:
        CodecError: If the bytes cannot be identified as an image or its
            dimensions exceed Pillow's ``MAX_IMAGE_PIXELS``
    """
    try:
        image = Image.open(io.BytesIO(buffer))
    except Image.DecompressionBombError as e:
        raise CodecError(f"Image dimensions exceed the decode limit: {e}") from e
    except (OSError, ValueError, TypeError) as e:
        raise CodecError(f"Cannot identify image data: {e}") from e

    with image:
        _check_pixel_limit(image)
        yield image


def _check_pixel_limit(image: Image.Image) -> None:
    # Pillow only warns between MAX_IMAGE_PIXELS and twice that; treat both as too large
    limit = Image.MAX_IMAGE_PIXELS
    pixels = image.width * image.height
    if limit is not None and pixels > limit:
        raise CodecError(
            f"Image dimensions exceed the decode limit: {image.width}x{image.height} "
            f"({pixels} pixels, maximum {limit})"
        )


def read_metadata(buffer: ImageBuffer) -> ImageMetadata:
    """Read format, dimensions and channel layout without decoding pixels.

    Raises:
        CodecError: If the buffer is not a readable image
    """
    with open_image(buffer) as img:
        bands = img.getbands()
        has_alpha = "A" in bands or "a" in bands or "transparency" in img.info
        if img.mode == "P":
            channels = 4 if has_alpha else 3
        else:
            channels = len(bands)

        return ImageMetadata(
            format=ImageFormat.from_pil(img.format),
            width=img.width,
            height=img.height,
            channels=channels,
            has_alpha=has_alpha,
        )


def decode(buffer: ImageBuffer) -> Raster:
    """Decode an encoded buffer into a Raster.

    Raises:
        CodecError: If the buffer cannot be decoded
    """
    with open_image(buffer) as img:
        try:
            img.load()
            source_format = img.format or "PNG"
            has_alpha = "A" in img.getbands() or "transparency" in img.info
            grayscale = img.mode in _GRAYSCALE_MODES

            alpha: NDArray[np.float32] | None = None
            if has_alpha:
                rgba = np.asarray(img.convert("RGBA"), dtype=np.float32) / 255.0
                pixels = np.ascontiguousarray(rgba[:, :, :3])
                alpha = np.ascontiguousarray(rgba[:, :, 3])
            else:
                pixels = np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0

        except (OSError, ValueError, SyntaxError) as e:
            raise CodecError(f"Failed to decode {img.format or 'image'} data: {e}") from e

    return Raster(
        pixels=cast("NDArray[np.float32]", pixels),
        alpha=alpha,
        grayscale=grayscale,
        source_format=source_format,
    )


def blur(raster: Raster, sigma: float) -> Raster:
    """Gaussian blur with the given sigma; sigma <= 0 returns the raster unchanged."""
    if sigma <= 0:
        return raster

    blurred = cv2.GaussianBlur(
        raster.pixels,
        (0, 0),
        sigmaX=float(sigma),
        sigmaY=float(sigma),
        borderType=cv2.BORDER_REFLECT,
    )
    return replace(raster, pixels=_clip(blurred))


def sharpen(raster: Raster, sigma: float, flat: float, jagged: float) -> Raster:
    """Unsharp mask on the L* channel with separate flat/jagged gains.

    Pixels whose local detail is within SHARPEN_THRESHOLD L* units get the
    ``flat`` gain, the rest get ``jagged``. Chroma is left untouched.
    sigma <= 0 returns the raster unchanged.
    """
    if sigma <= 0:
        return raster

    lab = _to_lab(raster.pixels)
    lightness = np.ascontiguousarray(lab[:, :, 0])
    blurred = cv2.GaussianBlur(lightness, (0, 0), sigmaX=float(sigma), sigmaY=float(sigma))
    detail = lightness - blurred
    gain = np.where(np.abs(detail) <= SHARPEN_THRESHOLD, flat, jagged).astype(np.float32)
    lab[:, :, 0] = np.clip(lightness + gain * detail, 0.0, 100.0)

    return replace(raster, pixels=_from_lab(lab))


def modulate(raster: Raster, brightness: float = 1.0, saturation: float = 1.0) -> Raster:
    """Multiply lightness by ``brightness`` and chroma by ``saturation``."""
    lab = _to_lab(raster.pixels)
    lab[:, :, 0] = np.clip(lab[:, :, 0] * brightness, 0.0, 100.0)
    lab[:, :, 1:] *= saturation

    return replace(raster, pixels=_from_lab(lab))


def normalize(raster: Raster, lower: float = 1.0, upper: float = 99.0) -> Raster:
    """Stretch lightness so the given percentiles map to black and white.

    Images with an (almost) flat histogram are returned unchanged.
    """
    lab = _to_lab(raster.pixels)
    lightness = lab[:, :, 0]
    low, high = np.percentile(lightness, (lower, upper))
    if high - low < 1e-3:
        return raster

    lab[:, :, 0] = np.clip((lightness - low) * (100.0 / (high - low)), 0.0, 100.0)
    return replace(raster, pixels=_from_lab(lab))


def linear(raster: Raster, multiplier: float, offset: float = 0.0) -> Raster:
    """Apply ``out = multiplier * in + offset`` to every colour channel.

    ``offset`` is expressed in 8-bit units (0-255). Alpha is not touched.
    """
    adjusted = raster.pixels * np.float32(multiplier) + np.float32(offset / 255.0)
    return replace(raster, pixels=_clip(adjusted))


def resize(raster: Raster, width: int, height: int) -> Raster:
    """Resample to exactly ``width`` x ``height`` pixels."""
    if width == raster.width and height == raster.height:
        return raster
    if width < 1 or height < 1:
        raise ValueError(f"Resize target must be at least 1x1, got {width}x{height}")

    shrinking = width <= raster.width and height <= raster.height
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LANCZOS4
    pixels = cv2.resize(raster.pixels, (width, height), interpolation=interpolation)
    alpha = None
    if raster.alpha is not None:
        alpha = cv2.resize(raster.alpha, (width, height), interpolation=interpolation)
        alpha = _clip(alpha)

    return replace(raster, pixels=_clip(pixels), alpha=alpha)


def encode_jpeg(
    raster: Raster, quality: int, progressive: bool = False, optimize: bool = False
) -> ImageBuffer:
    """Encode as JPEG. Alpha is dropped since JPEG cannot carry it."""
    image = to_pil(raster, keep_alpha=False)
    return _save(
        image,
        ImageFormat.JPEG.pil_format,
        quality=quality,
        progressive=progressive,
        optimize=optimize,
    )


def encode_png(
    raster: Raster,
    compression_level: int = DEFAULT_PNG_COMPRESSION,
    optimize: bool = False,
    palette: bool = False,
) -> ImageBuffer:
    """Encode as PNG, optionally quantized to an 8-bit palette."""
    image = to_pil(raster)
    if palette:
        if "A" in image.getbands():
            image = image.convert("RGBA").quantize(colors=256, method=Image.Quantize.FASTOCTREE)
        else:
            image = image.quantize(colors=256, method=Image.Quantize.MEDIANCUT)
    return _save(
        image, ImageFormat.PNG.pil_format, compress_level=compression_level, optimize=optimize
    )


def encode_webp(raster: Raster, quality: int, effort: int = WEBP_EFFORT) -> ImageBuffer:
    """Encode as lossy WebP; ``effort`` maps to libwebp's method (0-6)."""
    image = to_pil(raster)
    return _save(image, ImageFormat.WEBP.pil_format, quality=quality, method=effort)


def encode_default(raster: Raster) -> ImageBuffer:
    """Re-encode in the raster's source format with default settings."""
    fmt = raster.format
    if fmt is ImageFormat.JPEG:
        return encode_jpeg(raster, quality=DEFAULT_JPEG_QUALITY)
    if fmt is ImageFormat.PNG:
        return encode_png(raster)
    if fmt is ImageFormat.WEBP:
        return encode_webp(raster, quality=DEFAULT_WEBP_QUALITY, effort=4)
    return _save(to_pil(raster), raster.source_format)


def to_pil(raster: Raster, keep_alpha: bool = True) -> Image.Image:
    """Convert a Raster back into an 8-bit Pillow image."""
    rgb = _to_uint8(raster.pixels)
    if raster.grayscale:
        image = Image.fromarray(cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY))
    else:
        image = Image.fromarray(rgb)

    if keep_alpha and raster.alpha is not None:
        image.putalpha(Image.fromarray(_to_uint8(raster.alpha)))

    return image


def _save(image: Image.Image, pil_format: str, **options: object) -> ImageBuffer:
    output = io.BytesIO()
    try:
        image.save(output, format=pil_format, **options)
    except (OSError, ValueError, KeyError) as e:
        raise CodecError(f"Failed to encode {pil_format} data: {e}") from e
    return output.getvalue()


def _to_lab(pixels: NDArray[np.float32]) -> NDArray[np.float32]:
    # float32 input gives L* in 0-100 and a*/b* roughly in -127..127
    return cast("NDArray[np.float32]", cv2.cvtColor(pixels, cv2.COLOR_RGB2LAB))


def _from_lab(lab: NDArray[np.float32]) -> NDArray[np.float32]:
    return _clip(cv2.cvtColor(lab, cv2.COLOR_LAB2RGB))


def _clip(values: NDArray[np.float32]) -> NDArray[np.float32]:
    return cast("NDArray[np.float32]", np.clip(values, 0.0, 1.0).astype(np.float32, copy=False))


def _to_uint8(values: NDArray[np.float32]) -> NDArray[np.uint8]:
    return cast("NDArray[np.uint8]", (np.clip(values, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8))

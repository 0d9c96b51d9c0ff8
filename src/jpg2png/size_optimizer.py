"""Size optimization stage: bounded downscaling plus format-aware re-encoding."""

from jpg2png import codec
from jpg2png.models import ImageBuffer, ImageFormat, SizeOptimizationParams


def compute_target_size(
    width: int,
    height: int,
    max_width: int | None,
    max_height: int | None,
    preserve_aspect_ratio: bool = True,
) -> tuple[int, int]:
    """Work out the resize target for a bounding box without ever enlarging.

    With the aspect ratio preserved the image is scaled to fit inside the
    box. Otherwise each bounded axis is clamped on its own; when only one
    axis is bounded the other still follows proportionally.

    Args:
        width: Current width
        height: Current height
        max_width: Width bound, or None
        max_height: Height bound, or None
        preserve_aspect_ratio: Fit inside the box instead of clamping axes

    Returns:
        (width, height) to resize to; equal to the input when nothing changes
    """
    if max_width is None and max_height is None:
        return width, height

    if not preserve_aspect_ratio and max_width is not None and max_height is not None:
        return min(width, max_width), min(height, max_height)

    scales = []
    if max_width is not None:
        scales.append(max_width / width)
    if max_height is not None:
        scales.append(max_height / height)
    scale = min(scales)

    if scale >= 1.0:
        return width, height

    return max(1, round(width * scale)), max(1, round(height * scale))


def optimize_size(
    buffer: ImageBuffer, params: SizeOptimizationParams | None = None
) -> ImageBuffer:
    """Shrink an image's dimensions and re-encode it with compact settings.

    Format-specific encoding:
    - JPEG: quality, progressive scan, optimized Huffman tables
    - PNG: compression level, adaptive filtering; ``progressive`` is ignored
      because interlaced PNG is never written
    - WebP: quality at the highest effort level
    - anything else: no encoder branch; the buffer is returned unchanged
      unless it had to be resized

    Args:
        buffer: Encoded source image
        params: Stage parameters; None uses the defaults

    Returns:
        Newly encoded image

    Raises:
        CodecError: If decoding or encoding fails
    """
    params = params or SizeOptimizationParams()

    raster = codec.decode(buffer)
    target_width, target_height = compute_target_size(
        raster.width,
        raster.height,
        params.max_width,
        params.max_height,
        params.preserve_aspect_ratio,
    )
    resized = (target_width, target_height) != (raster.width, raster.height)
    if resized:
        raster = codec.resize(raster, target_width, target_height)

    fmt = raster.format
    if fmt is ImageFormat.JPEG:
        return codec.encode_jpeg(
            raster, quality=params.quality, progressive=params.progressive, optimize=True
        )
    elif fmt is ImageFormat.PNG:
        return codec.encode_png(
            raster,
            compression_level=params.compression_level,
            optimize=params.adaptive_filtering,
        )
    elif fmt is ImageFormat.WEBP:
        return codec.encode_webp(raster, quality=params.quality, effort=codec.WEBP_EFFORT)

    if resized:
        return codec.encode_default(raster)
    return buffer

"""Quality enhancement stage."""

from jpg2png import codec
from jpg2png.models import ImageBuffer, QualityEnhancementParams

# Slight saturation lift applied with every brightness correction
SATURATION_BOOST = 1.01


def enhance_quality(
    buffer: ImageBuffer, params: QualityEnhancementParams | None = None
) -> ImageBuffer:
    """Sharpen and add punch to an image.

    Operations run in this order:
    1. Sharpen
    2. Histogram normalize (if normalize_enabled)
    3. Brightness multiplier with a fixed 1% saturation boost
    4. Linear contrast stretch with zero offset (if enhance_enabled)

    The output keeps the input's format.

    Args:
        buffer: Encoded source image
        params: Stage parameters; None uses the defaults

    Returns:
        Newly encoded image

    Raises:
        CodecError: If decoding or encoding fails
    """
    params = params or QualityEnhancementParams()

    raster = codec.decode(buffer)
    raster = codec.sharpen(
        raster, params.sharpen_sigma, params.sharpen_flat, params.sharpen_jagged
    )

    if params.normalize_enabled:
        raster = codec.normalize(raster)

    raster = codec.modulate(
        raster, brightness=params.brightness_multiplier, saturation=SATURATION_BOOST
    )

    if params.enhance_enabled:
        raster = codec.linear(raster, params.contrast_multiplier, 0.0)

    return codec.encode_default(raster)

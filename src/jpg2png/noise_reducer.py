"""Noise reduction stage."""

from jpg2png import codec
from jpg2png.models import ImageBuffer, NoiseReductionParams


def reduce_noise(buffer: ImageBuffer, params: NoiseReductionParams | None = None) -> ImageBuffer:
    """Suppress sensor noise while keeping perceived detail and tone.

    Steps:
    1. Light Gaussian blur to smooth noise (skipped when blur_sigma <= 0)
    2. Compensating sharpen to recover edges lost to the blur
       (skipped when sharpen_sigma <= 0)
    3. Brightness/saturation correction for blur-induced dullness

    The output keeps the input's format.

    Args:
        buffer: Encoded source image
        params: Stage parameters; None uses the defaults

    Returns:
        Newly encoded image

    Raises:
        CodecError: If decoding or encoding fails
    """
    params = params or NoiseReductionParams()

    raster = codec.decode(buffer)
    raster = codec.blur(raster, params.blur_sigma)
    raster = codec.sharpen(
        raster, params.sharpen_sigma, params.sharpen_flat, params.sharpen_jagged
    )
    raster = codec.modulate(
        raster, brightness=params.brightness_adjust, saturation=params.saturation_adjust
    )

    return codec.encode_default(raster)

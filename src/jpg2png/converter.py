"""Format conversion: source validation, target encoding and size statistics."""

from jpg2png import codec
from jpg2png.errors import CodecError, EncodeFailureError
from jpg2png.models import ImageBuffer, ImageFormat, OutputOptions, SizeChange

JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Anything shorter cannot be a meaningful image
MIN_BUFFER_LENGTH = 10


def validate_jpeg(buffer: object) -> bool:
    """Check whether a buffer looks like a JPEG image.

    Only the magic bytes are inspected; the rest of the stream is not parsed.

    Args:
        buffer: Candidate image bytes

    Returns:
        True iff the buffer is at least 10 bytes and starts with FF D8 FF
    """
    if not isinstance(buffer, (bytes, bytearray, memoryview)):
        return False
    data = bytes(buffer[:3])
    return len(buffer) >= MIN_BUFFER_LENGTH and data == JPEG_SIGNATURE


def detect_format(buffer: ImageBuffer) -> ImageFormat | None:
    """Identify JPEG, PNG or WebP data from its leading bytes.

    Returns:
        The detected format, or None when no known signature matches
    """
    if buffer.startswith(JPEG_SIGNATURE):
        return ImageFormat.JPEG
    if buffer.startswith(PNG_SIGNATURE):
        return ImageFormat.PNG
    if len(buffer) >= 12 and buffer[:4] == b"RIFF" and buffer[8:12] == b"WEBP":
        return ImageFormat.WEBP
    return None


class FormatConverter:
    """Encode pipeline output into the requested target format."""

    def __init__(self, target: ImageFormat = ImageFormat.PNG, options: OutputOptions | None = None):
        """Initialize with the target format and its encoder settings.

        Args:
            target: Output format (jpeg, png or webp)
            options: Encoder settings; None uses the defaults

        Raises:
            ValueError: If target is not an encodable format
        """
        if target is ImageFormat.OTHER:
            raise ValueError("Target format must be jpeg, png or webp")
        self.target = target
        self.options = options or OutputOptions()

    def convert(self, buffer: ImageBuffer, options: OutputOptions | None = None) -> ImageBuffer:
        """Decode a buffer and encode it in the target format.

        Args:
            buffer: Encoded image in any decodable format
            options: Per-call encoder settings overriding the instance defaults

        Returns:
            Encoded image in the target format

        Raises:
            EncodeFailureError: If decoding or encoding fails
        """
        opts = options or self.options
        try:
            raster = codec.decode(buffer)
            if self.target is ImageFormat.PNG:
                return codec.encode_png(
                    raster,
                    compression_level=opts.compression_level,
                    optimize=opts.adaptive_filtering,
                    palette=opts.palette,
                )
            elif self.target is ImageFormat.JPEG:
                return codec.encode_jpeg(
                    raster, quality=opts.quality, progressive=opts.progressive, optimize=True
                )
            else:
                return codec.encode_webp(raster, quality=opts.quality)
        except CodecError as e:
            raise EncodeFailureError(self.target.value, e) from e


def compute_size_change(original_size: int, final_size: int) -> SizeChange:
    """Compute the size delta between an input and an output buffer.

    Percentages are formatted with one decimal place. ``compression_ratio``
    is the percentage shrink, or ``"0"`` when the output is not smaller.

    Args:
        original_size: Input size in bytes (must be positive)
        final_size: Output size in bytes

    Returns:
        SizeChange statistics

    Raises:
        ValueError: If original_size is not positive
    """
    if original_size <= 0:
        raise ValueError(f"original_size must be positive, got {original_size}")

    delta = final_size - original_size
    percent = f"{delta / original_size * 100:.1f}"
    if final_size < original_size:
        ratio = f"{(original_size - final_size) / original_size * 100:.1f}"
    else:
        ratio = "0"

    return SizeChange(
        size_change_bytes=delta,
        size_change_percent=percent,
        compression_ratio=ratio,
    )

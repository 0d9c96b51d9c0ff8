"""Core data models for the JPG to PNG converter."""

import math
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

ImageBuffer = bytes

_ParamsT = TypeVar("_ParamsT")


class ImageFormat(Enum):
    """Encoded image formats understood by the pipeline."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    OTHER = "other"

    @property
    def mime_type(self) -> str:
        """MIME type used in data URIs and HTTP responses."""
        if self is ImageFormat.OTHER:
            return "application/octet-stream"
        return f"image/{self.value}"

    @property
    def pil_format(self) -> str:
        """Format name understood by ``PIL.Image.save``."""
        if self is ImageFormat.OTHER:
            raise ValueError("No encoder is registered for format 'other'")
        return self.value.upper()

    @classmethod
    def from_pil(cls, name: str | None) -> "ImageFormat":
        """Map a Pillow format name (``img.format``) to an ImageFormat."""
        if name is None:
            return cls.OTHER
        normalized = name.lower()
        if normalized in ("jpeg", "jpg", "mpo"):
            return cls.JPEG
        for member in (cls.PNG, cls.WEBP):
            if member.value == normalized:
                return member
        return cls.OTHER

    @classmethod
    def parse(cls, value: str) -> "ImageFormat":
        """Parse a user supplied target format name.

        Raises:
            ValueError: If the name is not jpeg, jpg, png or webp
        """
        normalized = value.strip().lower()
        if normalized == "jpg":
            normalized = "jpeg"
        for member in (cls.JPEG, cls.PNG, cls.WEBP):
            if member.value == normalized:
                return member
        raise ValueError(f"Unsupported output format: {value}. Expected one of jpeg, png, webp")


class ProcessingOption(Enum):
    """Optional pipeline stages that a request can ask for."""

    REDUCE_NOISE = "reduce-noise"
    IMPROVE_QUALITY = "improve-quality"
    OPTIMIZE_SIZE = "optimize-size"

    @classmethod
    def canonical_order(cls) -> tuple["ProcessingOption", ...]:
        """Execution order of the stages, independent of request order."""
        return (cls.REDUCE_NOISE, cls.IMPROVE_QUALITY, cls.OPTIMIZE_SIZE)

    @classmethod
    def parse(cls, identifier: str) -> "ProcessingOption":
        """Parse a wire identifier such as ``"reduce-noise"``.

        Raises:
            ValueError: If the identifier is unknown
        """
        for member in cls:
            if member.value == identifier:
                return member
        valid = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown processing option: {identifier!r}. Expected one of {valid}")


def parse_options(identifiers: Iterable["str | ProcessingOption"]) -> frozenset[ProcessingOption]:
    """Build a ProcessingOption set from identifiers or enum members.

    Duplicates collapse; order is discarded.

    Raises:
        ValueError: If any identifier is unknown
    """
    options: set[ProcessingOption] = set()
    for identifier in identifiers:
        if isinstance(identifier, ProcessingOption):
            options.add(identifier)
        elif isinstance(identifier, str):
            options.add(ProcessingOption.parse(identifier))
        else:
            raise ValueError(f"Processing option must be a string, got {type(identifier).__name__}")
    return frozenset(options)


@dataclass(frozen=True)
class ImageMetadata:
    """Decoded properties of an encoded image.

    Attributes:
        format: Encoded format
        width: Width in pixels
        height: Height in pixels
        channels: Number of bands (1 grey, 3 RGB, 4 RGBA, ...)
        has_alpha: Whether an alpha band or transparency is present
    """

    format: ImageFormat
    width: int
    height: int
    channels: int
    has_alpha: bool


@dataclass(frozen=True)
class NoiseReductionParams:
    """Parameters for the noise reduction stage.

    Attributes:
        blur_sigma: Gaussian blur sigma, 0 disables the blur
        sharpen_sigma: Compensating sharpen sigma, 0 disables the sharpen
        sharpen_flat: Sharpen gain applied to flat areas
        sharpen_jagged: Sharpen gain applied to jagged areas
        brightness_adjust: Brightness multiplier
        saturation_adjust: Saturation multiplier
    """

    blur_sigma: float = 0.3
    sharpen_sigma: float = 0.5
    sharpen_flat: float = 1.0
    sharpen_jagged: float = 1.0
    brightness_adjust: float = 1.02
    saturation_adjust: float = 0.98

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        _require_number(self, "blur_sigma", "sharpen_sigma")
        _require_non_negative(self, "sharpen_flat", "sharpen_jagged")
        _require_non_negative(self, "brightness_adjust", "saturation_adjust")


@dataclass(frozen=True)
class QualityEnhancementParams:
    """Parameters for the quality enhancement stage.

    Attributes:
        sharpen_sigma: Sharpen sigma
        sharpen_flat: Sharpen gain applied to flat areas
        sharpen_jagged: Sharpen gain applied to jagged areas
        normalize_enabled: Stretch the luminance histogram
        enhance_enabled: Apply the linear contrast stretch
        contrast_multiplier: Linear contrast multiplier (offset is always 0)
        brightness_multiplier: Brightness multiplier
    """

    sharpen_sigma: float = 1.0
    sharpen_flat: float = 1.0
    sharpen_jagged: float = 2.0
    normalize_enabled: bool = True
    enhance_enabled: bool = True
    contrast_multiplier: float = 1.05
    brightness_multiplier: float = 1.02

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        _require_number(self, "sharpen_sigma")
        _require_non_negative(self, "sharpen_flat", "sharpen_jagged")
        _require_non_negative(self, "contrast_multiplier", "brightness_multiplier")
        _require_bool(self, "normalize_enabled", "enhance_enabled")


@dataclass(frozen=True)
class SizeOptimizationParams:
    """Parameters for the size optimization stage.

    Attributes:
        max_width: Maximum output width, None leaves the width alone
        max_height: Maximum output height, None leaves the height alone
        quality: Lossy encoder quality (1-100)
        compression_level: zlib compression level for PNG (0-9)
        progressive: Progressive JPEG / interlaced output where supported
        adaptive_filtering: Let the PNG encoder pick per-row filters
        preserve_aspect_ratio: Fit inside the box instead of clamping each axis
    """

    max_width: int | None = None
    max_height: int | None = None
    quality: int = 80
    compression_level: int = 9
    progressive: bool = True
    adaptive_filtering: bool = True
    preserve_aspect_ratio: bool = True

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        for name in ("max_width", "max_height"):
            value = getattr(self, name)
            if value is not None and (not _is_int(value) or value < 1):
                raise ValueError(f"{name} must be a positive integer or None, got {value!r}")
        _require_int_range(self, "quality", 1, 100)
        _require_int_range(self, "compression_level", 0, 9)
        _require_bool(self, "progressive", "adaptive_filtering", "preserve_aspect_ratio")


@dataclass(frozen=True)
class OutputOptions:
    """Settings for the final target-format encode.

    Attributes:
        quality: Lossy encoder quality (1-100), used for JPEG/WebP targets
        compression_level: zlib compression level for PNG (0-9)
        adaptive_filtering: Let the PNG encoder pick per-row filters
        progressive: Progressive output for JPEG targets
        palette: Quantize PNG output to an 8-bit palette
    """

    quality: int = 90
    compression_level: int = 6
    adaptive_filtering: bool = True
    progressive: bool = False
    palette: bool = False

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        _require_int_range(self, "quality", 1, 100)
        _require_int_range(self, "compression_level", 0, 9)
        _require_bool(self, "adaptive_filtering", "progressive", "palette")


@dataclass(frozen=True)
class StageParameters:
    """Per-request parameters for every stage plus the final encode."""

    noise_reduction: NoiseReductionParams = field(default_factory=NoiseReductionParams)
    quality_enhancement: QualityEnhancementParams = field(
        default_factory=QualityEnhancementParams
    )
    size_optimization: SizeOptimizationParams = field(default_factory=SizeOptimizationParams)
    output: OutputOptions | None = None


DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@dataclass
class Config:
    """Configuration for the converter service and CLI.

    Attributes:
        output_format: Target format of the final encode (default PNG)
        output_options: Default encoder settings for the final encode
        max_upload_bytes: Largest accepted source image, in bytes
        output_dir: Optional output directory for converted files (CLI)
        no_overwrite: Skip existing output files (CLI)
        verbose: Enable verbose logging
        parallel_workers: Number of parallel workers (None = auto-detect)
        cors_origins: Origins allowed by the HTTP service
    """

    output_format: ImageFormat = ImageFormat.PNG
    output_options: OutputOptions = field(default_factory=OutputOptions)
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    output_dir: Path | None = None
    no_overwrite: bool = False
    verbose: bool = False
    parallel_workers: int | None = None
    cors_origins: tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.output_format is ImageFormat.OTHER:
            raise ValueError("output_format must be jpeg, png or webp")
        if self.max_upload_bytes < 1:
            raise ValueError(f"max_upload_bytes must be positive, got {self.max_upload_bytes}")
        if self.parallel_workers is not None and self.parallel_workers < 1:
            raise ValueError(f"parallel_workers must be at least 1, got {self.parallel_workers}")

    @property
    def output_extension(self) -> str:
        """File extension for converted files, including the dot."""
        return ".jpg" if self.output_format is ImageFormat.JPEG else f".{self.output_format.value}"


@dataclass(frozen=True)
class SizeChange:
    """Size delta between the original and the final buffer.

    Attributes:
        size_change_bytes: final - original, in bytes
        size_change_percent: Delta as a percentage of the original, one decimal
        compression_ratio: Percentage shrink, or "0" when the output grew
    """

    size_change_bytes: int
    size_change_percent: str
    compression_ratio: str


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of one pipeline run.

    Attributes:
        buffer: Encoded output image
        original_metadata: Metadata of the input buffer
        final_metadata: Metadata of the output buffer
        applied_options: Stages that ran, in execution order
        original_size: Input size in bytes
        final_size: Output size in bytes
        size_change: Size statistics
        processing_time: Wall time in seconds
    """

    buffer: ImageBuffer
    original_metadata: ImageMetadata
    final_metadata: ImageMetadata
    applied_options: tuple[ProcessingOption, ...]
    original_size: int
    final_size: int
    size_change: SizeChange
    processing_time: float = 0.0

    @property
    def mime_type(self) -> str:
        """MIME type of the output buffer."""
        return self.final_metadata.format.mime_type


class ConversionStatus(Enum):
    """Status of a file conversion."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class FileConversionResult:
    """Result of converting a file on disk.

    Attributes:
        input_path: Path to the input JPEG file
        output_path: Path to the written output (None if failed)
        status: Conversion status
        error_message: Error message if conversion failed
        result: Pipeline result if the conversion ran
        processing_time: Time taken to process in seconds
    """

    input_path: Path
    output_path: Path | None
    status: ConversionStatus
    error_message: str | None = None
    result: ConversionResult | None = None
    processing_time: float = 0.0


@dataclass
class BatchResults:
    """Results of a batch conversion operation.

    Attributes:
        results: List of individual conversion results
        total_files: Total number of files processed
        successful: Number of successful conversions
        failed: Number of failed conversions
        skipped: Number of skipped files
        total_time: Total time taken in seconds
    """

    results: list[FileConversionResult]
    total_files: int
    successful: int
    failed: int
    skipped: int
    total_time: float

    @classmethod
    def from_results(
        cls, results: list[FileConversionResult], total_time: float
    ) -> "BatchResults":
        """Tally per-file results into a batch summary."""
        counts = Counter(result.status for result in results)
        return cls(
            results=results,
            total_files=len(results),
            successful=counts[ConversionStatus.SUCCESS],
            failed=counts[ConversionStatus.FAILED],
            skipped=counts[ConversionStatus.SKIPPED],
            total_time=total_time,
        )

    def success_rate(self) -> float:
        """Calculate success rate as percentage.

        Returns:
            Success rate as a percentage (0.0 to 100.0)
        """
        if self.total_files == 0:
            return 0.0
        return (self.successful / self.total_files) * 100.0


@dataclass
class ValidationResult:
    """Result of a validation operation.

    Attributes:
        valid: Whether the validation passed
        error_message: Error message if validation failed
    """

    valid: bool
    error_message: str | None = None


def apply_overrides(base: _ParamsT, overrides: Mapping[str, Any]) -> _ParamsT:
    """Return a copy of a parameter record with wire-format overrides applied.

    Keys may be camelCase (``blurSigma``) or snake_case (``blur_sigma``).

    Raises:
        ValueError: If a key is unknown or a value fails validation
    """
    known = {f.name for f in fields(base)}  # type: ignore[arg-type]
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        name = _snake_case(key)
        if name not in known:
            raise ValueError(f"Unknown {type(base).__name__} field: {key}")
        changes[name] = value

    try:
        return replace(base, **changes)  # type: ignore[type-var]
    except TypeError as e:
        raise ValueError(f"Invalid {type(base).__name__} value: {e}") from e


def _snake_case(key: str) -> str:
    chars: list[str] = []
    for char in key:
        if char.isupper():
            chars.append("_")
            chars.append(char.lower())
        else:
            chars.append(char)
    return "".join(chars)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_number(record: object, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValueError(f"{name} must be finite, got {value!r}")


def _require_non_negative(record: object, *names: str) -> None:
    _require_number(record, *names)
    for name in names:
        value = getattr(record, name)
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")


def _require_int_range(record: object, name: str, low: int, high: int) -> None:
    value = getattr(record, name)
    if not _is_int(value) or not low <= value <= high:
        raise ValueError(f"{name} must be an integer between {low} and {high}, got {value!r}")


def _require_bool(record: object, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be a boolean, got {value!r}")

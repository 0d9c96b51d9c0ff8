"""JPG to PNG Converter.

Converts JPEG images to PNG through an optional enhancement pipeline
(noise reduction, quality enhancement, size optimization), exposed as a
library, a command-line tool and an HTTP service.
"""

__version__ = "0.1.0"

from jpg2png.config import create_config
from jpg2png.converter import FormatConverter, compute_size_change, detect_format, validate_jpeg
from jpg2png.errors import (
    ConversionError,
    EncodeFailureError,
    ErrorHandler,
    InvalidFormatError,
    PipelineAbortedError,
    StageFailureError,
)
from jpg2png.logging_config import (
    get_logger,
    log_operation_complete,
    log_operation_error,
    log_operation_start,
    set_log_level,
    setup_logging,
)
from jpg2png.models import (
    Config,
    ConversionResult,
    ImageFormat,
    ImageMetadata,
    NoiseReductionParams,
    OutputOptions,
    ProcessingOption,
    QualityEnhancementParams,
    SizeChange,
    SizeOptimizationParams,
    StageParameters,
)
from jpg2png.noise_reducer import reduce_noise
from jpg2png.pipeline import ConversionPipeline
from jpg2png.presets import get_preset, parse_stage_parameters
from jpg2png.quality_enhancer import enhance_quality
from jpg2png.size_optimizer import optimize_size

__all__ = [
    "Config",
    "ConversionError",
    "ConversionPipeline",
    "ConversionResult",
    "EncodeFailureError",
    "ErrorHandler",
    "FormatConverter",
    "ImageFormat",
    "ImageMetadata",
    "InvalidFormatError",
    "NoiseReductionParams",
    "OutputOptions",
    "PipelineAbortedError",
    "ProcessingOption",
    "QualityEnhancementParams",
    "SizeChange",
    "SizeOptimizationParams",
    "StageFailureError",
    "StageParameters",
    "compute_size_change",
    "create_config",
    "detect_format",
    "enhance_quality",
    "get_logger",
    "get_preset",
    "log_operation_complete",
    "log_operation_error",
    "log_operation_start",
    "optimize_size",
    "parse_stage_parameters",
    "reduce_noise",
    "set_log_level",
    "setup_logging",
    "validate_jpeg",
]

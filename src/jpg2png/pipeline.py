"""Pipeline orchestration for JPG conversions.

This module coordinates one conversion from validated source bytes to an
encoded target image:
- format validation (magic bytes)
- optional stages in canonical order (reduce-noise, improve-quality,
  optimize-size)
- final target-format encode
- before/after metadata and size statistics
"""

from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any

from jpg2png import codec
from jpg2png.converter import FormatConverter, compute_size_change, detect_format, validate_jpeg
from jpg2png.errors import (
    CodecError,
    EncodeFailureError,
    InvalidFormatError,
    PipelineAbortedError,
    StageFailureError,
)
from jpg2png.logging_config import (
    get_logger,
    log_operation_complete,
    log_operation_error,
    log_operation_start,
)
from jpg2png.models import (
    Config,
    ConversionResult,
    ImageBuffer,
    ProcessingOption,
    StageParameters,
    parse_options,
)
from jpg2png.noise_reducer import reduce_noise
from jpg2png.quality_enhancer import enhance_quality
from jpg2png.size_optimizer import optimize_size

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable, Iterable


@dataclass(frozen=True)
class Stage:
    """A pipeline stage bound to the slice of StageParameters it consumes."""

    option: ProcessingOption
    run: Callable[[ImageBuffer, Any], ImageBuffer]
    select_params: Callable[[StageParameters], Any]


_STAGE_TABLE = {
    ProcessingOption.REDUCE_NOISE: Stage(
        ProcessingOption.REDUCE_NOISE, reduce_noise, lambda p: p.noise_reduction
    ),
    ProcessingOption.IMPROVE_QUALITY: Stage(
        ProcessingOption.IMPROVE_QUALITY, enhance_quality, lambda p: p.quality_enhancement
    ),
    ProcessingOption.OPTIMIZE_SIZE: Stage(
        ProcessingOption.OPTIMIZE_SIZE, optimize_size, lambda p: p.size_optimization
    ),
}

STAGES: tuple[Stage, ...] = tuple(
    _STAGE_TABLE[option] for option in ProcessingOption.canonical_order()
)

OPTION_CATALOG: dict[ProcessingOption, dict[str, str]] = {
    ProcessingOption.REDUCE_NOISE: {
        "name": "Reduce Noise",
        "description": "Removes visual noise from the image",
        "category": "quality",
    },
    ProcessingOption.IMPROVE_QUALITY: {
        "name": "Improve Quality",
        "description": "Improves image sharpness and contrast",
        "category": "quality",
    },
    ProcessingOption.OPTIMIZE_SIZE: {
        "name": "Optimize Size",
        "description": "Reduces file size while keeping visual quality",
        "category": "optimization",
    },
}


def describe_options() -> dict[str, dict[str, str]]:
    """Catalogue of available processing options keyed by identifier."""
    return {
        option.value: {"id": option.value, **OPTION_CATALOG[option]}
        for option in ProcessingOption.canonical_order()
    }


class ConversionPipeline:
    """Run the JPEG enhancement pipeline and encode the target format.

    Instances hold only immutable configuration, so one pipeline can serve
    many concurrent requests.
    """

    def __init__(self, config: Config | None = None, logger: logging.Logger | None = None):
        """Initialize the pipeline.

        Args:
            config: Service configuration; None uses the defaults
            logger: Optional logger instance
        """
        self.config = config or Config()
        self.logger = logger or get_logger(__name__)
        self.converter = FormatConverter(self.config.output_format, self.config.output_options)

    def process(
        self,
        buffer: ImageBuffer,
        requested_options: Iterable[str | ProcessingOption] = (),
        params: StageParameters | None = None,
        should_abort: Callable[[], bool] | None = None,
    ) -> ConversionResult:
        """Process a JPEG buffer through the requested stages.

        This method runs the complete flow:
        1. Validate the source format (JPEG magic bytes)
        2. Capture original metadata and size
        3. Apply requested stages in canonical order
        4. Encode to the target format
        5. Capture final metadata and size
        6. Compute size statistics

        Args:
            buffer: Encoded JPEG bytes; never modified
            requested_options: Stage identifiers, any order, duplicates allowed
            params: Per-stage parameters; None uses the defaults
            should_abort: Polled between stages; returning True abandons the run

        Returns:
            ConversionResult with the encoded output and metadata

        Raises:
            ValueError: If an option identifier is unknown
            InvalidFormatError: If the buffer is not a JPEG image
            StageFailureError: If a stage fails
            EncodeFailureError: If the final encode fails
            PipelineAbortedError: If should_abort returned True
        """
        start_time = perf_counter()
        options = parse_options(requested_options)
        params = params or StageParameters()

        if not validate_jpeg(buffer):
            raise InvalidFormatError(self._describe_invalid(buffer))

        source = bytes(buffer)
        try:
            original_metadata = codec.read_metadata(source)
        except CodecError as e:
            raise InvalidFormatError(f"JPEG data could not be read: {e}") from e

        original_size = len(source)
        log_operation_start(
            self.logger,
            "pipeline",
            size=original_size,
            dimensions=f"{original_metadata.width}x{original_metadata.height}",
            options=",".join(sorted(option.value for option in options)) or "none",
        )

        current = source
        applied: list[ProcessingOption] = []
        for stage in STAGES:
            if stage.option not in options:
                continue
            self._check_abort(should_abort, stage.option.value)
            current = self._run_stage(stage, current, params)
            applied.append(stage.option)

        self._check_abort(should_abort, "encode")
        target = self.converter.target.value
        self.logger.debug(f"Encoding result as {target}")
        output = self.converter.convert(current, params.output)

        try:
            final_metadata = codec.read_metadata(output)
        except CodecError as e:
            raise EncodeFailureError(target, e) from e

        final_size = len(output)
        size_change = compute_size_change(original_size, final_size)
        processing_time = perf_counter() - start_time

        log_operation_complete(
            self.logger,
            "pipeline",
            success=True,
            duration=processing_time,
            original_size=original_size,
            final_size=final_size,
            change=f"{size_change.size_change_percent}%",
        )

        return ConversionResult(
            buffer=output,
            original_metadata=original_metadata,
            final_metadata=final_metadata,
            applied_options=tuple(applied),
            original_size=original_size,
            final_size=final_size,
            size_change=size_change,
            processing_time=processing_time,
        )

    def _run_stage(self, stage: Stage, buffer: ImageBuffer, params: StageParameters) -> ImageBuffer:
        """Run one stage, wrapping any failure with the stage name."""
        stage_params = stage.select_params(params)
        stage_start = perf_counter()
        log_operation_start(self.logger, stage.option.value, size=len(buffer))
        self.logger.debug(f"{stage.option.value} parameters: {stage_params}")

        try:
            result = stage.run(buffer, stage_params)
        except Exception as e:
            log_operation_error(self.logger, stage.option.value, e, size=len(buffer))
            raise StageFailureError(stage.option.value, e) from e

        log_operation_complete(
            self.logger,
            stage.option.value,
            success=True,
            duration=perf_counter() - stage_start,
            size=len(result),
        )
        return result

    def _check_abort(self, should_abort: Callable[[], bool] | None, next_step: str) -> None:
        if should_abort is not None and should_abort():
            self.logger.warning(f"Pipeline abandoned before {next_step}")
            raise PipelineAbortedError(f"Pipeline abandoned before {next_step}")

    @staticmethod
    def _describe_invalid(buffer: object) -> str:
        if not isinstance(buffer, (bytes, bytearray, memoryview)):
            return f"expected image bytes, got {type(buffer).__name__}"
        if len(buffer) < 10:
            return f"buffer too short ({len(buffer)} bytes)"
        detected = detect_format(bytes(buffer[:16]))
        if detected is not None:
            return f"detected {detected.value} data, expected jpeg"
        return "missing JPEG signature"

"""Converting JPEG files on disk, one at a time or across a process pool."""

from __future__ import annotations

import itertools
import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from hashlib import blake2s
from time import perf_counter
from typing import TYPE_CHECKING

from jpg2png.errors import ErrorHandler
from jpg2png.filesystem import FileSystemHandler
from jpg2png.logging_config import get_logger
from jpg2png.models import (
    BatchResults,
    Config,
    ConversionStatus,
    FileConversionResult,
    ProcessingOption,
    StageParameters,
)
from jpg2png.pipeline import ConversionPipeline

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

# Upper bound on automatically chosen workers; each one holds decoded rasters
MAX_AUTO_WORKERS = 8


def filesystem_for(config: Config) -> FileSystemHandler:
    """Build a FileSystemHandler matching the configured limits and output format."""
    return FileSystemHandler(
        max_file_size=config.max_upload_bytes,
        output_extension=config.output_extension,
    )


def default_worker_count() -> int:
    """Number of workers used when the configuration leaves it open."""
    cpu_count = os.cpu_count()
    return 4 if cpu_count is None else min(cpu_count, MAX_AUTO_WORKERS)


def convert_file(
    file_path: Path,
    config: Config,
    options: Iterable[ProcessingOption] = (),
    params: StageParameters | None = None,
    output_path: Path | None = None,
    logger: logging.Logger | None = None,
) -> FileConversionResult:
    """Run the pipeline over one JPEG on disk and save the converted image.

    The source is validated before it is read. With ``no_overwrite`` set, an
    existing output is left untouched and the file is reported as skipped.
    Every failure, expected or not, is turned into a FAILED result carrying
    the ErrorHandler's user-facing message.

    Args:
        file_path: Source JPEG
        config: Output format, directory and overwrite policy
        options: Stages to apply
        params: Per-stage parameters; None uses the defaults
        output_path: Destination chosen by the caller; None derives it from
            the source name and ``config.output_dir``
        logger: Optional logger instance

    Returns:
        FileConversionResult describing what happened
    """
    logger = logger or get_logger(__name__)
    start_time = perf_counter()
    filesystem = filesystem_for(config)

    def finish(status: ConversionStatus, **fields) -> FileConversionResult:
        fields.setdefault("output_path", None)
        return FileConversionResult(
            input_path=file_path,
            status=status,
            processing_time=perf_counter() - start_time,
            **fields,
        )

    try:
        validation = filesystem.validate_input_file(file_path)
        if not validation.valid:
            logger.error(f"Rejected {file_path.name}: {validation.error_message}")
            return finish(ConversionStatus.FAILED, error_message=validation.error_message)

        target = output_path or filesystem.get_output_path(file_path, config.output_dir)
        if config.no_overwrite and target.exists():
            logger.info(f"Skipping {file_path.name}: {target.name} already exists")
            return finish(
                ConversionStatus.SKIPPED,
                output_path=target,
                error_message="Output file already exists (no-overwrite enabled)",
            )

        target_check = filesystem.validate_output_path(target, config.no_overwrite)
        if not target_check.valid:
            return finish(ConversionStatus.FAILED, error_message=target_check.error_message)

        result = ConversionPipeline(config, logger).process(
            filesystem.read_file(file_path), options, params
        )
        filesystem.write_file(target, result.buffer)
    except Exception as e:
        failure = ErrorHandler(logger).handle_error(
            e, {"filename": file_path.name, "operation": "conversion"}
        )
        return finish(ConversionStatus.FAILED, error_message=failure.message)

    logger.info(
        f"Converted {file_path.name} -> {target.name} "
        f"({result.original_size} -> {result.final_size} bytes, "
        f"{result.size_change.size_change_percent}%)"
    )
    return finish(ConversionStatus.SUCCESS, output_path=target, result=result)


class BatchProcessor:
    """Convert many files concurrently, one worker process per file at a time.

    Output names are planned up front so two sources sharing a stem never
    write to the same file. A file that fails, or whose worker dies, is
    reported in the results and the rest of the batch carries on.
    """

    def __init__(
        self,
        config: Config,
        logger: logging.Logger | None = None,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ):
        """Initialize the processor.

        Args:
            config: Conversion settings shared by every file; its
                ``parallel_workers`` fixes the pool size when set
            logger: Optional logger instance
            progress_callback: Called with (completed, total, filename) after
                each file
        """
        self.config = config
        self.logger = logger or get_logger(__name__)
        self.progress_callback = progress_callback
        self.worker_count = (
            config.parallel_workers
            if config.parallel_workers is not None
            else default_worker_count()
        )
        self.logger.debug(f"Batch processor using {self.worker_count} workers")

    def process_batch(
        self,
        files: list[Path],
        options: Iterable[ProcessingOption] = (),
        params: StageParameters | None = None,
    ) -> BatchResults:
        """Convert ``files`` with the same options and parameters.

        Args:
            files: Source JPEGs
            options: Stages applied to every file
            params: Per-stage parameters shared by every file

        Returns:
            BatchResults in completion order
        """
        if not files:
            return BatchResults.from_results([], 0.0)

        start_time = perf_counter()
        jobs = self._plan_output_paths(files)
        stage_options = frozenset(options)
        results: list[FileConversionResult] = []

        self.logger.info(f"Converting {len(jobs)} files with {self.worker_count} workers")

        with ProcessPoolExecutor(max_workers=self.worker_count) as executor:
            pending = {
                executor.submit(
                    _process_single_file_worker,
                    source,
                    self.config,
                    stage_options,
                    params,
                    target,
                ): source
                for source, target in jobs
            }

            for done, future in enumerate(as_completed(pending), start=1):
                source = pending[future]
                try:
                    result = future.result()
                except Exception as e:
                    result = self._worker_failure(source, e)

                results.append(result)
                self._log_result(result, done, len(files))
                if self.progress_callback:
                    self.progress_callback(done, len(files), source.name)

        batch = BatchResults.from_results(results, perf_counter() - start_time)
        self.logger.info(
            f"Batch finished in {batch.total_time:.2f}s: {batch.successful} converted, "
            f"{batch.failed} failed, {batch.skipped} skipped"
        )
        return batch

    def _worker_failure(self, source: Path, error: Exception) -> FileConversionResult:
        self.logger.error(f"Worker process failed for {source.name}: {error}")
        failure = ErrorHandler(self.logger).handle_error(
            error, {"filename": source.name, "operation": "batch_processing"}
        )
        return FileConversionResult(
            input_path=source,
            output_path=None,
            status=ConversionStatus.FAILED,
            error_message=failure.message,
        )

    def _log_result(self, result: FileConversionResult, current: int, total: int) -> None:
        name = result.input_path.name
        progress = f"({current}/{total})"
        if result.status == ConversionStatus.SUCCESS:
            self.logger.info(f"Converted {name} {progress}")
        elif result.status == ConversionStatus.FAILED:
            self.logger.error(f"Failed to convert {name}: {result.error_message} {progress}")
        else:
            self.logger.info(f"Skipped {name} {progress}")

    def _plan_output_paths(self, files: list[Path]) -> list[tuple[Path, Path]]:
        """Pair each source with an output path no other source in the batch uses."""
        filesystem = filesystem_for(self.config)
        taken: set[Path] = set()
        jobs: list[tuple[Path, Path]] = []

        for source in files:
            preferred = filesystem.get_output_path(source, self.config.output_dir)
            target = preferred
            if target in taken:
                target = next(
                    candidate
                    for candidate in (
                        self._with_collision_suffix(preferred, source, index)
                        for index in itertools.count()
                    )
                    if candidate not in taken
                )
                self.logger.warning(
                    f"{source.name} would overwrite {preferred.name} from the same batch; "
                    f"writing {target.name} instead"
                )
            taken.add(target)
            jobs.append((source, target))

        return jobs

    @staticmethod
    def _with_collision_suffix(preferred: Path, source: Path, index: int) -> Path:
        """Append a short hash of the source path (and ``_index`` after the first retry)."""
        try:
            key = str(source.resolve(strict=False))
        except (OSError, RuntimeError):
            key = str(source)
        digest = blake2s(key.encode("utf-8"), digest_size=4).hexdigest()
        ordinal = f"_{index}" if index else ""
        return preferred.with_name(f"{preferred.stem}_{digest}{ordinal}{preferred.suffix}")


def _process_single_file_worker(
    file_path: Path,
    config: Config,
    options: frozenset[ProcessingOption],
    params: StageParameters | None,
    output_path: Path | None = None,
) -> FileConversionResult:
    """Entry point run inside a pool worker; must stay importable at module level."""
    logger = logging.getLogger(f"jpg2png.worker-{os.getpid()}")
    return convert_file(file_path, config, options, params, output_path, logger)

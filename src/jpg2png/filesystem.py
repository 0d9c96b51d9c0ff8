"""Disk access for the CLI and batch processor.

Source JPEGs are checked before they are read and converted images are
written through a temporary sibling file, so an interrupted run never leaves
a truncated PNG where a finished one is expected.
"""

from __future__ import annotations

import contextlib
import os
from typing import TYPE_CHECKING

from .errors import InvalidFileError, SecurityError
from .models import DEFAULT_MAX_UPLOAD_BYTES, ValidationResult

if TYPE_CHECKING:
    from pathlib import Path

_MEGABYTE = 1024 * 1024


def _traversal_problem(path: Path, label: str) -> str | None:
    if ".." in path.parts:
        return f"Path traversal detected in {label}: path contains '..'"
    return None


def _to_validation(problem: str | None) -> ValidationResult:
    if problem is None:
        return ValidationResult(valid=True)
    return ValidationResult(valid=False, error_message=problem)


def _raise_for(validation: ValidationResult) -> None:
    if validation.valid:
        return
    message = validation.error_message or "Unknown validation error"
    if "traversal" in message.lower():
        raise SecurityError(message)
    raise InvalidFileError(message)


class FileSystemHandler:
    """Validated reads of JPEG sources and atomic writes of converted images.

    Attributes:
        max_file_size: Largest accepted source file in bytes
        output_extension: Extension given to converted files (e.g. ``.png``)
    """

    VALID_EXTENSIONS = frozenset({".jpg", ".jpeg"})

    def __init__(
        self, max_file_size: int = DEFAULT_MAX_UPLOAD_BYTES, output_extension: str = ".png"
    ):
        self.max_file_size = max_file_size
        self.output_extension = output_extension

    def _input_problem(self, path: Path) -> str | None:
        traversal = _traversal_problem(path, "input path")
        if traversal:
            return traversal

        try:
            resolved = path.resolve(strict=False)
        except (OSError, RuntimeError) as e:
            return f"Invalid path: {e}"

        if not resolved.exists():
            return f"File not found: {path}"
        if not resolved.is_file():
            return f"Path is not a file: {path}"
        if not os.access(resolved, os.R_OK):
            return f"File is not readable: {path}"
        if resolved.suffix.lower() not in self.VALID_EXTENSIONS:
            return (
                f"Invalid file extension: {resolved.suffix}. "
                f"Expected one of {sorted(self.VALID_EXTENSIONS)}"
            )

        try:
            size = resolved.stat().st_size
        except OSError as e:
            return f"Cannot read file size: {e}"

        if size == 0:
            return f"File is empty: {path}"
        if size > self.max_file_size:
            return (
                f"File too large: {size / _MEGABYTE:.1f}MB "
                f"(maximum: {self.max_file_size / _MEGABYTE:.0f}MB)"
            )
        return None

    def _output_problem(self, path: Path, no_overwrite: bool) -> str | None:
        traversal = _traversal_problem(path, "output path")
        if traversal:
            return traversal

        try:
            resolved = path.resolve(strict=False)
        except (OSError, RuntimeError) as e:
            return f"Invalid output path: {e}"

        if no_overwrite and resolved.exists():
            return f"Output file already exists: {path}"

        # Parents are created on write; the nearest existing one must be writable
        ancestor = next(parent for parent in resolved.parents if parent.exists())
        if not os.access(ancestor, os.W_OK):
            return f"Output directory is not writable: {ancestor}"
        return None

    def validate_input_file(self, path: Path) -> ValidationResult:
        """Check that ``path`` is a readable, non-empty JPEG within the size limit.

        Args:
            path: Path to the source file

        Returns:
            ValidationResult carrying the first problem found, if any
        """
        return _to_validation(self._input_problem(path))

    def validate_output_path(self, path: Path, no_overwrite: bool) -> ValidationResult:
        """Check that a converted image may be written to ``path``.

        Args:
            path: Destination of the converted image
            no_overwrite: Reject the path when a file already exists there

        Returns:
            ValidationResult carrying the first problem found, if any
        """
        return _to_validation(self._output_problem(path, no_overwrite))

    def read_file(self, path: Path) -> bytes:
        """Read a validated source file.

        Raises:
            SecurityError: If the path contains a traversal component
            InvalidFileError: If validation or the read fails
        """
        _raise_for(self.validate_input_file(path))

        try:
            return path.resolve().read_bytes()
        except OSError as e:
            raise InvalidFileError(f"Failed to read file {path}: {e}") from e

    def write_file(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path`` atomically, creating parent directories.

        Args:
            path: Destination file
            data: Encoded image bytes

        Raises:
            SecurityError: If the path contains a traversal component
            InvalidFileError: If validation or the write fails
        """
        _raise_for(self.validate_output_path(path, no_overwrite=False))

        target = path.resolve(strict=False)
        self.ensure_directory(target.parent)

        temp_path = target.with_name(f".{target.name}.tmp")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(target)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise InvalidFileError(f"Failed to write file {path}: {e}") from e

    def get_output_path(self, input_path: Path, output_dir: Path | None) -> Path:
        """Map a source path to its converted counterpart.

        The stem is kept and the extension replaced; the file lands in
        ``output_dir`` when given, otherwise next to the source.
        """
        directory = output_dir if output_dir is not None else input_path.parent
        return directory / f"{input_path.stem}{self.output_extension}"

    def ensure_directory(self, path: Path) -> None:
        """Create ``path`` and any missing parents.

        Raises:
            InvalidFileError: If the directory cannot be created
        """
        try:
            path.resolve(strict=False).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InvalidFileError(f"Failed to create directory {path}: {e}") from e

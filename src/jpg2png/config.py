"""Configuration handling for the JPG to PNG converter."""

import math
import os
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

from .models import DEFAULT_MAX_UPLOAD_BYTES, Config, ImageFormat, OutputOptions

ENV_OUTPUT_FORMAT = "JPG2PNG_OUTPUT_FORMAT"
ENV_COMPRESSION_LEVEL = "JPG2PNG_COMPRESSION_LEVEL"
ENV_MAX_UPLOAD_MB = "JPG2PNG_MAX_UPLOAD_MB"
ENV_CORS_ORIGINS = "JPG2PNG_CORS_ORIGINS"


def get_output_format_from_env() -> ImageFormat | None:
    """Read the target format from JPG2PNG_OUTPUT_FORMAT.

    Returns:
        The format if the variable holds jpeg, jpg, png or webp, None otherwise
    """
    value = os.getenv(ENV_OUTPUT_FORMAT)
    if value is None:
        return None

    try:
        return ImageFormat.parse(value)
    except ValueError:
        return None


def get_compression_level_from_env() -> int | None:
    """Read the PNG compression level (0-9) from JPG2PNG_COMPRESSION_LEVEL.

    Returns:
        The level if valid, None otherwise
    """
    level_str = os.getenv(ENV_COMPRESSION_LEVEL)
    if level_str is None:
        return None

    try:
        level = int(level_str)
    except ValueError:
        return None
    return level if 0 <= level <= 9 else None


def get_max_upload_bytes_from_env() -> int | None:
    """Read the upload limit in megabytes from JPG2PNG_MAX_UPLOAD_MB.

    Returns:
        The limit in bytes if the variable holds a positive number, None otherwise
    """
    size_str = os.getenv(ENV_MAX_UPLOAD_MB)
    if size_str is None:
        return None

    try:
        megabytes = float(size_str)
    except ValueError:
        return None
    if not math.isfinite(megabytes) or megabytes <= 0:
        return None
    limit = int(megabytes * 1024 * 1024)
    return limit if limit > 0 else None


def get_cors_origins_from_env() -> tuple[str, ...] | None:
    """Read a comma separated origin list from JPG2PNG_CORS_ORIGINS."""
    value = os.getenv(ENV_CORS_ORIGINS)
    if value is None:
        return None

    origins = tuple(origin.strip() for origin in value.split(",") if origin.strip())
    return origins or None


def create_config(
    output_format: ImageFormat | None = None,
    compression_level: int | None = None,
    max_upload_bytes: int | None = None,
    output_dir: "Path | None" = None,
    no_overwrite: bool = False,
    verbose: bool = False,
    parallel_workers: int | None = None,
    cors_origins: tuple[str, ...] | None = None,
) -> Config:
    """Create a Config with environment variable fallbacks.

    Each setting follows the same priority:
    1. Explicit parameter (if provided and valid)
    2. Environment variable (if set and valid)
    3. Built-in default

    Args:
        output_format: Target format of the final encode
        compression_level: PNG compression level (0-9) for the final encode
        max_upload_bytes: Largest accepted source image in bytes
        output_dir: Optional output directory for converted files
        no_overwrite: Skip existing files without prompting
        verbose: Enable verbose logging
        parallel_workers: Number of parallel workers (None = auto-detect)
        cors_origins: Origins allowed by the HTTP service

    Returns:
        Config object with every setting resolved

    Raises:
        ValueError: If a resolved value is still invalid
    """
    final_format = output_format or get_output_format_from_env() or ImageFormat.PNG
    if final_format is ImageFormat.OTHER:
        final_format = get_output_format_from_env() or ImageFormat.PNG

    final_level: int
    if compression_level is not None and 0 <= compression_level <= 9:
        final_level = compression_level
    else:
        env_level = get_compression_level_from_env()
        final_level = env_level if env_level is not None else OutputOptions().compression_level

    final_max_upload: int
    if max_upload_bytes is not None and max_upload_bytes > 0:
        final_max_upload = max_upload_bytes
    else:
        final_max_upload = get_max_upload_bytes_from_env() or DEFAULT_MAX_UPLOAD_BYTES

    final_origins = cors_origins or get_cors_origins_from_env() or ("*",)

    return Config(
        output_format=final_format,
        output_options=replace(OutputOptions(), compression_level=final_level),
        max_upload_bytes=final_max_upload,
        output_dir=output_dir,
        no_overwrite=no_overwrite,
        verbose=verbose,
        parallel_workers=parallel_workers,
        cors_origins=final_origins,
    )

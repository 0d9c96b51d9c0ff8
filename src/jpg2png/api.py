"""HTTP service exposing the JPG to PNG pipeline.

Routes:
- ``POST /api/convert/jpg-to-png``: multipart upload (``file``, optional
  ``options`` JSON array and ``params`` JSON object)
- ``GET /api/options``: catalogue of processing options and presets
- ``GET /health``: liveness check
"""

from __future__ import annotations

import json
from time import perf_counter
from typing import TYPE_CHECKING, Any

import click
import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from jpg2png import __version__
from jpg2png.config import create_config
from jpg2png.errors import ErrorCode, ErrorHandler, RequestError
from jpg2png.logging_config import get_logger, setup_logging, uvicorn_log_config
from jpg2png.models import ProcessingOption, StageParameters, parse_options
from jpg2png.pipeline import ConversionPipeline, describe_options
from jpg2png.presets import available_presets, parse_stage_parameters
from jpg2png.schemas import ConversionResponse, ErrorResponse, OptionInfo, OptionsResponse

if TYPE_CHECKING:
    from jpg2png.models import Config

CONVERT_ROUTE = "/api/convert/jpg-to-png"
CORS_MAX_AGE = 3600
# Allowance for multipart framing and the options/params fields around the image
FORM_OVERHEAD_BYTES = 64 * 1024

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


async def read_conversion_request(
    request: Request, max_upload_bytes: int
) -> tuple[bytes, frozenset[ProcessingOption], StageParameters]:
    """Extract the image bytes, options and parameters from a multipart request.

    Oversized uploads are rejected from the declared Content-Length before the
    body is parsed, then from the spooled upload size before it is read.

    Args:
        request: Incoming request
        max_upload_bytes: Largest accepted image in bytes

    Returns:
        (image bytes, requested options, stage parameters)

    Raises:
        RequestError: With INVALID_CONTENT_TYPE, PARSE_ERROR, NO_FILE_FOUND
            or PAYLOAD_TOO_LARGE
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type.lower():
        raise RequestError(
            ErrorCode.INVALID_CONTENT_TYPE, "Content-Type must be multipart/form-data"
        )

    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_upload_bytes + FORM_OVERHEAD_BYTES:
        raise _payload_too_large(int(declared), max_upload_bytes, subject="Request")

    try:
        form = await request.form()
    except Exception as e:
        raise RequestError(ErrorCode.PARSE_ERROR, f"Error parsing multipart data: {e}") from e

    try:
        options = parse_options(_json_field(form.get("options"), list, "options") or [])
        params = parse_stage_parameters(_json_field(form.get("params"), dict, "params"))
    except ValueError as e:
        raise RequestError(ErrorCode.PARSE_ERROR, str(e)) from e

    upload = form.get("file")
    if not isinstance(upload, UploadFile):
        raise RequestError(ErrorCode.NO_FILE_FOUND, "No image file found in the request")

    if upload.size is not None and upload.size > max_upload_bytes:
        raise _payload_too_large(upload.size, max_upload_bytes)

    data = await upload.read()
    if not data:
        raise RequestError(ErrorCode.NO_FILE_FOUND, "No image file found in the request")
    if len(data) > max_upload_bytes:
        raise _payload_too_large(len(data), max_upload_bytes)

    return data, options, params


def _payload_too_large(
    size: int, max_upload_bytes: int, subject: str = "File"
) -> RequestError:
    return RequestError(
        ErrorCode.PAYLOAD_TOO_LARGE,
        f"{subject} too large: {size} bytes (maximum: {max_upload_bytes} bytes)",
    )


def _json_field(value: Any, expected: type, name: str) -> Any:
    """Decode an optional JSON-encoded form field."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Form field '{name}' must be a JSON string")

    decoded = json.loads(value)
    if not isinstance(decoded, expected):
        raise ValueError(f"Form field '{name}' must be a JSON {expected.__name__}")
    if expected is list and not all(isinstance(item, str) for item in decoded):
        raise ValueError(f"Form field '{name}' must contain only strings")
    return decoded


def create_app(config: Config | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Service configuration; None resolves it from the environment

    Returns:
        Configured FastAPI application
    """
    config = config or create_config()
    logger = get_logger(__name__)
    pipeline = ConversionPipeline(config, logger)
    error_handler = ErrorHandler(logger)

    app = FastAPI(title="jpg2png", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=CORS_MAX_AGE,
    )
    app.state.config = config
    app.state.pipeline = pipeline

    @app.post(CONVERT_ROUTE, response_model=ConversionResponse, responses=_ERROR_RESPONSES)
    async def convert_jpg_to_png(request: Request) -> Any:
        start_time = perf_counter()
        logger.info("Starting JPG to PNG conversion request")

        try:
            data, options, params = await read_conversion_request(
                request, config.max_upload_bytes
            )
            logger.info(
                f"Received {len(data) / 1024 / 1024:.2f}MB upload, "
                f"options: {sorted(option.value for option in options)}"
            )
            result = await run_in_threadpool(pipeline.process, data, options, params)
        except Exception as e:
            failure = error_handler.handle_error(e, {"operation": "jpg-to-png conversion"})
            return JSONResponse(status_code=failure.http_status, content=failure.to_dict())

        elapsed_ms = round((perf_counter() - start_time) * 1000)
        logger.info(f"Conversion completed in {elapsed_ms}ms")
        return ConversionResponse.from_result(result, elapsed_ms)

    @app.get("/api/options", response_model=OptionsResponse)
    async def list_options() -> OptionsResponse:
        catalog = describe_options()
        return OptionsResponse(
            options=[
                OptionInfo(**catalog[option.value], presets=list(available_presets(option)))
                for option in ProcessingOption.canonical_order()
            ]
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def serve(host: str = "127.0.0.1", port: int = 8000, config: Config | None = None) -> None:
    """Run the service under uvicorn.

    Args:
        host: Interface to bind
        port: Port to listen on
        config: Service configuration; None resolves it from the environment
    """
    verbose = config.verbose if config is not None else False
    uvicorn.run(
        create_app(config), host=host, port=port, log_config=uvicorn_log_config(verbose)
    )


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=click.IntRange(1, 65535))
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose logging.")
@click.help_option("--help", "-h")
def main(host: str, port: int, verbose: bool) -> None:
    """Serve the JPG to PNG conversion API."""
    setup_logging(verbose=verbose)
    serve(host, port, create_config(verbose=verbose))


if __name__ == "__main__":
    main()
